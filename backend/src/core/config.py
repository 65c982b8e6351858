"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the rebate ledger.
"""

import os
import pathlib
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",
        pathlib.Path.cwd().parent / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/diagnostic_center_dev"
    )

DATABASE_URL = get_database_url()

# Rebate dates are calendar days in the business timezone (Philippines, UTC+8)
BUSINESS_TIMEZONE_OFFSET_HOURS = int(os.getenv("BUSINESS_TIMEZONE_OFFSET_HOURS", "8"))
