"""
Category model for expense items.
"""

from datetime import datetime

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Category(Base):
    """Expense category (e.g. "Rebates", "Utilities")."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the category."""

    name: Mapped[str] = mapped_column(String(255), unique=True)
    """Category name."""

    status: Mapped[str] = mapped_column(String(20), default="active")
    """'active' or 'inactive'."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the category was created."""
