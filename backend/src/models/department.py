"""
Department model.

Departments (Laboratory, X-Ray, Ultrasound, ...) group billable tests. Rebates
are computed per department before being summed for a referrer.
"""

from datetime import datetime

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Department(Base):
    """Department entity that billable tests belong to."""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the department."""

    name: Mapped[str] = mapped_column(String(255), unique=True)
    """Department display name."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the department was created."""
