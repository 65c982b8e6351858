"""
Referrer model representing referring physicians.

Referrers are paid a rebate on the revenue of the transactions they refer.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import REFERRER_PAYEE_PREFIX
from core.database import Base


class Referrer(Base):
    """Referring physician entity."""

    __tablename__ = "referrers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the referrer."""

    first_name: Mapped[str] = mapped_column(String(255))
    """Referrer's first name."""

    last_name: Mapped[str] = mapped_column(String(255))
    """Referrer's last name. Used for the payee label on rebate expense items."""

    clinic_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Name of the referrer's own clinic (optional)."""

    status: Mapped[str] = mapped_column(String(20), default="active")
    """Referrer status: 'active' or 'inactive'."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the referrer was added."""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def payee_label(self) -> str:
        """Label written to the paid_to column of the referrer's rebate expense item."""
        return f"{REFERRER_PAYEE_PREFIX} {self.last_name}"
