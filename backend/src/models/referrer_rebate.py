"""
ReferrerRebate model: the per-(referrer, calendar day) rebate ledger.

Each row is a running total of the rebate owed to one referrer for one day.
Rows are created on the first rebate-generating event for the pair, adjusted
in place afterwards and never deleted; a fully reversed day is kept with a
zero total and status 'cancelled'.
"""

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, Numeric, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import REBATE_STATUS_ACTIVE, REBATE_STATUS_CANCELLED
from core.database import Base


class ReferrerRebate(Base):
    """
    Rebate ledger row for one referrer on one date.

    Invariants:
    - (referrer_id, rebate_date) is unique
    - total_rebate_amount and transaction_count are never negative
    - status is 'cancelled' exactly when total_rebate_amount is zero
    - the linked rebate ExpenseItem (if any) has amount == total_rebate_amount
    """

    __tablename__ = "referrer_rebates"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the rebate record."""

    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("referrers.id", ondelete="RESTRICT")
    )
    """Referrer the rebate is owed to."""

    first_name: Mapped[str] = mapped_column(String(255))
    """Referrer first name snapshot at record creation."""

    last_name: Mapped[str] = mapped_column(String(255))
    """Referrer last name snapshot at record creation."""

    rebate_date: Mapped[date] = mapped_column(Date)
    """Calendar day (business timezone) of the transactions aggregated here."""

    total_rebate_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Running rebate total for the day."""

    transaction_count: Mapped[int] = mapped_column(default=0)
    """Number of transactions currently contributing to the total."""

    status: Mapped[str] = mapped_column(String(20), default=REBATE_STATUS_ACTIVE)
    """'active' or 'cancelled' (total is zero)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the record was created."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the record was last adjusted."""

    # Relationships
    referrer = relationship("Referrer")
    """Relationship to the Referrer entity."""

    __table_args__ = (
        UniqueConstraint('referrer_id', 'rebate_date', name='uq_referrer_rebates_referrer_date'),
        CheckConstraint('total_rebate_amount >= 0', name='ck_referrer_rebates_total_non_negative'),
        CheckConstraint('transaction_count >= 0', name='ck_referrer_rebates_count_non_negative'),
        Index('idx_referrer_rebates_date', 'rebate_date'),
        Index('idx_referrer_rebates_referrer', 'referrer_id'),
    )

    def refresh_status(self) -> None:
        """Set status from the current total."""
        self.status = REBATE_STATUS_CANCELLED if self.total_rebate_amount == 0 else REBATE_STATUS_ACTIVE
