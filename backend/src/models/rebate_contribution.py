"""
RebateContribution model: the rebate a single transaction put into the ledger.

The ledger itself only keeps per-day totals. This row remembers how much of a
day's total belongs to one transaction, so a cancellation or referrer
reassignment removes exactly what was added (less any refunds already
deducted) instead of recomputing from test details that may have changed since.
"""

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import CONTRIBUTION_STATUS_ACTIVE
from core.database import Base


class RebateContribution(Base):
    """One transaction's share of a ReferrerRebate total."""

    __tablename__ = "rebate_contributions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the contribution."""

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"),
        unique=True
    )
    """Transaction that generated the rebate."""

    rebate_record_id: Mapped[int] = mapped_column(
        ForeignKey("referrer_rebates.id", ondelete="RESTRICT")
    )
    """Ledger row the amount was added to."""

    referrer_id: Mapped[int] = mapped_column(ForeignKey("referrers.id"))
    """Referrer currently credited with the amount."""

    rebate_date: Mapped[date] = mapped_column(Date)
    """Ledger bucket of the transaction."""

    applied_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Rebate added when the contribution was (re)recorded."""

    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Part of applied_amount still in the ledger after refunds."""

    status: Mapped[str] = mapped_column(String(20), default=CONTRIBUTION_STATUS_ACTIVE)
    """'active' or 'reversed'."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the contribution was recorded."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the contribution was last adjusted."""

    # Relationships
    rebate_record = relationship("ReferrerRebate")
    """Relationship to the ledger row."""

    __table_args__ = (
        Index('idx_rebate_contributions_record', 'rebate_record_id'),
    )
