"""
Transaction model representing a patient's billed visit.

A transaction owns many test details. When it carries a referrer, the
revenue of its active test details generates a rebate for that referrer on
the calendar day of the transaction.
"""

from datetime import datetime
from typing import Optional, List

from sqlalchemy import String, ForeignKey, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Transaction(Base):
    """
    Transaction entity.

    The rebate engine only reads transactions: referrer_id, transaction_date
    and the test details. Status and referrer changes are made by the
    transaction-lifecycle layer, which then calls the rebate handlers.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the transaction."""

    first_name: Mapped[str] = mapped_column(String(255))
    """Patient first name."""

    last_name: Mapped[str] = mapped_column(String(255))
    """Patient last name."""

    referrer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("referrers.id", ondelete="RESTRICT"),
        nullable=True
    )
    """Referring physician. None for walk-in ("Out Patient") transactions."""

    transaction_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    """When the transaction happened. Its calendar day is the rebate bucket."""

    status: Mapped[str] = mapped_column(String(20), default="active")
    """Transaction status: 'active' or 'cancelled'."""

    user_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """User who entered the transaction."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the transaction was created."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the transaction was last updated."""

    # Relationships
    referrer = relationship("Referrer")
    """Relationship to the referring physician."""

    test_details: Mapped[List["TestDetail"]] = relationship(  # type: ignore[name-defined]
        "TestDetail",
        back_populates="transaction",
        order_by="TestDetail.id"
    )
    """Billed tests of this transaction."""

    __table_args__ = (
        Index('idx_transactions_referrer', 'referrer_id'),
        Index('idx_transactions_date', 'transaction_date'),
    )
