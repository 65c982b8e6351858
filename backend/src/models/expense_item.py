"""
ExpenseItem model: a payable line of an expense voucher.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import EXPENSE_ITEM_STATUS_PENDING
from core.database import Base


class ExpenseItem(Base):
    """
    Expense line item.

    Rebate items are linked to their ledger row through rebate_record_id (one
    item per ReferrerRebate). paid_to/purpose are display labels only and are
    never used to look a rebate item up.
    """

    __tablename__ = "expense_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the expense item."""

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE")
    )
    """Owning expense voucher."""

    paid_to: Mapped[str] = mapped_column(String(255))
    """Payee label, e.g. "Dr. Cruz"."""

    purpose: Mapped[str] = mapped_column(String(255))
    """What the payment is for."""

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Amount payable."""

    status: Mapped[str] = mapped_column(String(20), default=EXPENSE_ITEM_STATUS_PENDING)
    """'pending', 'paid' or 'refunded'."""

    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True
    )
    """Expense category."""

    rebate_record_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("referrer_rebates.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True
    )
    """Ledger row this item mirrors. None for ordinary expense items."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the item was created."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the item was last updated."""

    # Relationships
    expense = relationship("Expense", back_populates="items")
    """Relationship to the owning expense."""

    category = relationship("Category")
    """Relationship to the category."""

    rebate_record = relationship("ReferrerRebate")
    """Relationship to the mirrored ledger row."""

    __table_args__ = (
        Index('idx_expense_items_expense', 'expense_id'),
    )
