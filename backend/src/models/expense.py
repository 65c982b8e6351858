"""
Expense model: a dated expense voucher owning one or more expense items.

Rebates payable for a day are mirrored into a synthetic expense with the
payee name "Pure Health" and no department; see ExpenseMirrorService.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, Numeric, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import EXPENSE_STATUS_ACTIVE, REBATE_EXPENSE_PAYEE
from core.database import Base


class Expense(Base):
    """
    Expense voucher.

    total_amount is denormalized and must equal the sum of its items' amounts.
    """

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the expense."""

    name: Mapped[str] = mapped_column(String(255))
    """Payee name of the voucher."""

    department_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("departments.id"),
        nullable=True
    )
    """Department charged. None for rebate vouchers."""

    expense_date: Mapped[date] = mapped_column("date", Date)
    """Expense date."""

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    """Sum of the items' amounts."""

    user_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """User who created the expense."""

    status: Mapped[str] = mapped_column(String(20), default=EXPENSE_STATUS_ACTIVE)
    """Expense status."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the expense was created."""

    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the expense was last updated."""

    # Relationships
    items: Mapped[List["ExpenseItem"]] = relationship(  # type: ignore[name-defined]
        "ExpenseItem",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseItem.id"
    )
    """Line items of this expense."""

    __table_args__ = (
        Index('idx_expenses_date', 'date'),
        Index('idx_expenses_department', 'department_id'),
        # At most one rebate voucher per date
        Index(
            'uq_expenses_rebate_voucher_date',
            'date',
            unique=True,
            postgresql_where=text(f"name = '{REBATE_EXPENSE_PAYEE}' AND department_id IS NULL"),
            sqlite_where=text(f"name = '{REBATE_EXPENSE_PAYEE}' AND department_id IS NULL"),
        ),
    )
