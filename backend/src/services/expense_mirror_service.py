"""
Service mirroring the rebate ledger into the expense ledger.

Each day with rebates owed has one synthetic expense voucher (payee
"Pure Health", no department). Under it, each referrer with a non-zero ledger
total for the day has exactly one pending expense item whose amount equals
that total. Items are linked to their ledger row by rebate_record_id.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from core.constants import (
    EXPENSE_ITEM_STATUS_PENDING,
    EXPENSE_STATUS_ACTIVE,
    REBATE_CATEGORY_NAME,
    REBATE_EXPENSE_PAYEE,
    REBATE_EXPENSE_PURPOSE,
    REBATE_VOUCHER_LOCK_NAMESPACE,
    ZERO_AMOUNT,
)
from models.category import Category
from models.expense import Expense
from models.expense_item import ExpenseItem
from models.referrer import Referrer
from models.referrer_rebate import ReferrerRebate
from services.rebate_errors import MirrorDesyncError
from utils.money_utils import quantize_money, to_decimal

logger = logging.getLogger(__name__)


class ExpenseMirrorService:
    """Service for rebate Expense/ExpenseItem operations."""

    @staticmethod
    def lock_rebate_date(db: Session, rebate_date: date) -> None:
        """
        Serialize writers of one date's rebate voucher until the enclosing
        database transaction ends.

        The voucher is shared by every referrer with rebates on the date, so the
        per-(referrer, date) ledger lock does not cover it. On PostgreSQL this
        is a transaction-scoped advisory lock on the date, which also covers
        creating the voucher. Other databases rely on the partial unique index
        on expenses(date) for rebate vouchers.
        """
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT pg_advisory_xact_lock(CAST(:namespace AS integer), CAST(:day AS integer))"),
                {"namespace": REBATE_VOUCHER_LOCK_NAMESPACE, "day": rebate_date.toordinal()}
            )

    @staticmethod
    def get_rebate_expense(db: Session, rebate_date: date, lock: bool = False) -> Optional[Expense]:
        """Get the rebate voucher for a date, if any."""
        query = db.query(Expense).filter(
            Expense.name == REBATE_EXPENSE_PAYEE,
            Expense.department_id.is_(None),
            Expense.expense_date == rebate_date
        )
        if lock:
            query = query.with_for_update()
        return query.order_by(Expense.id).first()

    @staticmethod
    def get_item_for_record(db: Session, rebate_record_id: int, lock: bool = False) -> Optional[ExpenseItem]:
        """Get the expense item mirroring a ledger row, if any."""
        query = db.query(ExpenseItem).filter(ExpenseItem.rebate_record_id == rebate_record_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_or_create_rebate_category(db: Session) -> Category:
        """Get the "Rebates" expense category, creating it on first use."""
        category = db.query(Category).filter(Category.name == REBATE_CATEGORY_NAME).first()
        if category is None:
            category = Category(name=REBATE_CATEGORY_NAME, status="active")
            db.add(category)
            db.flush()
            logger.info(f"Created expense category '{REBATE_CATEGORY_NAME}'")
        return category

    @staticmethod
    def _get_or_create_rebate_expense(db: Session, rebate_date: date, acting_user_id: Optional[int]) -> Expense:
        expense = ExpenseMirrorService.get_rebate_expense(db, rebate_date, lock=True)
        if expense is None:
            expense = Expense(
                name=REBATE_EXPENSE_PAYEE,
                department_id=None,
                expense_date=rebate_date,
                total_amount=ZERO_AMOUNT,
                user_id=acting_user_id,
                status=EXPENSE_STATUS_ACTIVE
            )
            db.add(expense)
            db.flush()
        return expense

    @staticmethod
    def verify_in_sync(db: Session, record: ReferrerRebate) -> Decimal:
        """
        Check that a ledger row and its mirrored item agree before writing to them.

        A missing item counts as zero, so a cancelled (zero) record with no item
        is in sync.

        Returns:
            The mirrored amount

        Raises:
            MirrorDesyncError: If the amounts differ
        """
        item = ExpenseMirrorService.get_item_for_record(db, record.id, lock=True)
        mirror_amount = to_decimal(item.amount) if item else ZERO_AMOUNT
        ledger_amount = to_decimal(record.total_rebate_amount)
        if mirror_amount != ledger_amount:
            logger.error(
                f"Rebate mirror desync for referrer {record.referrer_id} on {record.rebate_date.isoformat()}: "
                f"ledger={ledger_amount} mirror={mirror_amount} item={item.id if item else None}; "
                f"manual reconciliation required"
            )
            raise MirrorDesyncError(
                referrer_id=record.referrer_id,
                rebate_date=record.rebate_date,
                ledger_amount=ledger_amount,
                mirror_amount=mirror_amount,
                expense_item_id=item.id if item else None
            )
        return mirror_amount

    @staticmethod
    def add_or_increase(
        db: Session,
        record: ReferrerRebate,
        referrer: Referrer,
        rebate_date: date,
        amount: Decimal,
        acting_user_id: Optional[int] = None
    ) -> ExpenseItem:
        """
        Increase the referrer's rebate item for the date by amount.

        Creates the day's voucher and the referrer's item as needed; the voucher
        total grows by the same amount.
        """
        amount = quantize_money(amount)
        ExpenseMirrorService.lock_rebate_date(db, rebate_date)
        expense = ExpenseMirrorService._get_or_create_rebate_expense(db, rebate_date, acting_user_id)

        item = ExpenseMirrorService.get_item_for_record(db, record.id, lock=True)
        if item is None:
            category = ExpenseMirrorService.get_or_create_rebate_category(db)
            item = ExpenseItem(
                expense_id=expense.id,
                paid_to=referrer.payee_label,
                purpose=REBATE_EXPENSE_PURPOSE,
                amount=amount,
                status=EXPENSE_ITEM_STATUS_PENDING,
                category_id=category.id,
                rebate_record_id=record.id
            )
            db.add(item)
        else:
            item.amount = quantize_money(to_decimal(item.amount) + amount)

        expense.total_amount = quantize_money(to_decimal(expense.total_amount) + amount)
        db.flush()
        return item

    @staticmethod
    def decrease_or_remove(
        db: Session,
        record: ReferrerRebate,
        rebate_date: date,
        amount: Decimal
    ) -> Decimal:
        """
        Reduce the referrer's rebate item for the date by amount.

        No-op when the referrer has no item. The item is clamped at zero and
        deleted when it reaches zero; the voucher that owns the item drops by
        the same clamped delta, and is deleted once it has no items left.

        Returns:
            The amount actually removed from the item
        """
        amount = quantize_money(amount)
        ExpenseMirrorService.lock_rebate_date(db, rebate_date)

        item = ExpenseMirrorService.get_item_for_record(db, record.id, lock=True)
        if item is None:
            return ZERO_AMOUNT
        expense = db.query(Expense).filter(Expense.id == item.expense_id).with_for_update().one()

        current_amount = to_decimal(item.amount)
        new_amount = max(ZERO_AMOUNT, current_amount - amount)
        delta = current_amount - new_amount

        if new_amount == 0:
            db.delete(item)
        else:
            item.amount = new_amount

        expense.total_amount = max(ZERO_AMOUNT, quantize_money(to_decimal(expense.total_amount) - delta))
        db.flush()
        db.expire(expense, ["items"])

        remaining_items = db.query(func.count(ExpenseItem.id)).filter(
            ExpenseItem.expense_id == expense.id
        ).scalar()
        if not remaining_items:
            db.delete(expense)
            db.flush()
            logger.info(f"Removed empty rebate expense for {rebate_date.isoformat()}")

        return delta

    @staticmethod
    def rename_payee(
        db: Session,
        rebate_date: date,
        old_record: ReferrerRebate,
        new_record: ReferrerRebate,
        new_referrer: Referrer
    ) -> Optional[ExpenseItem]:
        """
        Hand an existing rebate item over to another referrer in place.

        The item keeps its id, amount and status; only its ledger link and
        payee label change. The voucher total is unaffected.

        Returns:
            The relabelled item, or None if the old record had no item
        """
        item = ExpenseMirrorService.get_item_for_record(db, old_record.id, lock=True)
        if item is None:
            return None

        old_label = item.paid_to
        item.rebate_record_id = new_record.id
        item.paid_to = new_referrer.payee_label
        db.flush()
        logger.info(
            f"Relabelled rebate expense item {item.id} on {rebate_date.isoformat()}: "
            f"{old_label} -> {item.paid_to}"
        )
        return item
