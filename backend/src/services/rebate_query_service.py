"""
Read-side queries over the rebate ledger.

Listings and summaries only ever include active (non-zero) records; zero
records are kept for history but are not reported.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.constants import REBATE_STATUS_ACTIVE, ZERO_AMOUNT
from models.expense_item import ExpenseItem
from models.referrer_rebate import ReferrerRebate
from services.expense_mirror_service import ExpenseMirrorService
from services.rebate_types import (
    DailyRebateMirrorReport,
    MirrorDiscrepancy,
    MonthlyRebateSummary,
)
from utils.datetime_utils import month_bounds
from utils.money_utils import quantize_money, to_decimal

logger = logging.getLogger(__name__)


class RebateQueryService:
    """Service for rebate reports."""

    @staticmethod
    def get_rebates_by_date_range(
        db: Session,
        start_date: date,
        end_date: date,
        referrer_id: Optional[int] = None
    ) -> List[ReferrerRebate]:
        """
        Get active rebate records between two dates, inclusive.

        Args:
            db: Database session
            start_date: First day of the range
            end_date: Last day of the range
            referrer_id: Restrict to one referrer

        Returns:
            Records ordered by date (newest first), then amount (largest first)

        Raises:
            ValueError: If start_date is after end_date
        """
        if start_date > end_date:
            raise ValueError(f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}")

        query = db.query(ReferrerRebate).filter(
            ReferrerRebate.rebate_date >= start_date,
            ReferrerRebate.rebate_date <= end_date,
            ReferrerRebate.status == REBATE_STATUS_ACTIVE
        )
        if referrer_id is not None:
            query = query.filter(ReferrerRebate.referrer_id == referrer_id)

        return query.order_by(
            ReferrerRebate.rebate_date.desc(),
            ReferrerRebate.total_rebate_amount.desc()
        ).all()

    @staticmethod
    def get_rebates_by_referrer(
        db: Session,
        referrer_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[ReferrerRebate]:
        """Get a referrer's active rebate records, newest first."""
        query = db.query(ReferrerRebate).filter(
            ReferrerRebate.referrer_id == referrer_id,
            ReferrerRebate.status == REBATE_STATUS_ACTIVE
        )
        if start_date is not None:
            query = query.filter(ReferrerRebate.rebate_date >= start_date)
        if end_date is not None:
            query = query.filter(ReferrerRebate.rebate_date <= end_date)
        return query.order_by(ReferrerRebate.rebate_date.desc()).all()

    @staticmethod
    def get_monthly_rebate_summary(db: Session, month: int, year: int) -> MonthlyRebateSummary:
        """
        Summarize the active rebate records of a month.

        Raises:
            ValueError: If month is not between 1 and 12
        """
        start_date, end_date = month_bounds(month, year)

        total_rebates, total_records, total_transactions = db.query(
            func.coalesce(func.sum(ReferrerRebate.total_rebate_amount), 0),
            func.count(ReferrerRebate.id),
            func.coalesce(func.sum(ReferrerRebate.transaction_count), 0)
        ).filter(
            ReferrerRebate.rebate_date >= start_date,
            ReferrerRebate.rebate_date <= end_date,
            ReferrerRebate.status == REBATE_STATUS_ACTIVE
        ).one()

        return MonthlyRebateSummary(
            month=month,
            year=year,
            total_rebates=quantize_money(to_decimal(total_rebates)),
            total_records=int(total_records or 0),
            total_transactions=int(total_transactions or 0)
        )

    @staticmethod
    def find_mirror_discrepancies(db: Session, rebate_date: date) -> DailyRebateMirrorReport:
        """
        Compare one day's rebate ledger with its expense mirror.

        Reports ledger rows whose item is missing or disagrees, items under the
        day's rebate voucher with no matching ledger row, and a voucher total
        that is not the sum of its items. Read-only; nothing is repaired.
        """
        records = db.query(ReferrerRebate).filter(
            ReferrerRebate.rebate_date == rebate_date
        ).order_by(ReferrerRebate.id).all()
        expense = ExpenseMirrorService.get_rebate_expense(db, rebate_date)

        items: List[ExpenseItem] = []
        if expense is not None:
            items = db.query(ExpenseItem).filter(
                ExpenseItem.expense_id == expense.id
            ).order_by(ExpenseItem.id).all()
        items_by_record: Dict[int, ExpenseItem] = {
            item.rebate_record_id: item for item in items if item.rebate_record_id is not None
        }

        discrepancies: List[MirrorDiscrepancy] = []
        ledger_total = ZERO_AMOUNT
        record_ids = set()

        for record in records:
            record_ids.add(record.id)
            ledger_amount = to_decimal(record.total_rebate_amount)
            ledger_total += ledger_amount
            item = items_by_record.get(record.id)

            if item is None:
                if ledger_amount != 0:
                    discrepancies.append(MirrorDiscrepancy(
                        kind="missing_item",
                        rebate_date=rebate_date,
                        referrer_id=record.referrer_id,
                        rebate_record_id=record.id,
                        expense_id=expense.id if expense else None,
                        ledger_amount=ledger_amount,
                        mirror_amount=ZERO_AMOUNT
                    ))
                continue

            mirror_amount = to_decimal(item.amount)
            if mirror_amount != ledger_amount:
                discrepancies.append(MirrorDiscrepancy(
                    kind="amount_mismatch",
                    rebate_date=rebate_date,
                    referrer_id=record.referrer_id,
                    rebate_record_id=record.id,
                    expense_id=item.expense_id,
                    expense_item_id=item.id,
                    ledger_amount=ledger_amount,
                    mirror_amount=mirror_amount
                ))

        for item in items:
            if item.rebate_record_id is None or item.rebate_record_id not in record_ids:
                discrepancies.append(MirrorDiscrepancy(
                    kind="orphaned_item",
                    rebate_date=rebate_date,
                    rebate_record_id=item.rebate_record_id,
                    expense_id=item.expense_id,
                    expense_item_id=item.id,
                    mirror_amount=to_decimal(item.amount)
                ))

        mirror_total = sum((to_decimal(item.amount) for item in items), Decimal("0"))
        if expense is not None and to_decimal(expense.total_amount) != mirror_total:
            discrepancies.append(MirrorDiscrepancy(
                kind="expense_total_mismatch",
                rebate_date=rebate_date,
                expense_id=expense.id,
                ledger_amount=mirror_total,
                mirror_amount=to_decimal(expense.total_amount)
            ))

        if discrepancies:
            logger.warning(
                f"Rebate mirror for {rebate_date.isoformat()} has {len(discrepancies)} discrepancy(ies)"
            )

        return DailyRebateMirrorReport(
            rebate_date=rebate_date,
            ledger_total=quantize_money(ledger_total),
            mirror_total=quantize_money(mirror_total),
            discrepancies=discrepancies
        )
