"""
Service for the per-(referrer, date) rebate ledger.

Every method runs inside the caller's unit of work and only flushes; the
rebate event handlers own the transaction boundary.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from core.constants import REBATE_STATUS_ACTIVE, ZERO_AMOUNT
from models.referrer import Referrer
from models.referrer_rebate import ReferrerRebate
from services.rebate_errors import InvalidAmountError, RebateRecordNotFoundError
from utils.money_utils import is_valid_amount, quantize_money, to_decimal

logger = logging.getLogger(__name__)


def _validated_amount(amount: Decimal, context: str) -> Decimal:
    value = to_decimal(amount)
    if not is_valid_amount(value):
        raise InvalidAmountError(value, context)
    return quantize_money(value)


class RebateLedgerService:
    """Service for ReferrerRebate operations."""

    @staticmethod
    def lock_rebate_key(db: Session, referrer_id: int, rebate_date: date) -> None:
        """
        Serialize rebate writers for one (referrer, date) pair until the
        enclosing database transaction ends.

        PostgreSQL gets a transaction-scoped advisory lock on exactly that pair,
        which also covers the first insert when no ledger row exists yet. Other
        databases fall back to locking the referrer row.
        """
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            db.execute(
                text("SELECT pg_advisory_xact_lock(CAST(:referrer_id AS integer), CAST(:day AS integer))"),
                {"referrer_id": referrer_id, "day": rebate_date.toordinal()}
            )
        else:
            db.query(Referrer).filter(Referrer.id == referrer_id).with_for_update().first()

    @staticmethod
    def get_record(
        db: Session,
        referrer_id: int,
        rebate_date: date,
        lock: bool = False
    ) -> Optional[ReferrerRebate]:
        """
        Get the ledger row for a referrer and date.

        Args:
            db: Database session
            referrer_id: ID of the referrer
            rebate_date: Ledger bucket
            lock: Take a row lock (SELECT ... FOR UPDATE)

        Returns:
            The record, or None if no rebate was ever recorded for the pair
        """
        query = db.query(ReferrerRebate).filter(
            ReferrerRebate.referrer_id == referrer_id,
            ReferrerRebate.rebate_date == rebate_date
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def upsert_add(
        db: Session,
        referrer: Referrer,
        rebate_date: date,
        amount: Decimal
    ) -> ReferrerRebate:
        """
        Add a transaction's rebate to the referrer's ledger row for the date.

        Creates the row on first use (count 1, name snapshot from the referrer),
        otherwise increases the total and the transaction count.

        Raises:
            InvalidAmountError: If amount is negative or not finite
        """
        amount = _validated_amount(amount, f"add for referrer {referrer.id}")

        record = RebateLedgerService.get_record(db, referrer.id, rebate_date, lock=True)
        if record is None:
            record = ReferrerRebate(
                referrer_id=referrer.id,
                first_name=referrer.first_name,
                last_name=referrer.last_name,
                rebate_date=rebate_date,
                total_rebate_amount=amount,
                transaction_count=1,
                status=REBATE_STATUS_ACTIVE
            )
            record.refresh_status()
            db.add(record)
        else:
            record.total_rebate_amount = quantize_money(to_decimal(record.total_rebate_amount) + amount)
            record.transaction_count = record.transaction_count + 1
            record.refresh_status()

        db.flush()
        return record

    @staticmethod
    def deduct(
        db: Session,
        referrer_id: int,
        rebate_date: date,
        amount: Decimal,
        count_transaction: bool = True
    ) -> Decimal:
        """
        Remove rebate from a referrer's ledger row for the date.

        The total is clamped at zero. The clamp only guards the non-negativity
        invariant; when it engages, something upstream deducted more than was
        added, so it is logged.

        Args:
            db: Database session
            referrer_id: ID of the referrer
            rebate_date: Ledger bucket
            amount: Rebate to remove
            count_transaction: Also decrement transaction_count (full reversals).
                Partial refunds keep the transaction counted.

        Returns:
            The amount actually removed from the total

        Raises:
            InvalidAmountError: If amount is negative or not finite
            RebateRecordNotFoundError: If no ledger row exists for the pair
        """
        amount = _validated_amount(amount, f"deduct for referrer {referrer_id}")

        record = RebateLedgerService.get_record(db, referrer_id, rebate_date, lock=True)
        if record is None:
            raise RebateRecordNotFoundError(referrer_id, rebate_date)

        current_total = to_decimal(record.total_rebate_amount)
        if amount > current_total:
            logger.warning(
                f"Rebate deduction of {amount} exceeds balance {current_total} for referrer "
                f"{referrer_id} on {rebate_date.isoformat()}; clamping to zero"
            )

        new_total = max(ZERO_AMOUNT, current_total - amount)
        record.total_rebate_amount = new_total
        if count_transaction:
            record.transaction_count = max(0, record.transaction_count - 1)
        record.refresh_status()

        db.flush()
        return current_total - new_total
