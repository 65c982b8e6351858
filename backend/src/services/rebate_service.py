"""
Service reconciling referrer rebates with transaction lifecycle events.

A referred transaction puts 20% of its active department revenue into the
referrer's ledger row for the transaction's day, and the same amount into the
referrer's rebate expense item for that day. Four events move that amount:

- creation records it
- cancellation reverses it
- a partial refund reverses the refunded tests' share
- a referrer change moves it from one referrer to another

Each handler is one unit of work: it runs inside a savepoint, takes the
transaction row lock and the per-(referrer, date) rebate lock(s) first, checks
that the ledger and the expense mirror agree, and then writes both. Any
failure rolls the savepoint back and propagates; the caller commits.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from core.constants import (
    ACTIVITY_REBATE_REASSIGNED,
    ACTIVITY_REBATE_RECORDED,
    ACTIVITY_REBATE_REFUNDED,
    ACTIVITY_REBATE_REVERSED,
    ACTIVITY_RESOURCE_TRANSACTION,
    CONTRIBUTION_STATUS_ACTIVE,
    CONTRIBUTION_STATUS_REVERSED,
    TEST_DETAIL_STATUS_REFUNDED,
    ZERO_AMOUNT,
)
from models.rebate_contribution import RebateContribution
from models.referrer import Referrer
from models.referrer_rebate import ReferrerRebate
from models.test_detail import TestDetail
from models.transaction import Transaction
from services.activity_log_service import ActivityLogService
from services.expense_mirror_service import ExpenseMirrorService
from services.rebate_calculator import calculate_rebate
from services.rebate_errors import (
    InvalidAmountError,
    RebateRecordNotFoundError,
    ReferrerNotFoundError,
    TransactionNotFoundError,
)
from services.rebate_ledger_service import RebateLedgerService
from services.rebate_types import RebateAdjustment
from utils.datetime_utils import to_rebate_date
from utils.money_utils import is_valid_amount, quantize_money, to_decimal

logger = logging.getLogger(__name__)


class RebateService:
    """Rebate event handlers for the transaction-lifecycle layer."""

    # ===== Event handlers =====

    @staticmethod
    def on_transaction_created(
        db: Session,
        transaction: Transaction,
        active_test_details: Iterable[TestDetail],
        acting_user_id: Optional[int] = None
    ) -> RebateAdjustment:
        """
        Record the rebate of a newly created transaction.

        No-op when the transaction has no referrer, when its active revenue is
        zero, or when its rebate was already recorded.

        Args:
            db: Database session (the caller commits)
            transaction: Flushed transaction row
            active_test_details: The transaction's test details; non-active ones are ignored
            acting_user_id: User creating the transaction, for audit attribution

        Returns:
            RebateAdjustment describing what was recorded

        Raises:
            InvalidAmountError: If the computed rebate is negative or not finite
            ReferrerNotFoundError: If the transaction's referrer does not exist
            MirrorDesyncError: If the day's ledger row and expense item disagree
        """
        if transaction.referrer_id is None:
            return RebateAdjustment.noop(transaction.id)

        amount = RebateService._rebate_amount(active_test_details, active_only=True)
        rebate_date = to_rebate_date(transaction.transaction_date)
        if amount == 0:
            return RebateAdjustment.noop(transaction.id, rebate_date)

        with db.begin_nested():
            locked = RebateService._lock_transaction(db, transaction.id)
            referrer = RebateService._get_referrer(db, locked.referrer_id)  # type: ignore[arg-type]

            contribution = RebateService._get_contribution(db, locked.id)
            if contribution is not None and contribution.status == CONTRIBUTION_STATUS_ACTIVE:
                logger.warning(
                    f"Rebate for transaction {locked.id} already recorded "
                    f"({contribution.remaining_amount}); ignoring duplicate creation event"
                )
                return RebateAdjustment.noop(locked.id, rebate_date)

            RebateLedgerService.lock_rebate_key(db, referrer.id, rebate_date)
            record = RebateService._credit(db, referrer, rebate_date, amount, acting_user_id)
            RebateService._save_contribution(db, locked.id, record, amount, contribution)

            ActivityLogService.log_activity(
                db,
                user_id=acting_user_id,
                action=ACTIVITY_REBATE_RECORDED,
                resource_type=ACTIVITY_RESOURCE_TRANSACTION,
                resource_id=locked.id,
                details=f"Rebate of {amount} recorded for {referrer.payee_label} on {rebate_date.isoformat()}"
            )

        logger.info(f"Rebate recorded for {referrer.full_name} on {rebate_date.isoformat()}: {amount}")
        return RebateAdjustment(
            applied=True,
            action="recorded",
            transaction_id=transaction.id,
            rebate_date=rebate_date,
            amount=amount,
            referrer_id=referrer.id
        )

    @staticmethod
    def on_transaction_cancelled(
        db: Session,
        transaction_id: int,
        acting_user_id: Optional[int] = None
    ) -> RebateAdjustment:
        """
        Reverse the rebate of a cancelled transaction.

        Deducts the rebate the transaction still holds in the ledger (what was
        recorded at creation less refunds already deducted) from the ledger and
        the expense mirror, and decrements the day's transaction count.

        Raises:
            TransactionNotFoundError: If the transaction does not exist
            RebateRecordNotFoundError: If the transaction has rebate but the ledger has no row
            MirrorDesyncError: If the day's ledger row and expense item disagree
        """
        with db.begin_nested():
            transaction = RebateService._lock_transaction(db, transaction_id)
            rebate_date = to_rebate_date(transaction.transaction_date)
            contribution = RebateService._get_contribution(db, transaction.id)

            referrer_id = contribution.referrer_id if contribution is not None else transaction.referrer_id
            if referrer_id is None:
                return RebateAdjustment.noop(transaction.id, rebate_date)
            if contribution is not None and contribution.status == CONTRIBUTION_STATUS_REVERSED:
                logger.info(f"Rebate for transaction {transaction.id} already reversed")
                return RebateAdjustment.noop(transaction.id, rebate_date)

            amount = RebateService._credited_amount(transaction, contribution)
            if amount == 0 and contribution is None:
                return RebateAdjustment.noop(transaction.id, rebate_date)

            RebateLedgerService.lock_rebate_key(db, referrer_id, rebate_date)
            record, removed = RebateService._debit(db, referrer_id, rebate_date, amount, count_transaction=True)
            RebateService._close_contribution(db, transaction.id, record, removed, contribution)

            ActivityLogService.log_activity(
                db,
                user_id=acting_user_id,
                action=ACTIVITY_REBATE_REVERSED,
                resource_type=ACTIVITY_RESOURCE_TRANSACTION,
                resource_id=transaction.id,
                details=f"Rebate of {removed} reversed for referrer {referrer_id} on {rebate_date.isoformat()}"
            )

        logger.info(f"Rebate reversed for cancelled transaction {transaction_id} (referrer {referrer_id}): {removed}")
        return RebateAdjustment(
            applied=True,
            action="reversed",
            transaction_id=transaction_id,
            rebate_date=rebate_date,
            amount=removed,
            referrer_id=referrer_id
        )

    @staticmethod
    def on_test_details_refunded(
        db: Session,
        transaction_id: int,
        refunded_test_details: Sequence[TestDetail],
        acting_user_id: Optional[int] = None
    ) -> RebateAdjustment:
        """
        Reverse the rebate share of newly refunded tests.

        Only the refunded subset's rebate is deducted; the transaction stays
        counted on the day.

        Args:
            db: Database session (the caller commits)
            transaction_id: Transaction the tests belong to
            refunded_test_details: The tests refunded by this event (their
                status may already be 'refunded')
            acting_user_id: User processing the refund

        Raises:
            ValueError: If a refunded test belongs to another transaction
            TransactionNotFoundError: If the transaction does not exist
            RebateRecordNotFoundError: If the ledger has no row for the transaction's day
            MirrorDesyncError: If the day's ledger row and expense item disagree
        """
        foreign = [test.id for test in refunded_test_details if test.transaction_id != transaction_id]
        if foreign:
            raise ValueError(f"Test details {foreign} do not belong to transaction {transaction_id}")

        amount = RebateService._rebate_amount(refunded_test_details, active_only=False)

        with db.begin_nested():
            transaction = RebateService._lock_transaction(db, transaction_id)
            rebate_date = to_rebate_date(transaction.transaction_date)
            contribution = RebateService._get_contribution(db, transaction.id)

            referrer_id = contribution.referrer_id if contribution is not None else transaction.referrer_id
            if referrer_id is None or amount == 0:
                return RebateAdjustment.noop(transaction.id, rebate_date)
            if contribution is not None:
                if contribution.status == CONTRIBUTION_STATUS_REVERSED:
                    logger.info(f"Refund on transaction {transaction.id} after its rebate was reversed; nothing to deduct")
                    return RebateAdjustment.noop(transaction.id, rebate_date)
                remaining = to_decimal(contribution.remaining_amount)
                if amount > remaining:
                    logger.warning(
                        f"Refund rebate {amount} exceeds the {remaining} transaction {transaction.id} "
                        f"still holds; deducting {remaining}"
                    )
                    amount = remaining
                if amount == 0:
                    return RebateAdjustment.noop(transaction.id, rebate_date)

            RebateLedgerService.lock_rebate_key(db, referrer_id, rebate_date)
            record, removed = RebateService._debit(db, referrer_id, rebate_date, amount, count_transaction=False)
            if contribution is None:
                RebateService._adopt_refunded_contribution(db, transaction, record, removed)
            else:
                contribution.remaining_amount = max(
                    ZERO_AMOUNT, to_decimal(contribution.remaining_amount) - removed
                )
                db.flush()

            ActivityLogService.log_activity(
                db,
                user_id=acting_user_id,
                action=ACTIVITY_REBATE_REFUNDED,
                resource_type=ACTIVITY_RESOURCE_TRANSACTION,
                resource_id=transaction.id,
                details=(
                    f"Rebate reduced by {removed} for {len(refunded_test_details)} refunded test(s), "
                    f"referrer {referrer_id} on {rebate_date.isoformat()}"
                )
            )

        logger.info(f"Rebate reduced for refunded tests on transaction {transaction_id} (referrer {referrer_id}): {removed}")
        return RebateAdjustment(
            applied=True,
            action="refunded",
            transaction_id=transaction_id,
            rebate_date=rebate_date,
            amount=removed,
            referrer_id=referrer_id
        )

    @staticmethod
    def on_referrer_changed(
        db: Session,
        transaction_id: int,
        old_referrer_id: Optional[int],
        new_referrer_id: Optional[int],
        acting_user_id: Optional[int] = None
    ) -> RebateAdjustment:
        """
        Move a transaction's rebate to its new referrer.

        - old -> None: the old referrer loses the transaction's rebate
        - None -> new: the new referrer gains the rebate of the active tests
        - old -> new: the amount moves; when the old referrer's expense item
          for the day holds exactly this transaction's rebate and the new
          referrer has no item yet, the item is relabelled in place instead of
          being deleted and recreated

        Raises:
            TransactionNotFoundError: If the transaction does not exist
            ReferrerNotFoundError: If the new referrer does not exist
            RebateRecordNotFoundError: If the old referrer has no ledger row for the day
            MirrorDesyncError: If a ledger row and its expense item disagree
        """
        if old_referrer_id == new_referrer_id:
            return RebateAdjustment.noop(transaction_id)

        with db.begin_nested():
            transaction = RebateService._lock_transaction(db, transaction_id)
            rebate_date = to_rebate_date(transaction.transaction_date)
            contribution = RebateService._get_contribution(db, transaction.id)

            if contribution is not None and contribution.status == CONTRIBUTION_STATUS_ACTIVE \
                    and contribution.referrer_id != old_referrer_id:
                logger.warning(
                    f"Transaction {transaction.id} rebate is credited to referrer {contribution.referrer_id}, "
                    f"not {old_referrer_id}; moving it from the credited referrer"
                )
                old_referrer_id = contribution.referrer_id
                if old_referrer_id == new_referrer_id:
                    return RebateAdjustment.noop(transaction.id, rebate_date)

            if old_referrer_id is not None:
                amount = RebateService._credited_amount(transaction, contribution)
            else:
                amount = RebateService._rebate_amount(transaction.test_details, active_only=True)

            if amount == 0:
                return RebateAdjustment.noop(transaction.id, rebate_date)

            new_referrer = RebateService._get_referrer(db, new_referrer_id) if new_referrer_id is not None else None

            keys = [key for key in (old_referrer_id, new_referrer_id) if key is not None]
            for referrer_id in sorted(keys):
                RebateLedgerService.lock_rebate_key(db, referrer_id, rebate_date)

            relabelled = False
            if old_referrer_id is None:
                assert new_referrer is not None
                record = RebateService._credit(db, new_referrer, rebate_date, amount, acting_user_id)
                RebateService._save_contribution(db, transaction.id, record, amount, contribution)
                moved = amount
            elif new_referrer is None:
                record, moved = RebateService._debit(db, old_referrer_id, rebate_date, amount, count_transaction=True)
                RebateService._close_contribution(db, transaction.id, record, moved, contribution)
            else:
                moved, relabelled = RebateService._transfer(
                    db, old_referrer_id, new_referrer, rebate_date, amount, contribution, transaction.id, acting_user_id
                )

            ActivityLogService.log_activity(
                db,
                user_id=acting_user_id,
                action=ACTIVITY_REBATE_REASSIGNED,
                resource_type=ACTIVITY_RESOURCE_TRANSACTION,
                resource_id=transaction.id,
                details=(
                    f"Rebate of {moved} moved from referrer {old_referrer_id} to referrer "
                    f"{new_referrer_id} on {rebate_date.isoformat()}"
                )
            )

        logger.info(
            f"Rebate for transaction {transaction_id} moved from referrer {old_referrer_id} "
            f"to {new_referrer_id}: {moved}"
        )
        return RebateAdjustment(
            applied=True,
            action="reassigned",
            transaction_id=transaction_id,
            rebate_date=rebate_date,
            amount=moved,
            referrer_id=new_referrer_id,
            previous_referrer_id=old_referrer_id,
            relabelled_in_place=relabelled
        )

    # ===== Steps =====

    @staticmethod
    def _credit(
        db: Session,
        referrer: Referrer,
        rebate_date: date,
        amount: Decimal,
        acting_user_id: Optional[int]
    ) -> ReferrerRebate:
        """Add amount to the referrer's ledger row and mirrored item for the day."""
        existing = RebateLedgerService.get_record(db, referrer.id, rebate_date, lock=True)
        if existing is not None:
            ExpenseMirrorService.verify_in_sync(db, existing)

        record = RebateLedgerService.upsert_add(db, referrer, rebate_date, amount)
        ExpenseMirrorService.add_or_increase(db, record, referrer, rebate_date, amount, acting_user_id)
        ExpenseMirrorService.verify_in_sync(db, record)
        return record

    @staticmethod
    def _debit(
        db: Session,
        referrer_id: int,
        rebate_date: date,
        amount: Decimal,
        count_transaction: bool
    ) -> Tuple[ReferrerRebate, Decimal]:
        """
        Remove amount from the referrer's ledger row and mirrored item for the day.

        Returns:
            (the ledger row, amount actually removed)
        """
        record = RebateLedgerService.get_record(db, referrer_id, rebate_date, lock=True)
        if record is None:
            raise RebateRecordNotFoundError(referrer_id, rebate_date)
        ExpenseMirrorService.verify_in_sync(db, record)

        removed = RebateLedgerService.deduct(
            db, referrer_id, rebate_date, amount, count_transaction=count_transaction
        )
        ExpenseMirrorService.decrease_or_remove(db, record, rebate_date, removed)
        ExpenseMirrorService.verify_in_sync(db, record)
        return record, removed

    @staticmethod
    def _transfer(
        db: Session,
        old_referrer_id: int,
        new_referrer: Referrer,
        rebate_date: date,
        amount: Decimal,
        contribution: Optional[RebateContribution],
        transaction_id: int,
        acting_user_id: Optional[int]
    ) -> Tuple[Decimal, bool]:
        """
        Move amount between two referrers on the same day.

        Returns:
            (amount moved, whether the expense item was relabelled in place)
        """
        old_record = RebateLedgerService.get_record(db, old_referrer_id, rebate_date, lock=True)
        if old_record is None:
            raise RebateRecordNotFoundError(old_referrer_id, rebate_date)
        ExpenseMirrorService.verify_in_sync(db, old_record)

        new_record = RebateLedgerService.get_record(db, new_referrer.id, rebate_date, lock=True)
        if new_record is not None:
            ExpenseMirrorService.verify_in_sync(db, new_record)

        old_item = ExpenseMirrorService.get_item_for_record(db, old_record.id)
        new_item = ExpenseMirrorService.get_item_for_record(db, new_record.id) if new_record is not None else None
        relabel = (
            old_item is not None
            and new_item is None
            and to_decimal(old_item.amount) == amount
        )

        moved = RebateLedgerService.deduct(db, old_referrer_id, rebate_date, amount, count_transaction=True)
        new_record = RebateLedgerService.upsert_add(db, new_referrer, rebate_date, moved)

        if relabel and moved == amount:
            ExpenseMirrorService.rename_payee(db, rebate_date, old_record, new_record, new_referrer)
        else:
            relabel = False
            ExpenseMirrorService.decrease_or_remove(db, old_record, rebate_date, moved)
            ExpenseMirrorService.add_or_increase(db, new_record, new_referrer, rebate_date, moved, acting_user_id)

        ExpenseMirrorService.verify_in_sync(db, old_record)
        ExpenseMirrorService.verify_in_sync(db, new_record)
        RebateService._save_contribution(db, transaction_id, new_record, moved, contribution)
        return moved, relabel

    # ===== Helpers =====

    @staticmethod
    def _lock_transaction(db: Session, transaction_id: int) -> Transaction:
        transaction = db.query(Transaction).filter(
            Transaction.id == transaction_id
        ).with_for_update().first()
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    @staticmethod
    def _get_referrer(db: Session, referrer_id: int) -> Referrer:
        referrer = db.query(Referrer).filter(Referrer.id == referrer_id).first()
        if referrer is None:
            raise ReferrerNotFoundError(referrer_id)
        return referrer

    @staticmethod
    def _get_contribution(db: Session, transaction_id: int) -> Optional[RebateContribution]:
        return db.query(RebateContribution).filter(
            RebateContribution.transaction_id == transaction_id
        ).with_for_update().first()

    @staticmethod
    def _rebate_amount(test_details: Iterable[TestDetail], active_only: bool) -> Decimal:
        """Rebate of the given tests, rounded to cents."""
        total = calculate_rebate(test_details, active_only=active_only).total
        if not is_valid_amount(total):
            raise InvalidAmountError(total, "computed rebate")
        return quantize_money(total)

    @staticmethod
    def _credited_amount(
        transaction: Transaction,
        contribution: Optional[RebateContribution]
    ) -> Decimal:
        """
        Rebate the transaction currently holds in the ledger.

        Uses the amount cached at creation (less refunds) when available. The
        amount recomputed from the non-refunded tests is the fallback for
        transactions recorded without a contribution row, and a drift check
        otherwise.
        """
        non_refunded: List[TestDetail] = [
            test for test in transaction.test_details if test.status != TEST_DETAIL_STATUS_REFUNDED
        ]
        recomputed = RebateService._rebate_amount(non_refunded, active_only=False)
        if contribution is None:
            return recomputed

        cached = to_decimal(contribution.remaining_amount)
        if cached != recomputed:
            logger.warning(
                f"Rebate drift on transaction {transaction.id}: recorded {cached}, "
                f"recomputed {recomputed} from current test details; using recorded amount"
            )
        return cached

    @staticmethod
    def _save_contribution(
        db: Session,
        transaction_id: int,
        record: ReferrerRebate,
        amount: Decimal,
        contribution: Optional[RebateContribution]
    ) -> RebateContribution:
        if contribution is None:
            contribution = RebateContribution(transaction_id=transaction_id)
            db.add(contribution)
        contribution.rebate_record_id = record.id
        contribution.referrer_id = record.referrer_id
        contribution.rebate_date = record.rebate_date
        contribution.applied_amount = amount
        contribution.remaining_amount = amount
        contribution.status = CONTRIBUTION_STATUS_ACTIVE
        db.flush()
        return contribution

    @staticmethod
    def _close_contribution(
        db: Session,
        transaction_id: int,
        record: ReferrerRebate,
        removed: Decimal,
        contribution: Optional[RebateContribution]
    ) -> RebateContribution:
        """
        Mark the transaction's rebate as reversed.

        Transactions recorded without a contribution row get a reversed one
        here, so a repeated cancellation is a no-op instead of a second
        deduction.
        """
        if contribution is None:
            contribution = RebateContribution(
                transaction_id=transaction_id,
                rebate_record_id=record.id,
                referrer_id=record.referrer_id,
                rebate_date=record.rebate_date,
                applied_amount=removed
            )
            db.add(contribution)
        contribution.remaining_amount = ZERO_AMOUNT
        contribution.status = CONTRIBUTION_STATUS_REVERSED
        db.flush()
        return contribution

    @staticmethod
    def _adopt_refunded_contribution(
        db: Session,
        transaction: Transaction,
        record: ReferrerRebate,
        removed: Decimal
    ) -> RebateContribution:
        """Start tracking a transaction recorded without a contribution row, after a refund."""
        remaining = RebateService._credited_amount(transaction, None)
        contribution = RebateService._save_contribution(db, transaction.id, record, remaining, None)
        contribution.applied_amount = remaining + removed
        db.flush()
        return contribution
