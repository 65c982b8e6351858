"""
Exceptions raised by the referrer rebate ledger.

Every one of these aborts the handler's unit of work; the caller (the
transaction-lifecycle layer) decides what to show the user.
"""

from datetime import date
from decimal import Decimal
from typing import Optional


class RebateLedgerError(Exception):
    """Base class for rebate ledger failures."""
    pass


class InvalidAmountError(RebateLedgerError, ValueError):
    """Exception raised when a rebate amount is negative or not finite."""

    def __init__(self, amount: Decimal, context: str = ""):
        self.amount = amount
        message = f"Invalid rebate amount: {amount}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class RebateRecordNotFoundError(RebateLedgerError):
    """Exception raised when a deduction targets a (referrer, date) with no ledger row."""

    def __init__(self, referrer_id: int, rebate_date: date):
        self.referrer_id = referrer_id
        self.rebate_date = rebate_date
        super().__init__(
            f"No rebate record for referrer {referrer_id} on {rebate_date.isoformat()}"
        )


class MirrorDesyncError(RebateLedgerError):
    """
    Exception raised when a rebate expense item no longer matches its ledger row.

    Detected before any write; the mismatch must be reconciled by hand rather
    than overwritten.
    """

    def __init__(
        self,
        referrer_id: int,
        rebate_date: date,
        ledger_amount: Decimal,
        mirror_amount: Decimal,
        expense_item_id: Optional[int] = None
    ):
        self.referrer_id = referrer_id
        self.rebate_date = rebate_date
        self.ledger_amount = ledger_amount
        self.mirror_amount = mirror_amount
        self.expense_item_id = expense_item_id
        super().__init__(
            f"Rebate expense mirror out of sync for referrer {referrer_id} on "
            f"{rebate_date.isoformat()}: ledger={ledger_amount} mirror={mirror_amount}"
        )


class TransactionNotFoundError(RebateLedgerError):
    """Exception raised when a handler is given an unknown transaction id."""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class ReferrerNotFoundError(RebateLedgerError):
    """Exception raised when a transaction points at a referrer that does not exist."""

    def __init__(self, referrer_id: int):
        self.referrer_id = referrer_id
        super().__init__(f"Referrer {referrer_id} not found")
