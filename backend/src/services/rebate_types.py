"""
Type definitions for the referrer rebate ledger.

RebateBreakdown is the pure calculator output. The pydantic models are what
the handlers and queries hand back to the transaction-lifecycle layer, which
serializes them straight into its API responses.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict


class RebateBreakdown(NamedTuple):
    """Rebate per department and their sum."""
    per_department: Dict[int, Decimal]
    total: Decimal


RebateAction = Literal["none", "recorded", "reversed", "refunded", "reassigned"]


class RebateAdjustment(BaseModel):
    """
    Outcome of one rebate event handler.

    applied is False when the event was a no-op (no referrer, zero amount);
    otherwise amount is the rebate moved for the referrer(s) named.
    """
    applied: bool
    action: RebateAction
    transaction_id: int
    rebate_date: Optional[date] = None
    amount: Decimal = Decimal("0.00")
    referrer_id: Optional[int] = None
    previous_referrer_id: Optional[int] = None
    relabelled_in_place: bool = False

    @classmethod
    def noop(cls, transaction_id: int, rebate_date: Optional[date] = None) -> "RebateAdjustment":
        return cls(applied=False, action="none", transaction_id=transaction_id, rebate_date=rebate_date)


class RebateRecordView(BaseModel):
    """Read-side view of a ReferrerRebate row."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    referrer_id: int
    first_name: str
    last_name: str
    rebate_date: date
    total_rebate_amount: Decimal
    transaction_count: int
    status: str


class MonthlyRebateSummary(BaseModel):
    """Totals over the active rebate records of one month."""
    month: int
    year: int
    total_rebates: Decimal
    total_records: int
    total_transactions: int


MirrorDiscrepancyKind = Literal["missing_item", "amount_mismatch", "orphaned_item", "expense_total_mismatch"]


class MirrorDiscrepancy(BaseModel):
    """One disagreement between the rebate ledger and its expense mirror."""
    kind: MirrorDiscrepancyKind
    rebate_date: date
    referrer_id: Optional[int] = None
    rebate_record_id: Optional[int] = None
    expense_id: Optional[int] = None
    expense_item_id: Optional[int] = None
    ledger_amount: Optional[Decimal] = None
    mirror_amount: Optional[Decimal] = None


class DailyRebateMirrorReport(BaseModel):
    """Audit result for one day."""
    rebate_date: date
    ledger_total: Decimal
    mirror_total: Decimal
    discrepancies: List[MirrorDiscrepancy]

    @property
    def in_sync(self) -> bool:
        return not self.discrepancies
