"""
Rebate calculation.

Pure functions over test details: no database access, no side effects. The
rebate is computed per department (department total x rate) and then summed,
mirroring how rebates are reported to referrers.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Protocol

from core.constants import REFERRER_REBATE_RATE, TEST_DETAIL_STATUS_ACTIVE
from services.rebate_types import RebateBreakdown
from utils.money_utils import to_decimal


class BillableTest(Protocol):
    """Anything shaped like a TestDetail row."""
    department_id: int
    discounted_price: Decimal
    status: str


def compute_department_totals(
    test_details: Iterable[BillableTest],
    active_only: bool = True
) -> Dict[int, Decimal]:
    """
    Sum discounted_price per department over active test details.

    Args:
        test_details: Test details of a transaction (or a subset of them)
        active_only: Skip details whose status is not active. Refund handling
            turns this off because refunded details are already marked refunded.

    Returns:
        Mapping of department_id to revenue. Departments with only
        non-active details do not appear.
    """
    totals: Dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
    for test in test_details:
        if active_only and test.status != TEST_DETAIL_STATUS_ACTIVE:
            continue
        totals[test.department_id] += to_decimal(test.discounted_price)
    return dict(totals)


def compute_rebate(
    department_totals: Mapping[int, Decimal],
    rate: Decimal = REFERRER_REBATE_RATE
) -> RebateBreakdown:
    """
    Apply the rebate rate to each department total.

    Decimal multiplication is exact, so total is exactly
    rate * sum(department_totals). Rounding to cents happens only when the
    amount is written to the ledger.
    """
    per_department = {
        department_id: to_decimal(amount) * rate
        for department_id, amount in department_totals.items()
    }
    total = sum(per_department.values(), Decimal("0"))
    return RebateBreakdown(per_department=per_department, total=total)


def calculate_rebate(
    test_details: Iterable[BillableTest],
    rate: Decimal = REFERRER_REBATE_RATE,
    active_only: bool = True
) -> RebateBreakdown:
    """Department totals and rebate in one step."""
    return compute_rebate(compute_department_totals(test_details, active_only=active_only), rate)
