"""Application constants and configuration values."""

from decimal import Decimal

# Database field lengths
MAX_STRING_LENGTH = 255

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# Money
MONEY_QUANTUM = Decimal("0.01")  # Numeric(10, 2) columns, rounded half-up
ZERO_AMOUNT = Decimal("0.00")

# Referrer rebates
REFERRER_REBATE_RATE = Decimal("0.20")  # Share of each department's discounted revenue paid to the referrer

# The daily rebate payable is mirrored into the general expense ledger under a
# synthetic payee with no department. One expense per date, one item per referrer.
REBATE_EXPENSE_PAYEE = "Pure Health"
REBATE_EXPENSE_PURPOSE = "Referrer Rebate - 20% of department totals"
REBATE_VOUCHER_LOCK_NAMESPACE = -1  # First advisory lock key for the per-date voucher lock; referrer ids are positive
REBATE_CATEGORY_NAME = "Rebates"
REFERRER_PAYEE_PREFIX = "Dr."

# Status values
TEST_DETAIL_STATUS_ACTIVE = "active"
TEST_DETAIL_STATUS_CANCELLED = "cancelled"
TEST_DETAIL_STATUS_REFUNDED = "refunded"

REBATE_STATUS_ACTIVE = "active"
REBATE_STATUS_CANCELLED = "cancelled"

CONTRIBUTION_STATUS_ACTIVE = "active"
CONTRIBUTION_STATUS_REVERSED = "reversed"

EXPENSE_STATUS_ACTIVE = "active"
EXPENSE_ITEM_STATUS_PENDING = "pending"

# Activity log actions written by the rebate handlers
ACTIVITY_REBATE_RECORDED = "REBATE_RECORDED"
ACTIVITY_REBATE_REVERSED = "REBATE_REVERSED"
ACTIVITY_REBATE_REFUNDED = "REBATE_REFUNDED"
ACTIVITY_REBATE_REASSIGNED = "REBATE_REASSIGNED"
ACTIVITY_RESOURCE_TRANSACTION = "TRANSACTION"
