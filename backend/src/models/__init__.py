# Package initialization
# Import all models to ensure relationships are properly established
from .department import Department
from .referrer import Referrer
from .transaction import Transaction
from .test_detail import TestDetail
from .referrer_rebate import ReferrerRebate
from .rebate_contribution import RebateContribution
from .category import Category
from .expense import Expense
from .expense_item import ExpenseItem
from .activity_log import ActivityLog

__all__ = [
    "Department",
    "Referrer",
    "Transaction",
    "TestDetail",
    "ReferrerRebate",
    "RebateContribution",
    "Category",
    "Expense",
    "ExpenseItem",
    "ActivityLog",
]
