"""
Services package for rebate business logic.

This package contains service classes that encapsulate the referrer rebate
ledger, its expense mirror and the audit log, shared by the transaction
endpoints.
"""

from .activity_log_service import ActivityLogService
from .expense_mirror_service import ExpenseMirrorService
from .rebate_ledger_service import RebateLedgerService
from .rebate_query_service import RebateQueryService
from .rebate_service import RebateService

__all__ = [
    "ActivityLogService",
    "ExpenseMirrorService",
    "RebateLedgerService",
    "RebateQueryService",
    "RebateService",
]
