"""Services for the credit kernel (write side)."""

from credit_kernel.services.checkin_service import CheckinResult, CheckinService
from credit_kernel.services.grant_service import (
    GrantResult,
    GrantService,
    calculate_expiration,
)
from credit_kernel.services.ledger_service import CreditLedger, RefundResult, RefundStatus
from credit_kernel.services.reconciliation_service import (
    BatchOutOfRange,
    LineItemMismatch,
    PrematureRefund,
    ReconciliationReport,
    ReconciliationService,
    RefundSummary,
    UnrefundedCharge,
)
from credit_kernel.services.task_service import TaskFailureResult, TaskService

__all__ = [
    "BatchOutOfRange",
    "CheckinResult",
    "CheckinService",
    "CreditLedger",
    "GrantResult",
    "GrantService",
    "LineItemMismatch",
    "PrematureRefund",
    "ReconciliationReport",
    "ReconciliationService",
    "RefundResult",
    "RefundStatus",
    "RefundSummary",
    "TaskFailureResult",
    "TaskService",
    "UnrefundedCharge",
    "calculate_expiration",
]
