"""Domain models for the credit kernel."""

from credit_kernel.models.checkin import DailyCheckin
from credit_kernel.models.consumption import ConsumptionLineItem, ConsumptionRecord
from credit_kernel.models.credit_batch import CreditBatch, GrantScene, RecordStatus
from credit_kernel.models.media_task import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    MediaTask,
    TaskStatus,
    can_transition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ConsumptionLineItem",
    "ConsumptionRecord",
    "CreditBatch",
    "DailyCheckin",
    "GrantScene",
    "MediaTask",
    "RecordStatus",
    "TERMINAL_STATUSES",
    "TaskStatus",
    "VALID_TRANSITIONS",
    "can_transition",
]
