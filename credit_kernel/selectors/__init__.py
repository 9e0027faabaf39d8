"""Selectors for the credit kernel (read side)."""

from credit_kernel.selectors.ledger_selector import (
    BatchView,
    ConsumptionSummary,
    ConsumptionView,
    LedgerSelector,
    LineItemView,
)
from credit_kernel.selectors.task_selector import ChargeView, TaskSelector, TaskView

__all__ = [
    "BatchView",
    "ChargeView",
    "ConsumptionSummary",
    "ConsumptionView",
    "LedgerSelector",
    "LineItemView",
    "TaskSelector",
    "TaskView",
]
