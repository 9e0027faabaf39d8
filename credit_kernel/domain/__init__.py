"""
Pure domain layer.

Values and rules with no dependency on the ORM, the database or I/O:
clocks, pricing and ledger policies.
"""

from credit_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from credit_kernel.domain.policy import GrantPolicy, LedgerPolicy, Pricing
from credit_kernel.domain.pricing import (
    OutputType,
    Platform,
    detect_platform,
    includes_translation,
    quote_task_cost,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "GrantPolicy",
    "LedgerPolicy",
    "OutputType",
    "Platform",
    "Pricing",
    "SystemClock",
    "detect_platform",
    "includes_translation",
    "quote_task_cost",
]
