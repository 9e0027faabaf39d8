"""Utility functions for the credit kernel."""

from credit_kernel.utils.idempotency import (
    checkin_grant_key,
    generate_grant_key,
    generate_transaction_no,
    order_grant_key,
    parse_grant_key,
)

__all__ = [
    "checkin_grant_key",
    "generate_grant_key",
    "generate_transaction_no",
    "order_grant_key",
    "parse_grant_key",
]
