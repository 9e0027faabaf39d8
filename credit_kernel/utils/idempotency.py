"""
Transaction number and idempotency key generation.

Transaction numbers identify every batch and consumption row to operators.
Idempotency keys make grants replay-safe: the same logical grant always
maps to the same key, and the key is unique on credit_batches.
"""

from datetime import date, datetime
from uuid import uuid4


def generate_transaction_no(kind: str, now: datetime) -> str:
    """
    Generate a unique, time-sortable transaction number.

    Format: KIND-YYYYMMDDHHMMSS-<12 hex chars>

    Example:
        >>> generate_transaction_no("CON", clock.now())
        "CON-20240101120000-3f2a9c1b7d4e"
    """
    return f"{kind.upper()}-{now:%Y%m%d%H%M%S}-{uuid4().hex[:12]}"


def generate_grant_key(purpose: str, subject: str, discriminator: str | None = None) -> str:
    """
    Generate an idempotency key for a grant.

    The subject is what the grant is unique for: a user for one-off grants,
    an order number for purchases.

    Format: purpose:subject[:discriminator]

    Example:
        >>> generate_grant_key("welcome", "user-1")
        "welcome:user-1"
    """
    if discriminator is None:
        return f"{purpose}:{subject}"
    return f"{purpose}:{subject}:{discriminator}"


def order_grant_key(order_no: str) -> str:
    """Idempotency key of the grant paid for by one order."""
    return generate_grant_key("order", order_no)


def checkin_grant_key(user_id: str, checkin_date: date) -> str:
    """Idempotency key of the check-in award for one user and day."""
    return generate_grant_key("checkin", user_id, checkin_date.isoformat())


def parse_grant_key(key: str) -> tuple[str, str, str | None]:
    """
    Parse a grant key into (purpose, subject, discriminator).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) < 2 or not all(parts):
        raise ValueError(f"Invalid grant key format: {key}")
    if len(parts) == 2:
        return parts[0], parts[1], None
    return parts[0], parts[1], parts[2]
