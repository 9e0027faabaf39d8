"""
Module: credit_kernel.db.types
Responsibility: Column types shared by every ledger model.  Centralizes
    timestamp normalization so that models and services agree on storage
    representation.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are always timezone-aware UTC in Python, regardless of the
      backend's native support (PostgreSQL timestamptz vs. SQLite text).
    - Credits are whole units stored as integers.  No floats anywhere.

Failure modes:
    - None at this layer; range checks live on the models (CHECK constraints).
"""

from datetime import timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC on the way in and out.

    Contract:
        Naive values are interpreted as UTC.  Aware values are converted to
        UTC before binding.  Loaded values always carry tzinfo=UTC.

    Guarantees:
        - Comparisons in SQL (e.g. ``expires_at > :now``) are consistent on
          SQLite, which stores datetimes as text without an offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

