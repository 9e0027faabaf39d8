"""Database layer - engine handle, base classes, and column types."""

from credit_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from credit_kernel.db.engine import Database
from credit_kernel.db.types import UTCDateTime

__all__ = [
    "Database",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "UTCDateTime",
]
