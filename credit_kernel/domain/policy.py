"""
Ledger policy values consumed by kernel services.

Responsibility:
    Frozen, validated value objects describing prices, grant policies and
    task limits.  The kernel never reads configuration files; the config
    package builds these objects and hands them to services.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from credit_kernel.exceptions import InvalidConfigError


def _require_positive(field: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidConfigError(field, f"must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class Pricing:
    """Credit prices of billable media operations."""

    subtitle_extraction: int
    video_download: int
    translation: int

    def __post_init__(self) -> None:
        _require_positive("pricing.subtitle_extraction", self.subtitle_extraction)
        _require_positive("pricing.video_download", self.video_download)
        _require_positive("pricing.translation", self.translation)


@dataclass(frozen=True)
class GrantPolicy:
    """How many credits a grant carries and for how long they stay spendable.

    ``valid_days`` of None means the credits never expire.
    """

    credits: int
    valid_days: int | None = None

    def __post_init__(self) -> None:
        _require_positive("grant.credits", self.credits)
        if self.valid_days is not None:
            _require_positive("grant.valid_days", self.valid_days)


@dataclass(frozen=True)
class LedgerPolicy:
    """Everything the kernel services need from configuration."""

    pricing: Pricing
    welcome_grant: GrantPolicy
    checkin_reward: GrantPolicy
    concurrent_task_limit: int = 1

    def __post_init__(self) -> None:
        _require_positive("tasks.concurrent_limit", self.concurrent_task_limit)
