"""
Configuration Validator (``credit_config.validator``).

Validates a ``LedgerConfigurationSet`` before it is handed to the kernel:
prices, grant sizes, lifetimes and limits must be positive integers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from credit_config.schema import LedgerConfigurationSet


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_configuration(config: LedgerConfigurationSet) -> ConfigValidationResult:
    """Collect every problem in ``config`` rather than stopping at the first."""
    result = ConfigValidationResult()

    for name in ("subtitle_extraction", "video_download", "translation"):
        value = getattr(config.pricing, name)
        if not _is_positive_int(value):
            result.add_error(f"pricing.{name} must be a positive integer, got {value!r}")

    for path, grant in (
        ("grants.welcome", config.welcome_grant),
        ("grants.checkin", config.checkin_reward),
    ):
        if not _is_positive_int(grant.credits):
            result.add_error(f"{path}.credits must be a positive integer, got {grant.credits!r}")
        if grant.valid_days is not None and not _is_positive_int(grant.valid_days):
            result.add_error(
                f"{path}.valid_days must be a positive integer or null, got {grant.valid_days!r}"
            )

    if not _is_positive_int(config.tasks.concurrent_limit):
        result.add_error(
            f"tasks.concurrent_limit must be a positive integer, "
            f"got {config.tasks.concurrent_limit!r}"
        )

    if config.checkin_reward.valid_days is not None:
        result.add_warning("grants.checkin.valid_days is set; check-in credits usually never expire")

    return result
