"""
LedgerConfigurationSet schema.

The human-authored source artifact for ledger configuration: prices of
media operations, grant policies and task limits.  YAML files are parsed
into these types by the loader and translated into kernel policy objects by
the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricingDef:
    """Credit price of each billable media operation."""

    subtitle_extraction: int
    video_download: int
    translation: int


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GrantDef:
    """Size and lifetime of a policy-driven grant.

    ``valid_days`` of None means the credits never expire.
    """

    credits: int
    valid_days: int | None = None


@dataclass(frozen=True)
class TaskLimitsDef:
    concurrent_limit: int = 1


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfigurationSet:
    """A complete, versioned ledger configuration."""

    config_id: str
    version: int
    pricing: PricingDef
    welcome_grant: GrantDef
    checkin_reward: GrantDef
    tasks: TaskLimitsDef
    effective_from: date | None = None
    description: str = ""
    checksum: str = ""
