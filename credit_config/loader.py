"""
Configuration Loader (``credit_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into typed
``credit_config.schema`` dataclass instances.  Runtime callers go through
``credit_config.get_active_config()`` instead.

Invariants enforced
-------------------
* Missing required keys raise ``InvalidConfigError`` naming the dotted path;
  there are no silent defaults for prices or grant sizes.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid date format  -> ``ValueError`` from ``date.fromisoformat``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from credit_config.schema import GrantDef, LedgerConfigurationSet, PricingDef, TaskLimitsDef
from credit_kernel.exceptions import InvalidConfigError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _require(data: dict[str, Any], key: str, path: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise InvalidConfigError(f"{path}.{key}" if path else key, "is required")
    return data[key]


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_pricing(data: dict[str, Any]) -> PricingDef:
    return PricingDef(
        subtitle_extraction=_require(data, "subtitle_extraction", "pricing"),
        video_download=_require(data, "video_download", "pricing"),
        translation=_require(data, "translation", "pricing"),
    )


def parse_grant(data: dict[str, Any], path: str) -> GrantDef:
    """Parse a GrantDef; a null or absent valid_days means never expires."""
    return GrantDef(
        credits=_require(data, "credits", path),
        valid_days=data.get("valid_days"),
    )


def parse_task_limits(data: dict[str, Any]) -> TaskLimitsDef:
    return TaskLimitsDef(concurrent_limit=data.get("concurrent_limit", 1))


def parse_configuration(data: dict[str, Any], checksum: str = "") -> LedgerConfigurationSet:
    """Parse a whole configuration document."""
    grants = _require(data, "grants", "")
    effective_from = data.get("effective_from")
    return LedgerConfigurationSet(
        config_id=_require(data, "config_id", ""),
        version=int(_require(data, "version", "")),
        description=data.get("description", ""),
        effective_from=parse_date(effective_from) if effective_from is not None else None,
        pricing=parse_pricing(_require(data, "pricing", "")),
        welcome_grant=parse_grant(_require(grants, "welcome", "grants"), "grants.welcome"),
        checkin_reward=parse_grant(_require(grants, "checkin", "grants"), "grants.checkin"),
        tasks=parse_task_limits(data.get("tasks") or {}),
        checksum=checksum,
    )


def load_configuration(path: Path) -> LedgerConfigurationSet:
    """Load, checksum and parse one configuration file."""
    data = load_yaml_file(path)
    return parse_configuration(data, checksum=compute_checksum(data))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
