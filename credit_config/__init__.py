"""
credit_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``LedgerConfigurationSet``;
    ``credit_config.bridges`` turns it into the kernel's ``LedgerPolicy``.

Architecture position:
    Configuration -- YAML-driven.  This package sits above
    ``credit_kernel``.  The kernel MUST NEVER import from ``credit_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation: a configuration with any error is rejected as a whole.
    - Deterministic identity: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``InvalidConfigError`` -- a required key is missing or a value is out
      of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a ``config_loaded``
    log entry with the config_id, version and checksum, tying every charge
    back to the prices that were in force.
"""

from __future__ import annotations

from pathlib import Path

from credit_config.loader import load_configuration
from credit_config.schema import LedgerConfigurationSet
from credit_config.validator import validate_configuration
from credit_kernel.exceptions import InvalidConfigError
from credit_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfigurationSet:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.
            Defaults to credit_config/sets/default.yaml.

    Returns:
        A validated, frozen LedgerConfigurationSet.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        InvalidConfigError: If the configuration is incomplete or invalid.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_configuration(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise InvalidConfigError(
            config.config_id,
            "validation failed:\n" + "\n".join(f"  - {e}" for e in validation.errors),
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"config_id": config.config_id, "warning": warning})

    _logger.info(
        "config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(path),
        },
    )
    return config


__all__ = ["LedgerConfigurationSet", "get_active_config"]
