"""
Configuration Loader (``kisaan_config.loader``).

Responsibility
--------------
Loads the packaged ``defaults.yaml``, deep-merges an optional override
file over it, and parses the result into the frozen dataclasses of
``kisaan_config.schema``.  Runtime callers use
``kisaan_config.get_active_config()`` instead of this module.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types or out-of-range values  -> ``ConfigValidationError`` listing
  every problem found, not just the first.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from kisaan_config.schema import (
    ConfigValidationError,
    DatabaseConfig,
    KisaanConfig,
    LedgerRetryConfig,
    LoggingConfig,
    SubmissionConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML mapping; an empty file is an empty mapping."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigValidationError([f"{path}: top level must be a mapping"])
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str, errors: list[str]) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        errors.append(f"{name}: must be a mapping")
        return {}
    return section


def _number(section: dict, name: str, key: str, kind: type, minimum: float, errors: list[str]):
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{name}.{key}: must be a number, got {value!r}")
        return None
    if kind is int and not isinstance(value, int):
        errors.append(f"{name}.{key}: must be an integer, got {value!r}")
        return None
    if value < minimum:
        errors.append(f"{name}.{key}: must be >= {minimum}, got {value!r}")
        return None
    return kind(value)


def parse_config(data: dict[str, Any]) -> KisaanConfig:
    """Validate a merged mapping into a KisaanConfig."""
    errors: list[str] = []

    db = _section(data, "database", errors)
    url = db.get("url")
    if not isinstance(url, str) or not url.strip():
        errors.append("database.url: must be a non-empty string")
    echo = db.get("echo", False)
    if not isinstance(echo, bool):
        errors.append("database.echo: must be a boolean")
    db_numbers = {
        "pool_size": _number(db, "database", "pool_size", int, 1, errors),
        "max_overflow": _number(db, "database", "max_overflow", int, 0, errors),
        "pool_timeout": _number(db, "database", "pool_timeout", int, 0, errors),
        "pool_recycle": _number(db, "database", "pool_recycle", int, -1, errors),
        "sqlite_busy_timeout": _number(db, "database", "sqlite_busy_timeout", float, 0, errors),
    }

    retry = _section(data, "ledger_retry", errors)
    retry_numbers = {
        "max_attempts": _number(retry, "ledger_retry", "max_attempts", int, 1, errors),
        "base_delay_ms": _number(retry, "ledger_retry", "base_delay_ms", int, 0, errors),
        "max_delay_ms": _number(retry, "ledger_retry", "max_delay_ms", int, 0, errors),
        "multiplier": _number(retry, "ledger_retry", "multiplier", float, 1, errors),
        "jitter": _number(retry, "ledger_retry", "jitter", float, 0, errors),
    }
    if retry_numbers["jitter"] is not None and retry_numbers["jitter"] > 1:
        errors.append("ledger_retry.jitter: must be <= 1")

    submissions = _section(data, "submissions", errors)
    stale_after = _number(
        submissions, "submissions", "claim_stale_after_s", float, 0, errors
    )

    log = _section(data, "logging", errors)
    level = str(log.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        errors.append(f"logging.level: must be one of {', '.join(_LOG_LEVELS)}")

    if errors:
        raise ConfigValidationError(errors)

    return KisaanConfig(
        database=DatabaseConfig(url=url, echo=echo, **db_numbers),
        ledger_retry=LedgerRetryConfig(**retry_numbers),
        logging=LoggingConfig(level=level),
        submissions=SubmissionConfig(claim_stale_after_s=stale_after),
    )


def load_config(config_path: Path | None = None) -> KisaanConfig:
    data = load_yaml_file(DEFAULTS_PATH)
    if config_path is not None:
        data = deep_merge(data, load_yaml_file(Path(config_path)))
    return parse_config(data)

