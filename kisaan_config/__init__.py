"""
kisaan_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way services, scripts and tests
    obtain configuration.  No other component reads YAML files or
    environment variables.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ConfigValidationError`` (a ``ValueError``) -- schema violations.
"""

from __future__ import annotations

from pathlib import Path

from kisaan_config.loader import load_config
from kisaan_config.schema import (
    ConfigValidationError,
    DatabaseConfig,
    KisaanConfig,
    LedgerRetryConfig,
    LoggingConfig,
    SubmissionConfig,
)
from kisaan_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(config_path: Path | str | None = None) -> KisaanConfig:
    """
    Load packaged defaults, merge ``config_path`` over them and validate.

    Does NOT cache: callers hold the returned config for their lifetime.
    """
    config = load_config(Path(config_path) if config_path is not None else None)
    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(config_path) if config_path is not None else None,
            "database_dialect": config.database.url.split(":", 1)[0],
            "retry_attempts": config.ledger_retry.max_attempts,
            "log_level": config.logging.level,
        },
    )
    return config


__all__ = [
    "ConfigValidationError",
    "DatabaseConfig",
    "KisaanConfig",
    "LedgerRetryConfig",
    "LoggingConfig",
    "SubmissionConfig",
    "get_active_config",
]
