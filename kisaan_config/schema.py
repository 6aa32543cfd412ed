"""
Configuration schema (``kisaan_config.schema``).

Frozen dataclasses for every configuration section.  Instances are only
produced by ``kisaan_config.loader.parse_config`` after validation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from kisaan_kernel.domain.retry import RetryPolicy


class ConfigValidationError(ValueError):
    """A configuration value is missing, of the wrong type or out of range."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0

    def engine_kwargs(self) -> dict:
        """Keyword arguments for ``init_engine_from_url``."""
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "sqlite_busy_timeout": self.sqlite_busy_timeout,
        }


@dataclass(frozen=True)
class LedgerRetryConfig:
    max_attempts: int = 3
    base_delay_ms: int = 10
    max_delay_ms: int = 200
    multiplier: float = 2.0
    jitter: float = 0.5

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_ms / 1000,
            max_delay=self.max_delay_ms / 1000,
            multiplier=self.multiplier,
            jitter=self.jitter,
        )


@dataclass(frozen=True)
class SubmissionConfig:
    claim_stale_after_s: float = 60.0

    @property
    def claim_stale_after(self) -> timedelta:
        return timedelta(seconds=self.claim_stale_after_s)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level)


@dataclass(frozen=True)
class KisaanConfig:
    database: DatabaseConfig
    ledger_retry: LedgerRetryConfig
    logging: LoggingConfig
    submissions: SubmissionConfig
