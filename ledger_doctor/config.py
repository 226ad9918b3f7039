"""Configuration management for ledger-doctor."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from ledger_doctor.exceptions import ConfigurationError

DECIMAL_SEPARATORS = {",", "."}


@dataclass
class ImportConfig:
    """Ledger import tuning."""

    batch_size: int = 100
    batch_pause_seconds: float = 0.5
    decimal_separator: str | None = None  # None = infer per cell
    sheet_name: str | None = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.batch_pause_seconds < 0:
            raise ConfigurationError(f"batch_pause_seconds cannot be negative, got {self.batch_pause_seconds}")
        if self.decimal_separator is not None and self.decimal_separator not in DECIMAL_SEPARATORS:
            raise ConfigurationError(
                f"decimal_separator must be ',' or '.', got {self.decimal_separator!r}"
            )


@dataclass
class RiskConfig:
    """Thresholds used by the classification engine."""

    min_balance: float = 100.0
    upcoming_days: int = 15


@dataclass
class StoreConfig:
    """Supabase / PostgREST connection configuration."""

    url: str | None = None
    key: str | None = None
    timeout: float = 30.0


@dataclass
class LedgerConfig:
    """Main configuration for ledger-doctor."""

    imports: ImportConfig = field(default_factory=ImportConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "INFO"
    output_stamp: str | None = None

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        imports = ImportConfig(
            batch_size=_env_int("LEDGER_BATCH_SIZE", 100),
            batch_pause_seconds=_env_float("LEDGER_BATCH_PAUSE", 0.5),
            decimal_separator=os.getenv("LEDGER_DECIMAL_SEPARATOR") or None,
            sheet_name=os.getenv("LEDGER_SHEET") or None,
        )

        risk = RiskConfig(
            min_balance=_env_float("LEDGER_MIN_BALANCE", 100.0),
            upcoming_days=_env_int("LEDGER_UPCOMING_DAYS", 15),
        )

        store = StoreConfig(
            url=os.getenv("SUPABASE_URL") or None,
            key=os.getenv("SUPABASE_KEY") or None,
            timeout=_env_float("SUPABASE_TIMEOUT", 30.0),
        )

        return cls(
            imports=imports,
            risk=risk,
            store=store,
            log_level=os.getenv("LEDGER_LOG_LEVEL", "INFO"),
            output_stamp=os.getenv("LEDGER_OUTPUT_STAMP") or None,
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
