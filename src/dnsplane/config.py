"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError

CONCURRENCY_MODES = ("concurrent", "none", "all")


@dataclass(frozen=True)
class AppConfig:
    """Application-wide configuration values."""

    config_path: Path
    creds_path: Path
    default_record_ttl: int
    log_level: str
    concurrency_mode: str
    concurrency_max: int
    adapter_timeout: float
    templates_dir: Path | None


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Return a boolean parsed from a string."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from None


def load_config() -> AppConfig:
    """Load configuration values from the environment (and .env)."""
    load_dotenv()

    concurrency_mode = os.getenv("CONCURRENCY_MODE", "concurrent").lower()
    if concurrency_mode not in CONCURRENCY_MODES:
        raise ConfigError(f"CONCURRENCY_MODE must be one of {', '.join(CONCURRENCY_MODES)}.")

    raw_timeout = os.getenv("ADAPTER_TIMEOUT", "30")
    try:
        adapter_timeout = float(raw_timeout)
    except ValueError:
        raise ConfigError(f"ADAPTER_TIMEOUT must be a number, got {raw_timeout!r}.") from None
    if adapter_timeout <= 0:
        raise ConfigError("ADAPTER_TIMEOUT must be positive.")

    templates = os.getenv("TEMPLATES_DIR")
    return AppConfig(
        config_path=Path(os.getenv("DNSPLANE_CONFIG", "dnsconfig.json")),
        creds_path=Path(os.getenv("DNSPLANE_CREDS", "creds.json")),
        default_record_ttl=_parse_int("DEFAULT_RECORD_TTL", "300"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        concurrency_mode=concurrency_mode,
        concurrency_max=_parse_int("CONCURRENCY_MAX", "5"),
        adapter_timeout=adapter_timeout,
        templates_dir=Path(templates).resolve() if templates else None,
    )
