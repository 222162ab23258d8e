from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import os
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

RemoteKind = Literal["firebase", "memory"]
LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]

DEFAULT_DATABASE_URL = "sqlite:///pdvsync.db"
DEFAULT_ORDERS_PATH = "online-orders"
DEFAULT_TIMEZONE = "America/Sao_Paulo"


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Process-wide sync settings loaded at startup."""

    database_url: str = DEFAULT_DATABASE_URL
    remote: RemoteKind = "firebase"
    firebase_url: str | None = None
    firebase_auth: str | None = None
    orders_path: str = DEFAULT_ORDERS_PATH
    timezone: str = DEFAULT_TIMEZONE
    staleness_minutes: int = 120
    max_admissions: int = 100
    recency_guard_seconds: float = 10.0
    import_cooldown_seconds: float = 300.0
    fetch_timeout_seconds: float = 15.0
    log_level: LogLevel = "INFO"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def staleness_window(self) -> timedelta:
        return timedelta(minutes=self.staleness_minutes)

    @property
    def recency_guard(self) -> timedelta:
        return timedelta(seconds=self.recency_guard_seconds)

    @property
    def import_cooldown(self) -> timedelta:
        return timedelta(seconds=self.import_cooldown_seconds)


def _env(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip()
    return value or default


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _positive_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _non_negative_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def load_sync_config_from_env() -> SyncConfig:
    """Load sync config from env and validate startup requirements."""
    remote = _env("PDVSYNC_REMOTE", "firebase").lower()
    if remote not in {"firebase", "memory"}:
        raise ValueError("PDVSYNC_REMOTE must be one of: firebase, memory")

    firebase_url = _optional_env("PDVSYNC_FIREBASE_URL")
    if remote == "firebase" and not firebase_url:
        raise ValueError(
            "PDVSYNC_FIREBASE_URL is required when PDVSYNC_REMOTE is firebase"
        )

    timezone = _env("PDVSYNC_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"PDVSYNC_TIMEZONE is not a known timezone: {timezone}") from e

    log_level = _env("PDVSYNC_LOG_LEVEL", "INFO").upper()
    if log_level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"}:
        raise ValueError(
            "PDVSYNC_LOG_LEVEL must be one of: "
            "TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR"
        )

    return SyncConfig(
        database_url=_env("PDVSYNC_DATABASE_URL", DEFAULT_DATABASE_URL),
        remote=remote,  # type: ignore[arg-type]
        firebase_url=firebase_url,
        firebase_auth=_optional_env("PDVSYNC_FIREBASE_AUTH"),
        orders_path=_env("PDVSYNC_ORDERS_PATH", DEFAULT_ORDERS_PATH).strip("/"),
        timezone=timezone,
        staleness_minutes=_positive_int("PDVSYNC_STALENESS_MINUTES", 120),
        max_admissions=_positive_int("PDVSYNC_MAX_ADMISSIONS", 100),
        recency_guard_seconds=_non_negative_float(
            "PDVSYNC_RECENCY_GUARD_SECONDS", 10.0
        ),
        import_cooldown_seconds=_non_negative_float(
            "PDVSYNC_IMPORT_COOLDOWN_SECONDS", 300.0
        ),
        fetch_timeout_seconds=_non_negative_float(
            "PDVSYNC_FETCH_TIMEOUT_SECONDS", 15.0
        ),
        log_level=log_level,  # type: ignore[arg-type]
    )
