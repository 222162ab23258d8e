from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock instant, timezone-aware in UTC."""
    return datetime.now(UTC)


def to_iso(instant: datetime) -> str:
    """Render an instant the way upstream producers do (UTC, millisecond Z)."""
    return instant.astimezone(UTC).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )
