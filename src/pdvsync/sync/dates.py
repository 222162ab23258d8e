"""Resolve the single instant an online order was created at.

Producers disagree on where they put it, so the lookup walks a chain and
never raises: ISO ``createdAt`` -> numeric millisecond timestamp -> the
``WEB-<ms>-...`` identifier -> now.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
import enum
import math
import re
from typing import Any

from pdvsync.domain.orders import parse_instant

ORDER_ID_TIMESTAMP = re.compile(r"WEB-(\d+)-")

ISO_FIELDS = ("createdAt", "created_at")
NUMERIC_FIELDS = ("timestampNumerico", "timestamp")


class InstantSource(enum.Enum):
    CREATED_AT = "created_at"
    NUMERIC_TIMESTAMP = "numeric_timestamp"
    IDENTIFIER = "identifier"
    NOW = "now"


@dataclass(frozen=True, slots=True)
class ResolvedInstant:
    instant: datetime
    source: InstantSource


def parse_epoch_millis(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            return None
        millis: float = int(text)
    elif isinstance(value, int | float):
        millis = value
    else:
        return None
    if not math.isfinite(millis) or millis <= 0:
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, UTC)
    except (OverflowError, OSError, ValueError):
        return None


def instant_from_identifier(identifier: str | None) -> datetime | None:
    """``"WEB-1718000000000-ab12"`` -> the instant encoded in it."""
    if not identifier:
        return None
    match = ORDER_ID_TIMESTAMP.search(identifier)
    return parse_epoch_millis(match.group(1)) if match else None


def resolve_order_instant(
    payload: Mapping[str, Any], key: str | None, now: datetime
) -> ResolvedInstant:
    for field_name in ISO_FIELDS:
        parsed = parse_instant(payload.get(field_name))
        if parsed is not None:
            return ResolvedInstant(parsed, InstantSource.CREATED_AT)

    # Some producers put an ISO string in ``timestamp``.
    parsed = parse_instant(payload.get("timestamp"))
    if parsed is not None:
        return ResolvedInstant(parsed, InstantSource.CREATED_AT)

    for field_name in NUMERIC_FIELDS:
        parsed = parse_epoch_millis(payload.get(field_name))
        if parsed is not None:
            return ResolvedInstant(parsed, InstantSource.NUMERIC_TIMESTAMP)

    payload_id = payload.get("id")
    for identifier in (key, payload_id if isinstance(payload_id, str) else None):
        parsed = instant_from_identifier(identifier)
        if parsed is not None:
            return ResolvedInstant(parsed, InstantSource.IDENTIFIER)

    return ResolvedInstant(now, InstantSource.NOW)
