from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pdvsync.sync.dates import (
    InstantSource,
    ResolvedInstant,
    instant_from_identifier,
    parse_epoch_millis,
    resolve_order_instant,
)
from tests.fixtures.online_orders import START, millis, order_key

NOW = START + timedelta(hours=1)


@pytest.mark.parametrize(
    ("payload", "key", "source"),
    [
        ({"createdAt": "2025-03-14T15:00:00.000Z"}, None, InstantSource.CREATED_AT),
        ({"created_at": "2025-03-14T12:00:00-03:00"}, None, InstantSource.CREATED_AT),
        ({"timestamp": "2025-03-14T15:00:00Z"}, None, InstantSource.CREATED_AT),
        ({"timestampNumerico": millis(START)}, None, InstantSource.NUMERIC_TIMESTAMP),
        ({"timestamp": str(millis(START))}, None, InstantSource.NUMERIC_TIMESTAMP),
        ({}, order_key(START), InstantSource.IDENTIFIER),
        ({"id": order_key(START)}, "-Nabc123", InstantSource.IDENTIFIER),
    ],
)
def test_every_fallback_resolves_the_same_instant(
    payload: dict[str, object], key: str | None, source: InstantSource
) -> None:
    resolved = resolve_order_instant(payload, key, NOW)

    assert resolved.instant == START
    assert resolved.source is source


def test_first_usable_field_wins() -> None:
    payload = {
        "createdAt": "not a date",
        "timestampNumerico": millis(START),
        "timestamp": millis(START - timedelta(days=1)),
    }

    resolved = resolve_order_instant(payload, order_key(NOW), NOW)

    assert resolved.instant == START
    assert resolved.source is InstantSource.NUMERIC_TIMESTAMP


def test_nothing_usable_falls_back_to_now() -> None:
    resolved = resolve_order_instant({"createdAt": "", "timestamp": -5}, "-Nxyz", NOW)

    assert resolved == ResolvedInstant(NOW, InstantSource.NOW)


def test_naive_iso_strings_are_read_as_utc() -> None:
    resolved = resolve_order_instant({"createdAt": "2025-03-14T15:00:00"}, None, NOW)

    assert resolved.instant == START


@pytest.mark.parametrize("value", [True, -1, 0, "abc", "", None, float("inf"), [1]])
def test_parse_epoch_millis_rejects_junk(value: object) -> None:
    assert parse_epoch_millis(value) is None


def test_instant_from_identifier() -> None:
    assert instant_from_identifier("WEB-1741964400000-x9") == datetime(
        2025, 3, 14, 15, 0, tzinfo=UTC
    )
    assert instant_from_identifier("WEB-nope") is None
    assert instant_from_identifier(None) is None
