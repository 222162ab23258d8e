"""Shared fakes and payload builders for the sync tests."""

from tests.fixtures.online_orders.fakes import (
    START,
    CountingStore,
    FakeClock,
    FakeMonotonic,
    RecordingNotifier,
)
from tests.fixtures.online_orders.payloads import (
    english_payload,
    millis,
    order_key,
    portuguese_payload,
    product_catalog,
)
from tests.fixtures.online_orders.wiring import create_importer

__all__ = [
    "START",
    "CountingStore",
    "FakeClock",
    "FakeMonotonic",
    "RecordingNotifier",
    "create_importer",
    "english_payload",
    "millis",
    "order_key",
    "portuguese_payload",
    "product_catalog",
]
