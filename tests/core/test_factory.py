from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Any

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.remote.firebase import FirebaseOrderSource
from pdvsync.adapters.remote.memory import InMemoryOrderSource
from pdvsync.core.config import SyncConfig
from pdvsync.core.factory import create_remote_source, create_sync_runtime
from pdvsync.domain.orders import OrderStatus, order_from_record
from pdvsync.sync.pipeline import PipelineState
from tests.fixtures.online_orders import (
    START,
    FakeClock,
    RecordingNotifier,
    english_payload,
    product_catalog,
    order_key,
    portuguese_payload,
)

MEMORY_CONFIG = SyncConfig(remote="memory", database_url="sqlite:///:memory:")
BACKLOG_KEY = order_key(START - timedelta(minutes=40), "backlog")
LIVE_KEY = order_key(START, "live")


def test_create_remote_source() -> None:
    firebase = SyncConfig(firebase_url="https://shop.firebaseio.com")

    assert isinstance(create_remote_source(MEMORY_CONFIG), InMemoryOrderSource)
    assert isinstance(create_remote_source(firebase), FirebaseOrderSource)


def test_runtime_imports_notifies_and_mirrors_status(
    tmp_path: Path, clock: FakeClock
) -> None:
    db = DB(f"sqlite:///{tmp_path / 'pdv.db'}")
    source = InMemoryOrderSource({BACKLOG_KEY: portuguese_payload(START)})
    notifier = RecordingNotifier()
    runtime = create_sync_runtime(
        MEMORY_CONFIG, db=db, source=source, notifier=notifier, clock=clock
    )

    async def run() -> None:
        try:
            await runtime.pipeline.start()
            source.push(LIVE_KEY, english_payload(START))
            await runtime.pipeline.wait_until_idle()

            clock.advance(minutes=2)
            await runtime.status_service.update_status(LIVE_KEY, "confirmed")
            # The remote echoes our write back as a change event.
            await runtime.pipeline.wait_until_idle()
            assert runtime.pipeline.state is PipelineState.LISTENING
        finally:
            await runtime.close()

    asyncio.run(run())

    assert runtime.pipeline.state is PipelineState.STOPPED
    assert [signal.order_id for signal in notifier.signals] == [LIVE_KEY]
    assert db.get("orders", BACKLOG_KEY) is not None

    order = order_from_record(db.get("orders", LIVE_KEY) or {})
    assert order.status is OrderStatus.CONFIRMED
    assert len(order.status_history) == 1

    remote = source.child(LIVE_KEY) or {}
    assert remote["status"] == "confirmed"
    assert remote["lastSyncedAt"] == "2025-03-14T15:02:00.000Z"
    assert remote["statusHistory"][0]["previousStatus"] == "pending"


class FakeFirebaseClient:
    """Serves fixed collections; anything else does not exist upstream."""

    def __init__(self, collections: dict[str, Any]) -> None:
        self.collections = collections
        self.patches: list[tuple[str, dict[str, Any]]] = []

    def get(self, path: str) -> Any:
        return self.collections.get(path.strip("/"))

    def patch(self, path: str, fields: dict[str, Any]) -> Any:
        self.patches.append((path, dict(fields)))
        return fields


def test_firebase_runtime_cache_sees_its_own_writes(
    tmp_path: Path, clock: FakeClock
) -> None:
    db = DB(f"sqlite:///{tmp_path / 'pdv.db'}")
    db.create_schema()
    db.save("settings", {"key": "theme", "value": "dark"})
    client = FakeFirebaseClient(
        {"products": {product["id"]: product for product in product_catalog()}}
    )
    config = SyncConfig(
        remote="firebase",
        firebase_url="https://shop.firebaseio.com",
        database_url="sqlite://",
    )
    runtime = create_sync_runtime(
        config,
        db=db,
        client=client,  # type: ignore[arg-type]
        source=InMemoryOrderSource(),
        clock=clock,
    )

    async def run() -> dict[str, list[dict[str, Any]]]:
        try:
            await runtime.importer.import_order(LIVE_KEY, english_payload(START))
            return {
                key: await runtime.cache.get(key, force_refresh=True)
                for key in ("orders", "customers", "products", "settings")
            }
        finally:
            await runtime.close()

    loaded = asyncio.run(run())

    assert [order["id"] for order in loaded["orders"]] == [LIVE_KEY]
    assert [customer["name"] for customer in loaded["customers"]] == ["Ana Souza"]
    assert len(loaded["products"]) == 4
    assert loaded["settings"] == [{"key": "theme", "value": "dark"}]
