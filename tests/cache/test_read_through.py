from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.db.store import DBLocalStore
from pdvsync.cache.read_through import ReadThroughCache, WriteOp
from pdvsync.cache.sources import LocalStoreSource
from tests.fixtures.online_orders import FakeMonotonic


class FakeSource:
    def __init__(self, data: Any = None, *, delay: float = 0.0) -> None:
        self.data = [{"id": "p1", "name": "Batata"}] if data is None else data
        self.delay = delay
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def fetch(self, key: str) -> Any:
        self.calls.append(key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.data


def create_cache(
    source: Any, db: DB, monotonic: FakeMonotonic, **kwargs: Any
) -> ReadThroughCache:
    return ReadThroughCache(
        source, DBLocalStore(db), monotonic=monotonic, refresh_delay=0, **kwargs
    )


def test_concurrent_misses_share_one_load(db: DB, monotonic: FakeMonotonic) -> None:
    source = FakeSource(delay=0.01)
    cache = create_cache(source, db, monotonic)

    async def run() -> list[list[dict[str, Any]]]:
        return await asyncio.gather(*(cache.get("products") for _ in range(5)))

    results = asyncio.run(run())

    assert source.calls == ["products"]
    assert all(result == [{"id": "p1", "name": "Batata"}] for result in results)


def test_valid_entry_is_served_until_its_ttl_expires(
    db: DB, monotonic: FakeMonotonic
) -> None:
    source = FakeSource()
    cache = create_cache(source, db, monotonic)

    async def run() -> None:
        await cache.get("products")
        monotonic.advance(2)
        await cache.get("products")
        assert len(source.calls) == 1
        monotonic.advance(300)
        await cache.get("products")
        assert len(source.calls) == 2

    asyncio.run(run())


def test_rapid_calls_are_throttled_even_when_stale(
    db: DB, monotonic: FakeMonotonic
) -> None:
    source = FakeSource()
    cache = create_cache(source, db, monotonic, ttls={"orders": 0.1})

    async def run() -> None:
        await cache.get("orders")
        monotonic.advance(0.5)
        await cache.get("orders")
        assert len(source.calls) == 1
        monotonic.advance(1)
        await cache.get("orders")
        assert len(source.calls) == 2

    asyncio.run(run())


def test_force_refresh_skips_ttl_and_throttle(
    db: DB, monotonic: FakeMonotonic
) -> None:
    source = FakeSource()
    cache = create_cache(source, db, monotonic)

    async def run() -> None:
        await cache.get("products")
        await cache.get("products", force_refresh=True)

    asyncio.run(run())

    assert len(source.calls) == 2


def test_failed_load_returns_empty_and_is_not_cached(
    db: DB, monotonic: FakeMonotonic
) -> None:
    source = FakeSource()
    source.error = RuntimeError("offline")
    cache = create_cache(source, db, monotonic)

    async def run() -> None:
        assert await cache.get("products") == []
        source.error = None
        assert await cache.get("products") == [{"id": "p1", "name": "Batata"}]

    asyncio.run(run())

    assert len(source.calls) == 2
    assert cache.is_valid("products")


def test_slow_load_times_out_to_empty(db: DB, monotonic: FakeMonotonic) -> None:
    source = FakeSource(delay=1.0)
    cache = create_cache(source, db, monotonic, load_timeout=0.01)

    assert asyncio.run(cache.get("products")) == []
    assert "products" not in cache.stats()


def test_caller_giving_up_does_not_abort_the_load(
    db: DB, monotonic: FakeMonotonic
) -> None:
    source = FakeSource(delay=0.02)
    cache = create_cache(source, db, monotonic)

    async def run() -> list[dict[str, Any]]:
        impatient = asyncio.create_task(cache.get("products"))
        await asyncio.sleep(0.005)
        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient
        await asyncio.sleep(0.05)
        return await cache.get("products")

    assert asyncio.run(run()) == [{"id": "p1", "name": "Batata"}]
    assert source.calls == ["products"]


def test_single_mapping_result_is_wrapped(db: DB, monotonic: FakeMonotonic) -> None:
    cache = create_cache(FakeSource({"key": "theme", "value": "dark"}), db, monotonic)

    assert asyncio.run(cache.get("settings")) == [{"key": "theme", "value": "dark"}]


def test_preload_stats_and_clear(db: DB, monotonic: FakeMonotonic) -> None:
    cache = create_cache(FakeSource(), db, monotonic)

    counts = asyncio.run(cache.preload())

    assert counts == {"products": 1, "customers": 1, "settings": 1}
    stats = cache.stats()
    assert stats["products"].ttl_seconds == 300
    assert stats["settings"].ttl_seconds == 600
    assert stats["customers"].valid
    cache.clear()
    assert cache.stats() == {}


class TestUpdate:
    def test_add_writes_through_and_refreshes(
        self, db: DB, monotonic: FakeMonotonic
    ) -> None:
        store = DBLocalStore(db)
        cache = ReadThroughCache(
            LocalStoreSource(store), store, monotonic=monotonic, refresh_delay=0
        )

        async def run() -> list[dict[str, Any]]:
            assert await cache.get("customers") == []
            await cache.update("customers", "add", {"id": "c1", "name": "Ana"})
            await asyncio.sleep(0.05)
            await cache.close()
            monotonic.advance(0.1)
            return await cache.get("customers")

        assert asyncio.run(run()) == [{"id": "c1", "name": "Ana"}]
        assert db.get("customers", "c1") == {"id": "c1", "name": "Ana"}

    def test_update_and_delete(self, db: DB, monotonic: FakeMonotonic) -> None:
        db.save("orders", {"id": "o1", "status": "pending"})
        cache = create_cache(FakeSource(), db, monotonic)

        async def run() -> bool:
            await cache.update(
                "orders", WriteOp.UPDATE, {"id": "o1", "status": "confirmed"}
            )
            assert db.get("orders", "o1") == {"id": "o1", "status": "confirmed"}
            removed = await cache.update("orders", WriteOp.DELETE, "o1")
            await cache.close()
            return bool(removed)

        assert asyncio.run(run()) is True
        assert db.get("orders", "o1") is None

    def test_write_invalidates_the_key(
        self, db: DB, monotonic: FakeMonotonic
    ) -> None:
        cache = create_cache(FakeSource(), db, monotonic)

        async def run() -> None:
            await cache.get("products")
            assert cache.is_valid("products")
            await cache.update("products", "add", {"id": "p2"})
            assert not cache.is_valid("products")
            await cache.close()

        asyncio.run(run())

    def test_unknown_operation_is_rejected(
        self, db: DB, monotonic: FakeMonotonic
    ) -> None:
        cache = create_cache(FakeSource(), db, monotonic)

        with pytest.raises(ValueError):
            asyncio.run(cache.update("orders", "upsert", {"id": "o1"}))
        with pytest.raises(ValueError):
            asyncio.run(cache.update("orders", "add", "o1"))
        assert db.get_all("orders") == []

    def test_burst_of_writes_shares_one_refresh(
        self, db: DB, monotonic: FakeMonotonic
    ) -> None:
        source = FakeSource()
        cache = ReadThroughCache(
            source, DBLocalStore(db), monotonic=monotonic, refresh_delay=0.2
        )

        async def run() -> None:
            for index in range(5):
                await cache.update("orders", "add", {"id": f"o{index}"})
            await asyncio.sleep(0.5)
            await cache.update("orders", "add", {"id": "o5"})
            await asyncio.sleep(0.5)
            await cache.close()

        asyncio.run(run())

        assert source.calls == ["orders", "orders"]
        assert db.count("orders") == 6
