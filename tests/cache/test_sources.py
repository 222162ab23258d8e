from __future__ import annotations

import asyncio
from typing import Any

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.db.store import DBLocalStore
from pdvsync.cache.sources import (
    DataSource,
    FallbackSource,
    LocalStoreSource,
    RoutedSource,
    coerce_records,
)


class StaticSource:
    def __init__(self, data: Any) -> None:
        self.data = data
        self.calls = 0

    async def fetch(self, key: str) -> Any:
        self.calls += 1
        return self.data


class BrokenSource:
    async def fetch(self, key: str) -> Any:
        raise ConnectionError("remote unreachable")


class HangingSource:
    async def fetch(self, key: str) -> Any:
        await asyncio.sleep(10)


def test_coerce_records() -> None:
    assert coerce_records([{"id": "a"}, "junk", {"id": "b"}]) == [
        {"id": "a"},
        {"id": "b"},
    ]
    assert coerce_records({"key": "theme"}) == [{"key": "theme"}]
    assert coerce_records(None) == []
    assert coerce_records(42) == []


def test_first_healthy_source_wins() -> None:
    first = StaticSource([{"id": "remote"}])
    second = StaticSource([{"id": "local"}])
    source = FallbackSource([("firebase", first), ("local", second)])

    assert isinstance(source, DataSource)
    assert asyncio.run(source.fetch("products")) == [{"id": "remote"}]
    assert second.calls == 0


def test_failing_and_slow_sources_fall_through() -> None:
    local = StaticSource([{"id": "local"}])
    source = FallbackSource(
        [("broken", BrokenSource()), ("slow", HangingSource()), ("local", local)],
        timeout=0.01,
    )

    assert asyncio.run(source.fetch("products")) == [{"id": "local"}]


def test_every_source_failing_yields_empty_list() -> None:
    source = FallbackSource([("broken", BrokenSource())])

    assert asyncio.run(source.fetch("products")) == []
    assert asyncio.run(FallbackSource([]).fetch("products")) == []


def test_local_store_source_reads_the_named_store(db: DB) -> None:
    db.save("categories", {"id": "burgers", "name": "Hambúrgueres"})

    records = asyncio.run(LocalStoreSource(DBLocalStore(db)).fetch("categories"))

    assert records == [{"id": "burgers", "name": "Hambúrgueres"}]


def test_routed_source_sends_listed_keys_to_their_own_source() -> None:
    remote = StaticSource([{"id": "remote"}])
    local = StaticSource([{"id": "local"}])
    source = RoutedSource(remote, {"orders": local})

    assert asyncio.run(source.fetch("orders")) == [{"id": "local"}]
    assert asyncio.run(source.fetch("products")) == [{"id": "remote"}]
    assert (remote.calls, local.calls) == (1, 1)
