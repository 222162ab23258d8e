"""Read-through cache for slow-changing reference data.

Each key (``products``, ``customers``, ``orders``, ...) maps to a list of
records with its own time-to-live. Concurrent misses on the same key share a
single in-flight load; the load is shielded so that a caller giving up does
not abort it, and it populates the cache even when nobody is left waiting.
Writes go through ``update``, which invalidates the key, performs the write on
the local store and schedules a background refresh.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
import enum
import time
from typing import Any

from pdvsync.adapters.db.store import LocalStore
from pdvsync.cache.logger import CacheLogger
from pdvsync.cache.sources import DataSource, coerce_records

Record = dict[str, Any]

DEFAULT_TTLS: dict[str, float] = {
    "orders": 5.0,
    "inventory": 60.0,
    "products": 300.0,
    "customers": 300.0,
    "categories": 600.0,
    "settings": 600.0,
}
DEFAULT_TTL_SECONDS = 60.0
CALL_THROTTLE_SECONDS = 1.0
REFRESH_DELAY_SECONDS = 0.1
LOAD_TIMEOUT_SECONDS = 15.0
ESSENTIAL_KEYS = ("products", "customers", "settings")


class WriteOp(enum.Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class CacheEntryStats:
    items: int
    age_seconds: float
    ttl_seconds: float
    valid: bool


class ReadThroughCache:
    """Per-key TTL cache with single-flight loads."""

    def __init__(
        self,
        source: DataSource,
        writer: LocalStore,
        *,
        ttls: Mapping[str, float] | None = None,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        call_throttle: float = CALL_THROTTLE_SECONDS,
        refresh_delay: float = REFRESH_DELAY_SECONDS,
        load_timeout: float = LOAD_TIMEOUT_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
        logger: CacheLogger | None = None,
    ) -> None:
        self._source = source
        self._writer = writer
        self._ttls = dict(DEFAULT_TTLS if ttls is None else ttls)
        self._default_ttl = default_ttl
        self._call_throttle = call_throttle
        self._refresh_delay = refresh_delay
        self._load_timeout = load_timeout
        self._monotonic = monotonic
        self._logger = logger or CacheLogger(monotonic=monotonic)

        self._values: dict[str, list[Record]] = {}
        self._refreshed_at: dict[str, float] = {}
        self._last_call: dict[str, float] = {}
        self._inflight: dict[str, asyncio.Task[list[Record]]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._refresh_pending: set[str] = set()

    def ttl_for(self, key: str) -> float:
        return self._ttls.get(key, self._default_ttl)

    def is_valid(self, key: str) -> bool:
        refreshed_at = self._refreshed_at.get(key)
        if refreshed_at is None or key not in self._values:
            return False
        return self._monotonic() - refreshed_at < self.ttl_for(key)

    async def get(self, key: str, *, force_refresh: bool = False) -> list[Record]:
        """Return the records for ``key``, loading them when stale or missing.

        Args:
            key: Cache key, also the name of the store to load from.
            force_refresh: Ignore TTL and call throttling and load now
                (still joining an in-flight load if there is one).

        Returns:
            The records; an empty list when loading failed.
        """
        now = self._monotonic()
        if not force_refresh and key in self._values:
            last_call = self._last_call.get(key)
            if last_call is not None and now - last_call < self._call_throttle:
                return list(self._values[key])
        self._last_call[key] = now

        inflight = self._inflight.get(key)
        if inflight is not None:
            self._logger.waiting_inflight(key)
            return list(await asyncio.shield(inflight))

        if not force_refresh and self.is_valid(key):
            self._logger.hit(key, now - self._refreshed_at[key])
            return list(self._values[key])

        task = asyncio.create_task(self._load(key), name=f"cache-load-{key}")
        self._inflight[key] = task
        task.add_done_callback(lambda done, key=key: self._release(key, done))
        return list(await asyncio.shield(task))

    def _release(self, key: str, task: asyncio.Task[list[Record]]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _load(self, key: str) -> list[Record]:
        self._logger.loading(key)
        try:
            data = await asyncio.wait_for(self._source.fetch(key), self._load_timeout)
        except Exception as e:
            # Failures are not cached; the next call tries again.
            self._logger.fetch_failed(key, e)
            return []
        records = coerce_records(data)
        self._values[key] = records
        self._refreshed_at[key] = self._monotonic()
        self._logger.loaded(key, len(records))
        return records

    def invalidate(self, key: str) -> None:
        self._values.pop(key, None)
        self._refreshed_at.pop(key, None)

    async def update(
        self, key: str, op: WriteOp | str, payload: Mapping[str, Any] | str
    ) -> Any:
        """Write through to the local store and refresh ``key`` shortly after.

        Args:
            key: Store name.
            op: ``add``, ``update`` or ``delete``.
            payload: The record, or for ``delete`` the record or its id.

        Raises:
            ValueError: If ``op`` is not a known write operation.
        """
        write_op = op if isinstance(op, WriteOp) else WriteOp(op)
        self.invalidate(key)
        self._logger.write(key, write_op.value)

        result: Any
        if write_op is WriteOp.DELETE:
            record_id = (
                str(payload.get("id")) if isinstance(payload, Mapping) else payload
            )
            result = await self._writer.remove(key, record_id)
        elif not isinstance(payload, Mapping):
            raise ValueError(
                f"{write_op.value} on {key} needs a record, got {payload!r}"
            )
        elif write_op is WriteOp.ADD:
            result = await self._writer.save(key, payload)
        else:
            result = await self._writer.update(key, payload)

        self._schedule_refresh(key)
        return result

    def _schedule_refresh(self, key: str) -> None:
        # One refresh per key covers every write made before it wakes up.
        if key in self._refresh_pending:
            return
        self._refresh_pending.add(key)
        task = asyncio.create_task(
            self._refresh_later(key), name=f"cache-refresh-{key}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_later(self, key: str) -> None:
        try:
            await asyncio.sleep(self._refresh_delay)
        finally:
            self._refresh_pending.discard(key)
        await self.get(key, force_refresh=True)

    async def preload(self, keys: Iterable[str] = ESSENTIAL_KEYS) -> dict[str, int]:
        """Load several keys concurrently; returns record counts per key."""
        key_list = list(keys)
        results = await asyncio.gather(*(self.get(key) for key in key_list))
        return {
            key: len(records)
            for key, records in zip(key_list, results, strict=True)
        }

    def stats(self) -> dict[str, CacheEntryStats]:
        now = self._monotonic()
        return {
            key: CacheEntryStats(
                items=len(records),
                age_seconds=now - self._refreshed_at.get(key, now),
                ttl_seconds=self.ttl_for(key),
                valid=self.is_valid(key),
            )
            for key, records in self._values.items()
        }

    def clear(self) -> None:
        """Forget every cached value. In-flight loads still complete."""
        self._values.clear()
        self._refreshed_at.clear()
        self._last_call.clear()
        self._logger.cleared()

    async def close(self) -> None:
        """Cancel pending background refreshes and wait for them to finish."""
        pending = list(self._background)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
