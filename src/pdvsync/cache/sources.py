from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from pdvsync.adapters.db.store import LocalStore
from pdvsync.cache.logger import CacheLogger

Record = dict[str, Any]

DEFAULT_SOURCE_TIMEOUT_SECONDS = 15.0


@runtime_checkable
class DataSource(Protocol):
    """Something that can load the records stored under a cache key."""

    async def fetch(self, key: str) -> Any: ...


def coerce_records(data: Any) -> list[Record]:
    """Normalize a fetch result: list as-is, single mapping wrapped, else []."""
    if isinstance(data, Mapping):
        return [dict(data)]
    if isinstance(data, list | tuple):
        return [dict(item) for item in data if isinstance(item, Mapping)]
    return []


class LocalStoreSource:
    def __init__(self, store: LocalStore) -> None:
        self._store = store

    async def fetch(self, key: str) -> list[Record]:
        return await self._store.get_all(key)


class FallbackSource:
    """Tries each named source in order until one answers in time.

    A source that raises or exceeds its timeout is logged and skipped; when
    every source fails the result is an empty list.
    """

    def __init__(
        self,
        sources: Sequence[tuple[str, DataSource]],
        *,
        timeout: float = DEFAULT_SOURCE_TIMEOUT_SECONDS,
        logger: CacheLogger | None = None,
    ) -> None:
        self._sources = list(sources)
        self._timeout = timeout
        self._logger = logger or CacheLogger()

    async def fetch(self, key: str) -> list[Record]:
        for name, source in self._sources:
            try:
                data = await asyncio.wait_for(source.fetch(key), self._timeout)
            except TimeoutError:
                self._logger.source_timeout(name, key, self._timeout)
                continue
            except Exception as e:
                self._logger.source_failed(name, key, e)
                continue
            return coerce_records(data)
        self._logger.no_source(key)
        return []


class RoutedSource:
    """Sends the listed keys to their own source, everything else to ``default``."""

    def __init__(
        self, default: DataSource, routes: Mapping[str, DataSource]
    ) -> None:
        self._default = default
        self._routes = dict(routes)

    async def fetch(self, key: str) -> Any:
        return await self._routes.get(key, self._default).fetch(key)
