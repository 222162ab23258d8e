from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

from pdvsync.adapters.db.facade import DB

Record = dict[str, Any]
T = TypeVar("T")


@runtime_checkable
class LocalStore(Protocol):
    """Async access to the authoritative local record stores."""

    async def get_all(self, store_name: str) -> list[Record]: ...

    async def get(self, store_name: str, record_id: str) -> Record | None: ...

    async def save(self, store_name: str, record: Mapping[str, Any]) -> Record: ...

    async def update(self, store_name: str, record: Mapping[str, Any]) -> Record: ...

    async def remove(self, store_name: str, record_id: str) -> bool: ...


class DBLocalStore:
    """LocalStore over the SQLAlchemy facade.

    Every call runs on a worker thread; calls are serialized so a read issued
    after a write observes it.
    """

    def __init__(self, db: DB) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    @property
    def db(self) -> DB:
        return self._db

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    async def get_all(self, store_name: str) -> list[Record]:
        return await self._run(self._db.get_all, store_name)

    async def get(self, store_name: str, record_id: str) -> Record | None:
        return await self._run(self._db.get, store_name, record_id)

    async def save(self, store_name: str, record: Mapping[str, Any]) -> Record:
        return await self._run(self._db.save, store_name, record)

    async def update(self, store_name: str, record: Mapping[str, Any]) -> Record:
        return await self._run(self._db.update, store_name, record)

    async def remove(self, store_name: str, record_id: str) -> bool:
        return await self._run(self._db.remove, store_name, record_id)
