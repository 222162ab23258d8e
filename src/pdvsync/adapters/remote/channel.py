from __future__ import annotations

import asyncio
from collections.abc import Callable

from pdvsync.adapters.remote.protocol import ChangeEvent

_CLOSED = object()


class Subscription:
    """Cancellable, ordered stream of change events.

    Producers call ``publish``; a single consumer iterates with ``async for``.
    Once cancelled, nothing more is delivered and iteration ends.
    """

    def __init__(self, *, on_cancel: Callable[[], None] | None = None) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._cancelled = False
        self._on_cancel = on_cancel
        self._handed_out = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def publish(self, event: ChangeEvent) -> bool:
        """Queue an event. Returns False if the subscription was cancelled."""
        if self._cancelled:
            return False
        self._queue.put_nowait(event)
        return True

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._queue.put_nowait(_CLOSED)
        if self._on_cancel is not None:
            self._on_cancel()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        self._finish_handed_out()
        if self._cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or not isinstance(item, ChangeEvent):
            self._queue.task_done()
            raise StopAsyncIteration
        self._handed_out = True
        return item

    def _finish_handed_out(self) -> None:
        # The consumer asks for the next event only after handling the last one.
        if self._handed_out:
            self._handed_out = False
            self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been handled by the consumer."""
        if self._cancelled:
            return
        await self._queue.join()
