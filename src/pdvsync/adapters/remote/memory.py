from __future__ import annotations

from collections.abc import Mapping
import copy
from typing import Any

from pdvsync.adapters.remote.channel import Subscription
from pdvsync.adapters.remote.protocol import (
    ChangeEvent,
    ChangeKind,
    RemoteSourceError,
)


class InMemoryOrderSource:
    """RemoteOrderSource kept in process memory.

    Behaves like a realtime collection: subscribing replays the existing
    children as ADDED events, and every later mutation (including ``update``
    calls made by the pipeline itself) is echoed to all subscribers.
    Setting ``available`` to False makes every call raise RemoteSourceError.
    """

    def __init__(self, initial: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._children: dict[str, dict[str, Any]] = {
            key: copy.deepcopy(dict(value)) for key, value in (initial or {}).items()
        }
        self._subscriptions: list[Subscription] = []
        self.available = True
        self.update_calls: list[tuple[str, dict[str, Any]]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def child(self, key: str) -> dict[str, Any] | None:
        value = self._children.get(key)
        return copy.deepcopy(value) if value is not None else None

    def _ensure_available(self) -> None:
        if not self.available:
            raise RemoteSourceError("In-memory order source is unavailable")

    def _emit(self, kind: ChangeKind, key: str, value: dict[str, Any] | None) -> None:
        for subscription in list(self._subscriptions):
            subscription.publish(
                ChangeEvent(kind=kind, key=key, value=copy.deepcopy(value))
            )

    def _forget(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def subscribe(self) -> Subscription:
        self._ensure_available()
        subscription = Subscription(on_cancel=lambda: self._forget(subscription))
        self._subscriptions.append(subscription)
        for key, value in self._children.items():
            subscription.publish(
                ChangeEvent(kind=ChangeKind.ADDED, key=key, value=copy.deepcopy(value))
            )
        return subscription

    async def snapshot(self) -> dict[str, dict[str, Any]]:
        self._ensure_available()
        return copy.deepcopy(self._children)

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        self._ensure_available()
        self.update_calls.append((key, copy.deepcopy(fields)))
        existed = key in self._children
        self._children.setdefault(key, {}).update(copy.deepcopy(fields))
        kind = ChangeKind.CHANGED if existed else ChangeKind.ADDED
        self._emit(kind, key, self._children[key])

    def push(self, key: str, value: Mapping[str, Any]) -> None:
        """Add or replace a child, as a producer writing a new order would."""
        existed = key in self._children
        self._children[key] = copy.deepcopy(dict(value))
        kind = ChangeKind.CHANGED if existed else ChangeKind.ADDED
        self._emit(kind, key, self._children[key])

    def delete(self, key: str) -> None:
        if self._children.pop(key, None) is not None:
            self._emit(ChangeKind.REMOVED, key, None)
