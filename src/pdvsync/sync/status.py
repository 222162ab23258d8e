from __future__ import annotations

from datetime import tzinfo
from typing import Any, Protocol

from pdvsync.adapters.db.store import LocalStore
from pdvsync.cache.read_through import ReadThroughCache, WriteOp
from pdvsync.core.clock import Clock, to_iso, utc_now
from pdvsync.domain.orders import (
    DEFAULT_TIMEZONE,
    CanonicalOrder,
    OrderStatus,
    StatusChange,
    order_from_record,
    order_to_record,
)

DEFAULT_STATUS_USER = "Sistema"

VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class OrderNotFoundError(LookupError):
    """Raised when no stored order has the requested id."""


class InvalidStatusTransitionError(ValueError):
    """Raised when an order cannot move from its status to the requested one."""

    def __init__(self, current: OrderStatus | None, requested: str) -> None:
        self.current = current
        self.requested = requested
        current_label = current.value if current else "unknown"
        super().__init__(
            f"Cannot change order status from {current_label} to {requested}"
        )


class StatusPusher(Protocol):
    async def push_status_update(
        self, order_id: str, fields: dict[str, Any]
    ) -> bool: ...


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in VALID_TRANSITIONS[current]


def _upstream_history(order: CanonicalOrder) -> list[dict[str, Any]]:
    # The digital menu reads camelCase keys.
    return [
        {
            "status": change.status.value,
            "previousStatus": (
                change.previous_status.value if change.previous_status else None
            ),
            "timestamp": to_iso(change.timestamp),
            "user": change.user,
        }
        for change in order.status_history
    ]


class OrderStatusService:
    """Moves orders through their lifecycle and mirrors online ones upstream."""

    def __init__(
        self,
        store: LocalStore,
        cache: ReadThroughCache,
        *,
        pusher: StatusPusher | None = None,
        tz: tzinfo = DEFAULT_TIMEZONE,
        clock: Clock = utc_now,
        store_name: str = "orders",
    ) -> None:
        self._store = store
        self._cache = cache
        self._pusher = pusher
        self._tz = tz
        self._clock = clock
        self._store_name = store_name

    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        *,
        user: str = DEFAULT_STATUS_USER,
    ) -> CanonicalOrder:
        """Change the status of a stored order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStatusTransitionError: If the status is unknown or the
                transition is not allowed.
        """
        record = await self._store.get(self._store_name, order_id)
        if record is None:
            raise OrderNotFoundError(order_id)
        order = order_from_record(record)

        target = OrderStatus.parse(new_status)
        if target is None:
            raise InvalidStatusTransitionError(order.status, str(new_status))
        if not can_transition(order.status, target):
            raise InvalidStatusTransitionError(order.status, target.value)

        now = self._clock()
        order.status_history.append(
            StatusChange(
                status=target, previous_status=order.status, timestamp=now, user=user
            )
        )
        order.status = target
        order.updated_at = now
        await self._cache.update(
            self._store_name,
            WriteOp.UPDATE,
            {**record, **order_to_record(order, self._tz)},
        )

        if order.source == "online" and self._pusher is not None:
            await self._pusher.push_status_update(
                order.id,
                {
                    "status": target.value,
                    "updatedAt": to_iso(now),
                    "statusHistory": _upstream_history(order),
                },
            )
        return order
