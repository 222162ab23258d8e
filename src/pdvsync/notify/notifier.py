"""New-order notifications for the back office.

The pipeline tells the notifier about every admitted online order exactly
once. Rendering toasts, sounds or badges is up to the implementation; the
default one writes to the log and keeps the unread counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

import loguru
from loguru import logger


@dataclass(frozen=True, slots=True)
class NewOrderSignal:
    order_id: str
    number: str
    customer_name: str
    item_count: int
    total: Decimal


@runtime_checkable
class OrderNotifier(Protocol):
    async def new_order(self, signal: NewOrderSignal) -> None: ...

    async def increment_unread(self) -> int: ...


class LoggingNotifier:
    """OrderNotifier that announces orders in the log."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize notifier.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance
        self._unread = 0

    @property
    def unread(self) -> int:
        return self._unread

    async def new_order(self, signal: NewOrderSignal) -> None:
        """Log new order announcement."""
        self._logger.bind(
            order_id=signal.order_id, items=signal.item_count, total=str(signal.total)
        ).success(
            "New online order #{} from {}: {} items, R$ {}",
            signal.number,
            signal.customer_name,
            signal.item_count,
            signal.total,
        )

    async def increment_unread(self) -> int:
        self._unread += 1
        return self._unread

    def mark_all_read(self) -> None:
        self._unread = 0
