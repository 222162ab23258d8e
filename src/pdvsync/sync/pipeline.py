"""Live ingestion of online orders.

``IngestionPipeline`` runs the one-shot reconciliation, then subscribes to the
remote collection and handles change events one at a time, in delivery
order:

- ADDED: admission checks, then import and exactly one notification.
- CHANGED: applied to the stored order unless it was edited locally within
  the recency guard.
- REMOVED: forgets the identifier so a re-created order can be admitted.

State machine: IDLE -> CONNECTING -> LISTENING -> STOPPED. A stopped
pipeline cannot be restarted; build a new one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import contextlib
from datetime import datetime, timedelta
import enum
from typing import Any

from pdvsync.adapters.db.store import LocalStore
from pdvsync.adapters.remote.channel import Subscription
from pdvsync.adapters.remote.protocol import (
    ChangeEvent,
    ChangeKind,
    RemoteOrderSource,
)
from pdvsync.core.clock import Clock, to_iso, utc_now
from pdvsync.domain.orders import CanonicalOrder, parse_instant
from pdvsync.notify.notifier import NewOrderSignal, OrderNotifier
from pdvsync.sync.admission import (
    DEFAULT_MAX_ADMISSIONS,
    DEFAULT_STALENESS_WINDOW,
    AdmissionDecision,
    AdmissionPolicy,
    ProcessedSet,
)
from pdvsync.sync.importer import OrderImporter
from pdvsync.sync.logger import PipelineLogger
from pdvsync.sync.reconciler import BulkReconciler

DEFAULT_RECENCY_GUARD = timedelta(seconds=10)


class PipelineState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    STOPPED = "stopped"


class PipelineStateError(RuntimeError):
    """Raised when the pipeline is asked to do something its state forbids."""


class IngestionPipeline:
    def __init__(
        self,
        *,
        source: RemoteOrderSource,
        store: LocalStore,
        importer: OrderImporter,
        reconciler: BulkReconciler,
        processed: ProcessedSet,
        notifier: OrderNotifier,
        staleness_window: timedelta = DEFAULT_STALENESS_WINDOW,
        max_admissions: int = DEFAULT_MAX_ADMISSIONS,
        recency_guard: timedelta = DEFAULT_RECENCY_GUARD,
        clock: Clock = utc_now,
        store_name: str = "orders",
        logger: PipelineLogger | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._importer = importer
        self._reconciler = reconciler
        self._processed = processed
        self._notifier = notifier
        self._recency_guard = recency_guard
        self._clock = clock
        self._store_name = store_name
        self._logger = logger or PipelineLogger()
        self._admission = AdmissionPolicy(
            processed,
            store,
            staleness_window=staleness_window,
            max_admissions=max_admissions,
            clock=clock,
            store_name=store_name,
        )

        self._state = PipelineState.IDLE
        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        # Upstream writes made by this process, so their echoes are not
        # mistaken for remote edits.
        self._local_writes: dict[str, datetime] = {}

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def processed_count(self) -> int:
        return len(self._processed)

    @property
    def admitted_count(self) -> int:
        return self._admission.admitted_count

    # Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Reconcile once, then start consuming live events.

        Raises:
            PipelineStateError: If the pipeline was stopped.
        """
        if self._state in (PipelineState.CONNECTING, PipelineState.LISTENING):
            self._logger.already_running(self._state.value)
            return
        if self._state is PipelineState.STOPPED:
            raise PipelineStateError(
                "A stopped ingestion pipeline cannot be restarted"
            )

        self._state = PipelineState.CONNECTING
        self._logger.connecting()
        await self._reconciler.reconcile_once()
        if self._state is not PipelineState.CONNECTING:
            return

        try:
            subscription = await self._source.subscribe()
        except Exception as e:
            self._logger.subscribe_failed(e)
            if self._state is PipelineState.CONNECTING:
                self._state = PipelineState.IDLE
            return
        if self._state is not PipelineState.CONNECTING:
            subscription.cancel()
            return

        self._subscription = subscription
        self._consumer = asyncio.create_task(
            self._consume(subscription), name="pdvsync-ingestion"
        )
        self._state = PipelineState.LISTENING
        self._logger.listening(len(self._processed))

    async def stop(self) -> None:
        """Stop listening. Safe to call in any state, any number of times."""
        previous = self._state
        self._state = PipelineState.STOPPED
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if previous is not PipelineState.STOPPED:
            self._logger.stopped(previous.value)

    async def wait_until_idle(self) -> None:
        """Wait until every event delivered so far has been handled."""
        if self._subscription is not None:
            await self._subscription.join()

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            await self.handle_event(event)

    # Events ----------------------------------------------------------------

    async def handle_event(self, event: ChangeEvent) -> None:
        """Handle one change event; failures are logged, never raised."""
        try:
            if event.kind is ChangeKind.ADDED:
                await self._handle_added(event.key, event.value or {})
            elif event.kind is ChangeKind.CHANGED:
                await self._handle_changed(event.key, event.value or {})
            else:
                self._handle_removed(event.key)
        except Exception as e:
            self._logger.event_failed(event.kind.value, event.key, e)

    async def _handle_added(self, key: str, payload: Mapping[str, Any]) -> None:
        result = await self._admission.evaluate(key, payload)
        if result.decision is AdmissionDecision.OVER_LIMIT:
            self._logger.over_limit(key, self._admission.max_admissions)
            return
        if not result.admitted:
            self._logger.skipped(key, result.decision.value)
            return

        try:
            imported = await self._importer.import_order(key, payload)
        except Exception as e:
            # Forget the key so a redelivery gets another chance.
            self._processed.discard(key)
            self._logger.import_failed(key, e)
            return
        await self._notify(imported.order)

    async def _notify(self, order: CanonicalOrder) -> None:
        signal = NewOrderSignal(
            order_id=order.id,
            number=order.number,
            customer_name=order.customer.name,
            item_count=order.item_count,
            total=order.totals.total,
        )
        try:
            await self._notifier.new_order(signal)
            await self._notifier.increment_unread()
        except Exception as e:
            self._logger.notify_failed(order.id, e)

    async def _handle_changed(self, key: str, payload: Mapping[str, Any]) -> None:
        local = await self._store.get(self._store_name, key)
        if local is None:
            self._logger.change_unknown(key)
            return

        now = self._clock()
        last_local_edit = parse_instant(local.get("updated_at"))
        pushed_at = self._local_writes.get(key)
        if pushed_at is not None and (
            last_local_edit is None or pushed_at > last_local_edit
        ):
            last_local_edit = pushed_at
        if last_local_edit is not None:
            since = now - last_local_edit
            if since < self._recency_guard:
                self._logger.change_suppressed(key, since.total_seconds())
                return

        await self._importer.apply_remote_change(local, payload, now)

    def _handle_removed(self, key: str) -> None:
        self._processed.discard(key)
        self._local_writes.pop(key, None)
        self._logger.removed(key)

    # Upstream writes -------------------------------------------------------

    async def push_status_update(
        self, order_id: str, fields: Mapping[str, Any]
    ) -> bool:
        """Write ``fields`` (plus ``lastSyncedAt``) to the remote order.

        Returns:
            True when the remote accepted the write, False otherwise.
        """
        now = self._clock()
        payload = {**fields, "lastSyncedAt": to_iso(now)}
        return await self._push(order_id, payload, now)

    async def confirm_received(self, order_id: str) -> bool:
        """Tell the digital menu that the back office has the order."""
        now = self._clock()
        payload = {"receivedBySystem": True, "receivedAt": to_iso(now)}
        return await self._push(order_id, payload, now)

    async def _push(
        self, order_id: str, payload: dict[str, Any], now: datetime
    ) -> bool:
        self._local_writes[order_id] = now
        try:
            await self._source.update(order_id, payload)
        except Exception as e:
            self._logger.push_failed(order_id, e)
            return False
        self._logger.pushed(order_id, sorted(payload))
        return True
