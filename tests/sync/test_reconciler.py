from __future__ import annotations

import asyncio
from datetime import timedelta

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.remote.memory import InMemoryOrderSource
from pdvsync.sync.admission import ProcessedSet
from pdvsync.sync.reconciler import BulkReconciler, ReconcileResult, ReconcileStatus
from tests.fixtures.online_orders import (
    START,
    CountingStore,
    FakeClock,
    create_importer,
    english_payload,
    order_key,
    portuguese_payload,
)

OLD = START - timedelta(days=2)
NEW_KEY = order_key(START, "new")
OLD_KEY = order_key(OLD, "old")
KNOWN_KEY = order_key(START, "known")


def create_reconciler(
    db: DB, clock: FakeClock, source: InMemoryOrderSource
) -> tuple[BulkReconciler, ProcessedSet, CountingStore]:
    store = CountingStore(db)
    importer, _ = create_importer(store, clock)
    processed = ProcessedSet()
    reconciler = BulkReconciler(
        source=source,
        store=store,
        importer=importer,
        processed=processed,
        clock=clock,
    )
    return reconciler, processed, store


def test_imports_missing_orders_once(db: DB, clock: FakeClock) -> None:
    db.save("orders", {"id": KNOWN_KEY, "status": "delivered"})
    source = InMemoryOrderSource(
        {
            NEW_KEY: english_payload(START),
            OLD_KEY: portuguese_payload(OLD),
            KNOWN_KEY: english_payload(START),
        }
    )
    reconciler, processed, _ = create_reconciler(db, clock, source)

    async def run() -> tuple[ReconcileResult, ReconcileResult]:
        first = await reconciler.reconcile_once()
        second = await reconciler.reconcile_once()
        return first, second

    first, second = asyncio.run(run())

    assert first == ReconcileResult(imported=2, skipped=1, failed=0)
    assert second.status is ReconcileStatus.ALREADY_DONE
    assert reconciler.done
    assert set(processed) == {NEW_KEY, OLD_KEY, KNOWN_KEY}
    # Stale orders are still backfilled; only live admission filters by age.
    assert db.get("orders", OLD_KEY) is not None
    assert db.get("orders", KNOWN_KEY) == {"id": KNOWN_KEY, "status": "delivered"}


def test_empty_remote_completes(db: DB, clock: FakeClock) -> None:
    reconciler, _, _ = create_reconciler(db, clock, InMemoryOrderSource())

    result = asyncio.run(reconciler.reconcile_once())

    assert result == ReconcileResult()
    assert reconciler.done


def test_failed_snapshot_is_retried_after_the_cooldown(
    db: DB, clock: FakeClock
) -> None:
    source = InMemoryOrderSource({NEW_KEY: english_payload(START)})
    source.available = False
    reconciler, _, _ = create_reconciler(db, clock, source)

    async def run() -> list[ReconcileStatus]:
        statuses = [(await reconciler.reconcile_once()).status]
        source.available = True
        clock.advance(minutes=4)
        statuses.append((await reconciler.reconcile_once()).status)
        clock.advance(minutes=1)
        statuses.append((await reconciler.reconcile_once()).status)
        return statuses

    assert asyncio.run(run()) == [
        ReconcileStatus.FAILED,
        ReconcileStatus.COOLDOWN,
        ReconcileStatus.COMPLETED,
    ]
    assert db.get("orders", NEW_KEY) is not None


def test_failed_import_is_counted_and_marked(db: DB, clock: FakeClock) -> None:
    source = InMemoryOrderSource({NEW_KEY: english_payload(START)})
    reconciler, processed, store = create_reconciler(db, clock, source)
    store.fail_stores.add("orders")

    result = asyncio.run(reconciler.reconcile_once())

    assert result == ReconcileResult(imported=0, skipped=0, failed=1)
    assert NEW_KEY in processed
    assert db.get_all("orders") == []
