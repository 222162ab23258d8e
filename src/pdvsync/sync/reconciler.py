from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import enum

from pdvsync.adapters.db.store import LocalStore
from pdvsync.adapters.remote.protocol import RemoteOrderSource
from pdvsync.core.clock import Clock, utc_now
from pdvsync.sync.admission import ProcessedSet
from pdvsync.sync.importer import OrderImporter
from pdvsync.sync.logger import ReconcilerLogger

DEFAULT_IMPORT_COOLDOWN = timedelta(minutes=5)


class ReconcileStatus(enum.Enum):
    COMPLETED = "completed"
    ALREADY_DONE = "already_done"
    COOLDOWN = "cooldown"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    status: ReconcileStatus = ReconcileStatus.COMPLETED


class BulkReconciler:
    """One-shot import of orders that reached the remote while we were away.

    Diffs a snapshot of the remote collection against the local ``orders``
    store and imports what is missing, without notifications. Every seen
    identifier is marked processed so the live subscription's replay of
    existing children is a no-op.
    """

    def __init__(
        self,
        *,
        source: RemoteOrderSource,
        store: LocalStore,
        importer: OrderImporter,
        processed: ProcessedSet,
        cooldown: timedelta = DEFAULT_IMPORT_COOLDOWN,
        clock: Clock = utc_now,
        store_name: str = "orders",
        logger: ReconcilerLogger | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._importer = importer
        self._processed = processed
        self._cooldown = cooldown
        self._clock = clock
        self._store_name = store_name
        self._logger = logger or ReconcilerLogger()
        self._done = False
        self._last_attempt: datetime | None = None

    @property
    def done(self) -> bool:
        return self._done

    async def reconcile_once(self) -> ReconcileResult:
        if self._done:
            self._logger.already_done()
            return ReconcileResult(status=ReconcileStatus.ALREADY_DONE)

        now = self._clock()
        if self._last_attempt is not None:
            elapsed = now - self._last_attempt
            if elapsed < self._cooldown:
                self._logger.cooldown((self._cooldown - elapsed).total_seconds())
                return ReconcileResult(status=ReconcileStatus.COOLDOWN)
        self._last_attempt = now

        self._logger.start()
        try:
            snapshot = await self._source.snapshot()
            records = await self._store.get_all(self._store_name) if snapshot else []
        except Exception as e:
            self._logger.snapshot_failed(e)
            return ReconcileResult(status=ReconcileStatus.FAILED)

        if not snapshot:
            self._logger.empty()
            self._done = True
            return ReconcileResult()

        local_ids = {str(record.get("id")) for record in records}
        imported = skipped = failed = 0
        for key, payload in snapshot.items():
            if key in local_ids:
                skipped += 1
            else:
                try:
                    await self._importer.import_order(key, payload)
                    imported += 1
                except Exception as e:
                    failed += 1
                    self._logger.import_failed(key, e)
            self._processed.add(key)

        self._done = True
        self._logger.completed(imported, skipped, failed)
        return ReconcileResult(imported=imported, skipped=skipped, failed=failed)
