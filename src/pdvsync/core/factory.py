from __future__ import annotations

from dataclasses import dataclass

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.db.store import DBLocalStore
from pdvsync.adapters.remote.firebase import (
    FirebaseClient,
    FirebaseCollectionSource,
    FirebaseOrderSource,
)
from pdvsync.adapters.remote.memory import InMemoryOrderSource
from pdvsync.adapters.remote.protocol import RemoteOrderSource
from pdvsync.cache.read_through import ReadThroughCache
from pdvsync.cache.sources import (
    DataSource,
    FallbackSource,
    LocalStoreSource,
    RoutedSource,
)
from pdvsync.core.clock import Clock, utc_now
from pdvsync.core.config import SyncConfig
from pdvsync.notify.notifier import LoggingNotifier, OrderNotifier
from pdvsync.sync.admission import ProcessedSet
from pdvsync.sync.customers import CustomerUpsertResolver
from pdvsync.sync.importer import OrderImporter
from pdvsync.sync.normalizer import SchemaNormalizer
from pdvsync.sync.pipeline import IngestionPipeline
from pdvsync.sync.reconciler import BulkReconciler
from pdvsync.sync.status import OrderStatusService

# Stores written through ``ReadThroughCache.update``.
LOCALLY_WRITTEN = ("orders", "customers")


@dataclass(slots=True)
class SyncRuntime:
    """Every collaborator of the sync core, wired for one process."""

    config: SyncConfig
    db: DB
    store: DBLocalStore
    source: RemoteOrderSource
    cache: ReadThroughCache
    processed: ProcessedSet
    importer: OrderImporter
    reconciler: BulkReconciler
    pipeline: IngestionPipeline
    status_service: OrderStatusService
    notifier: OrderNotifier

    async def close(self) -> None:
        await self.pipeline.stop()
        await self.cache.close()
        self.db.dispose()


def create_remote_source(
    config: SyncConfig, client: FirebaseClient | None = None
) -> RemoteOrderSource:
    """Create the order source named by ``config.remote``."""
    if config.remote == "memory":
        return InMemoryOrderSource()
    if config.remote == "firebase":
        return FirebaseOrderSource(
            client or FirebaseClient.from_config(config), path=config.orders_path
        )
    raise ValueError(f"Unknown remote order source: {config.remote}")


def create_cache_source(
    config: SyncConfig, store: DBLocalStore, client: FirebaseClient | None
) -> DataSource:
    """Where the cache loads each key from.

    Stores the core writes to are read from the local store, so a refresh
    after a write sees it. Reference data comes from Firebase when there is a
    client, falling back to the local copy.
    """
    local = FallbackSource(
        [("local", LocalStoreSource(store))], timeout=config.fetch_timeout_seconds
    )
    if client is None:
        return local
    remote_first = FallbackSource(
        [
            ("firebase", FirebaseCollectionSource(client)),
            ("local", LocalStoreSource(store)),
        ],
        timeout=config.fetch_timeout_seconds,
    )
    return RoutedSource(remote_first, {name: local for name in LOCALLY_WRITTEN})


def create_sync_runtime(
    config: SyncConfig,
    *,
    db: DB | None = None,
    client: FirebaseClient | None = None,
    source: RemoteOrderSource | None = None,
    notifier: OrderNotifier | None = None,
    clock: Clock = utc_now,
) -> SyncRuntime:
    """Build the sync core from startup config.

    The processed-identifier set is created here once and shared by the
    reconciler and the live pipeline.
    """
    db = db or DB(config.database_url)
    db.create_schema()
    store = DBLocalStore(db)

    if client is None and config.remote == "firebase":
        client = FirebaseClient.from_config(config)
    source = source or create_remote_source(config, client)

    cache = ReadThroughCache(
        create_cache_source(config, store, client),
        store,
        load_timeout=config.fetch_timeout_seconds,
    )

    tz = config.tz
    processed = ProcessedSet()
    normalizer = SchemaNormalizer(cache, tz=tz, clock=clock)
    resolver = CustomerUpsertResolver(store, cache, clock=clock)
    importer = OrderImporter(normalizer, resolver, cache, tz=tz)
    reconciler = BulkReconciler(
        source=source,
        store=store,
        importer=importer,
        processed=processed,
        cooldown=config.import_cooldown,
        clock=clock,
    )
    notifier = notifier or LoggingNotifier()
    pipeline = IngestionPipeline(
        source=source,
        store=store,
        importer=importer,
        reconciler=reconciler,
        processed=processed,
        notifier=notifier,
        staleness_window=config.staleness_window,
        max_admissions=config.max_admissions,
        recency_guard=config.recency_guard,
        clock=clock,
    )
    status_service = OrderStatusService(
        store, cache, pusher=pipeline, tz=tz, clock=clock
    )
    return SyncRuntime(
        config=config,
        db=db,
        store=store,
        source=source,
        cache=cache,
        processed=processed,
        importer=importer,
        reconciler=reconciler,
        pipeline=pipeline,
        status_service=status_service,
        notifier=notifier,
    )
