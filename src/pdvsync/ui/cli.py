from __future__ import annotations

import asyncio
import contextlib
import sys

from dotenv import load_dotenv
from loguru import logger
import typer

from pdvsync.core.config import SyncConfig, load_sync_config_from_env
from pdvsync.core.factory import create_sync_runtime
from pdvsync.sync.status import InvalidStatusTransitionError, OrderNotFoundError

# Load environment variables from .env
load_dotenv()

app = typer.Typer(
    help="pdvsync: keeps the PDV back office in sync with online orders.",
    no_args_is_help=True,
)


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}: {message}",
        level=level,
    )


def _load_config() -> SyncConfig:
    try:
        config = load_sync_config_from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2) from e
    _configure_logging(config.log_level)
    return config


@app.command("init-db")
def init_db() -> None:
    """Create the local store tables."""
    config = _load_config()
    runtime = create_sync_runtime(config)
    typer.echo(f"Local store ready at {config.database_url}")
    for store_name in ("orders", "customers", "products"):
        typer.echo(f"  {store_name}: {runtime.db.count(store_name)} records")
    runtime.db.dispose()


@app.command("reconcile")
def reconcile() -> None:
    """Import online orders missing from the local store, then exit."""
    config = _load_config()

    async def _run() -> None:
        runtime = create_sync_runtime(config)
        try:
            result = await runtime.reconciler.reconcile_once()
        finally:
            await runtime.close()
        typer.echo(
            f"{result.status.value}: {result.imported} imported, "
            f"{result.skipped} already present, {result.failed} failed"
        )

    asyncio.run(_run())


@app.command("listen")
def listen() -> None:
    """Reconcile, then keep importing online orders as they arrive."""
    config = _load_config()

    async def _run() -> None:
        runtime = create_sync_runtime(config)
        try:
            await runtime.pipeline.start()
            while True:
                await asyncio.sleep(3600)
        finally:
            await runtime.close()

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run())


@app.command("set-status")
def set_status(
    order_id: str = typer.Argument(..., help="Order id"),
    status: str = typer.Argument(
        ..., help="pending, confirmed, preparing, ready, delivered or cancelled"
    ),
    user: str = typer.Option("Sistema", help="Who made the change"),
) -> None:
    """Move an order to a new status and mirror it upstream for online orders."""
    config = _load_config()

    async def _run() -> None:
        runtime = create_sync_runtime(config)
        try:
            order = await runtime.status_service.update_status(
                order_id, status, user=user
            )
        finally:
            await runtime.close()
        typer.echo(f"Order {order.id} is now {order.status.value}")

    try:
        asyncio.run(_run())
    except (OrderNotFoundError, InvalidStatusTransitionError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command("cache-stats")
def cache_stats() -> None:
    """Preload the essential stores and show what the cache holds."""
    config = _load_config()

    async def _run() -> None:
        runtime = create_sync_runtime(config)
        try:
            await runtime.cache.preload()
            stats = runtime.cache.stats()
        finally:
            await runtime.close()
        for key, entry in sorted(stats.items()):
            typer.echo(
                f"{key}: {entry.items} items, {entry.age_seconds:.1f}s old, "
                f"ttl {entry.ttl_seconds:.0f}s, {'valid' if entry.valid else 'stale'}"
            )

    asyncio.run(_run())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
