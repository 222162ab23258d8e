from __future__ import annotations

from decimal import Decimal

import loguru
from loguru import logger


class NormalizerLogger:
    """Handles logging for SchemaNormalizer."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def normalized(
        self, order_id: str, schema: str, item_count: int, total: Decimal
    ) -> None:
        """Log payload normalized into an order."""
        self._logger.bind(order_id=order_id, schema=schema, items=item_count).debug(
            "Normalized order {} ({} schema, {} items, total {})",
            order_id,
            schema,
            item_count,
            total,
        )

    def warning(self, order_id: str, message: str) -> None:
        """Log normalization warning."""
        self._logger.bind(order_id=order_id).warning(
            "Order {}: {}", order_id, message
        )


class CustomerLogger:
    """Handles logging for CustomerUpsertResolver."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def insufficient_contact(self, order_id: str) -> None:
        """Log order without enough contact details to link a customer."""
        self._logger.bind(order_id=order_id).warning(
            "Order {} has no customer name or phone; not linking a customer",
            order_id,
        )

    def updated(self, customer_id: str, order_id: str) -> None:
        """Log existing customer refreshed."""
        self._logger.bind(customer_id=customer_id, order_id=order_id).info(
            "Updated customer {} from order {}", customer_id, order_id
        )

    def created(self, customer_id: str, order_id: str) -> None:
        """Log new customer created."""
        self._logger.bind(customer_id=customer_id, order_id=order_id).info(
            "Created customer {} from order {}", customer_id, order_id
        )


class ImportLogger:
    """Handles logging for OrderImporter."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def imported(self, order_id: str, number: str, total: Decimal) -> None:
        """Log order imported."""
        self._logger.bind(order_id=order_id, number=number).success(
            "Imported online order {} (#{}, total {})", order_id, number, total
        )

    def customer_link_failed(self, order_id: str, error: Exception) -> None:
        """Log customer linking failure."""
        self._logger.bind(order_id=order_id, error=str(error)).error(
            "Could not link customer for order {}: {}", order_id, error
        )

    def change_applied(self, order_id: str, status: str) -> None:
        """Log remote change merged into the stored order."""
        self._logger.bind(order_id=order_id, status=status).info(
            "Applied remote change to order {} (status {})", order_id, status
        )


class PipelineLogger:
    """Handles logging for IngestionPipeline."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def already_running(self, state: str) -> None:
        """Log start ignored."""
        self._logger.bind(state=state).warning(
            "Ingestion pipeline already {}; ignoring start", state
        )

    def connecting(self) -> None:
        """Log pipeline connecting."""
        self._logger.info("Connecting ingestion pipeline")

    def listening(self, processed_count: int) -> None:
        """Log pipeline listening."""
        self._logger.bind(processed=processed_count).info(
            "Listening for online orders ({} already processed)", processed_count
        )

    def subscribe_failed(self, error: Exception) -> None:
        """Log subscription failure."""
        self._logger.bind(error=str(error)).error(
            "Could not subscribe to online orders: {}", error
        )

    def stopped(self, previous_state: str) -> None:
        """Log pipeline stopped."""
        self._logger.bind(previous_state=previous_state).info(
            "Ingestion pipeline stopped (was {})", previous_state
        )

    def skipped(self, key: str, decision: str) -> None:
        """Log order not admitted."""
        self._logger.bind(key=key, decision=decision).debug(
            "Skipping order {} ({})", key, decision
        )

    def over_limit(self, key: str, limit: int) -> None:
        """Log order dropped by the admission limit."""
        self._logger.bind(key=key, limit=limit).warning(
            "Admission limit of {} orders reached; dropping {}", limit, key
        )

    def import_failed(self, key: str, error: Exception) -> None:
        """Log import failure."""
        self._logger.bind(key=key, error=str(error)).error(
            "Failed to import order {}: {}", key, error
        )

    def event_failed(self, kind: str, key: str, error: Exception) -> None:
        """Log unexpected failure while handling an event."""
        self._logger.bind(kind=kind, key=key, error=str(error)).error(
            "Failed to handle {} event for {}: {}", kind, key, error
        )

    def notify_failed(self, key: str, error: Exception) -> None:
        """Log notifier failure."""
        self._logger.bind(key=key, error=str(error)).error(
            "Could not notify about order {}: {}", key, error
        )

    def change_unknown(self, key: str) -> None:
        """Log change for an order not stored locally."""
        self._logger.bind(key=key).debug(
            "Ignoring change for order {} not stored locally", key
        )

    def change_suppressed(self, key: str, seconds_since_local: float) -> None:
        """Log change ignored because of a recent local edit."""
        self._logger.bind(key=key, since=round(seconds_since_local, 1)).debug(
            "Ignoring change for order {}; edited locally {:.1f}s ago",
            key,
            seconds_since_local,
        )

    def removed(self, key: str) -> None:
        """Log order removed upstream."""
        self._logger.bind(key=key).info("Order {} removed upstream", key)

    def pushed(self, order_id: str, fields: list[str]) -> None:
        """Log upstream write."""
        self._logger.bind(order_id=order_id, fields=fields).info(
            "Pushed {} to order {}", ", ".join(fields), order_id
        )

    def push_failed(self, order_id: str, error: Exception) -> None:
        """Log upstream write failure."""
        self._logger.bind(order_id=order_id, error=str(error)).error(
            "Could not push update for order {}: {}", order_id, error
        )


class ReconcilerLogger:
    """Handles logging for BulkReconciler."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def already_done(self) -> None:
        """Log reconciliation skipped because it already completed."""
        self._logger.debug("Initial import already done; skipping")

    def cooldown(self, seconds_left: float) -> None:
        """Log reconciliation skipped during the cooldown."""
        self._logger.bind(seconds_left=round(seconds_left)).info(
            "Initial import attempted recently; retry in {:.0f}s", seconds_left
        )

    def start(self) -> None:
        """Log start of reconciliation."""
        self._logger.info("Reconciling online orders with local store")

    def snapshot_failed(self, error: Exception) -> None:
        """Log snapshot read failure."""
        self._logger.bind(error=str(error)).error(
            "Could not read online orders snapshot: {}", error
        )

    def empty(self) -> None:
        """Log empty upstream collection."""
        self._logger.info("No online orders upstream")

    def import_failed(self, key: str, error: Exception) -> None:
        """Log import failure during reconciliation."""
        self._logger.bind(key=key, error=str(error)).error(
            "Failed to import order {} during reconciliation: {}", key, error
        )

    def completed(self, imported: int, skipped: int, failed: int) -> None:
        """Log reconciliation summary."""
        self._logger.bind(imported=imported, skipped=skipped, failed=failed).info(
            "Reconciliation complete: {} imported, {} already present, {} failed",
            imported,
            skipped,
            failed,
        )
