from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, tzinfo
from typing import Any

from pdvsync.cache.read_through import ReadThroughCache, WriteOp
from pdvsync.domain.orders import (
    DEFAULT_TIMEZONE,
    CanonicalOrder,
    OrderStatus,
    StatusChange,
    order_from_record,
    order_to_record,
)
from pdvsync.sync.customers import CustomerUpsertResolver
from pdvsync.sync.logger import ImportLogger
from pdvsync.sync.normalizer import NormalizedOrder, SchemaNormalizer

REMOTE_CHANGE_USER = "online"


def merge_remote_order(
    local: CanonicalOrder,
    remote: CanonicalOrder,
    remote_status: OrderStatus | None,
    now: datetime,
) -> CanonicalOrder:
    """Apply a remote correction to a stored order.

    Identity, numbering, creation time, the customer link, the fiscal record
    and the status history stay local; contents come from the remote copy.
    """
    customer = remote.customer
    customer.id = local.customer.id
    merged = CanonicalOrder(
        id=local.id,
        number=local.number,
        created_at=local.created_at,
        updated_at=now,
        source=local.source,
        status=local.status,
        items=remote.items,
        customer=customer,
        customer_id=local.customer_id,
        totals=remote.totals,
        payment_method=remote.payment_method,
        payment_status=remote.payment_status,
        delivery_type=remote.delivery_type,
        estimated_time=remote.estimated_time,
        observations=remote.observations,
        metadata=local.metadata,
        fiscal=local.fiscal,
        status_history=list(local.status_history),
    )
    if remote_status is not None and remote_status is not local.status:
        merged.status_history.append(
            StatusChange(
                status=remote_status,
                previous_status=local.status,
                timestamp=now,
                user=REMOTE_CHANGE_USER,
            )
        )
        merged.status = remote_status
    return merged


class OrderImporter:
    """Normalize -> link customer -> persist, shared by live and bulk import."""

    def __init__(
        self,
        normalizer: SchemaNormalizer,
        resolver: CustomerUpsertResolver,
        cache: ReadThroughCache,
        *,
        tz: tzinfo = DEFAULT_TIMEZONE,
        store_name: str = "orders",
        logger: ImportLogger | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._resolver = resolver
        self._cache = cache
        self._tz = tz
        self._store_name = store_name
        self._logger = logger or ImportLogger()

    async def import_order(self, key: str, payload: Any) -> NormalizedOrder:
        result = await self._normalizer.normalize(payload, key=key)
        order = result.order
        try:
            await self._resolver.resolve(order)
        except Exception as e:
            # The order is kept even when the customer record cannot be written.
            self._logger.customer_link_failed(order.id, e)
        await self._cache.update(
            self._store_name, WriteOp.ADD, order_to_record(order, self._tz)
        )
        self._logger.imported(order.id, order.number, order.totals.total)
        return result

    async def apply_remote_change(
        self, local_record: Mapping[str, Any], payload: Any, now: datetime
    ) -> CanonicalOrder:
        """Merge a remote update into ``local_record`` and store the result."""
        local = order_from_record(local_record)
        remote = (await self._normalizer.normalize(payload, key=local.id)).order
        remote_status = (
            OrderStatus.parse(payload.get("status"))
            if isinstance(payload, Mapping)
            else None
        )
        merged = merge_remote_order(local, remote, remote_status, now)
        record = {**local_record, **order_to_record(merged, self._tz)}
        await self._cache.update(self._store_name, WriteOp.UPDATE, record)
        self._logger.change_applied(merged.id, merged.status.value)
        return merged
