"""Convert raw online-order payloads into canonical orders.

``normalize_payload`` is a pure function of its inputs; ``SchemaNormalizer``
supplies those inputs (catalog, clock, order number) and logs the outcome.
Malformed input never raises: every field has a fallback and anything worth
a human look is reported in ``NormalizedOrder.warnings``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
import random
from typing import Any

from pdvsync.cache.read_through import ReadThroughCache
from pdvsync.core.clock import Clock, utc_now
from pdvsync.domain.orders import (
    CENTS,
    DEFAULT_TIMEZONE,
    ZERO,
    CanonicalOrder,
    FiscalRecord,
    OrderCustomer,
    OrderLine,
    OrderStatus,
    OrderTotals,
    parse_money,
)
from pdvsync.sync.catalog import find_catalog_price
from pdvsync.sync.dates import InstantSource, resolve_order_instant
from pdvsync.sync.extras import classify_extras, resolve_customizations
from pdvsync.sync.logger import NormalizerLogger
from pdvsync.sync.payloads import (
    RawItem,
    RawOrderPayload,
    SchemaVariant,
    detect_schema,
)

DEFAULT_CUSTOMER_NAME = "Cliente Online"
DEFAULT_ITEM_NAME = "Produto"
DEFAULT_PAYMENT_METHOD = "Dinheiro"
DEFAULT_PAYMENT_STATUS = "pending"
DEFAULT_DELIVERY_TYPE = "delivery"
DEFAULT_ESTIMATED_TIME = 45
PLATFORM_NAME = "Cardápio Digital GO BURGER"
PLATFORM_URL = "https://go-burguer.netlify.app/"

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class NormalizedOrder:
    order: CanonicalOrder
    schema: SchemaVariant
    instant_source: InstantSource
    warnings: tuple[str, ...] = ()


def generate_order_number(
    now: datetime,
    tz: tzinfo = DEFAULT_TIMEZONE,
    rng: random.Random | None = None,
) -> str:
    """``YYYYMMDD-NNN`` in the business timezone, NNN random."""
    suffix = (rng or random).randrange(1000)
    return f"{now.astimezone(tz):%Y%m%d}-{suffix:03d}"


def _first_amount(*values: Any) -> Decimal | None:
    """First positive amount among ``values``; zero counts as missing."""
    for value in values:
        amount = parse_money(value)
        if amount > 0:
            return amount
    return None


def _build_line(
    item: RawItem,
    index: int,
    *,
    catalog: Sequence[Mapping[str, Any]],
    now: datetime,
    warnings: list[str],
) -> OrderLine:
    name = item.name or DEFAULT_ITEM_NAME
    price = parse_money(item.price)
    if price == 0:
        match = find_catalog_price(item_id=item.id, name=name, products=catalog)
        if match is not None:
            price = match.price
        else:
            warnings.append(f"no price for item {name!r}; imported at 0")
    return OrderLine(
        id=item.id or f"item-{int(now.timestamp() * 1000)}-{index}",
        name=name,
        quantity=item.quantity_or_one,
        unit_price=price,
        customizations=resolve_customizations(classify_extras(item.extras)),
        notes=item.notes,
    )


def _build_totals(
    payload: RawOrderPayload, lines: Sequence[OrderLine], warnings: list[str]
) -> OrderTotals:
    amounts = payload.amounts
    derived_subtotal = sum((line.total for line in lines), ZERO)
    subtotal = _first_amount(payload.subtotal, amounts.subtotal)
    if subtotal is None:
        subtotal = derived_subtotal
    delivery_fee = _first_amount(payload.delivery_fee, amounts.delivery_fee) or ZERO
    discount = _first_amount(payload.discount, amounts.discount) or ZERO
    derived_total = max(subtotal + delivery_fee - discount, ZERO)

    total = _first_amount(
        payload.total, amounts.total, payload.payment.amount, payload.payment.total
    )
    if total is None:
        total = derived_total
    elif abs(total - derived_total) > CENTS:
        warnings.append(
            f"payload total {total} differs from computed total {derived_total}"
        )
    return OrderTotals(
        subtotal=subtotal, delivery_fee=delivery_fee, discount=discount, total=total
    )


def normalize_payload(
    raw: Any,
    *,
    key: str | None,
    catalog: Sequence[Mapping[str, Any]],
    now: datetime,
    tz: tzinfo = DEFAULT_TIMEZONE,
    number: str | None = None,
) -> NormalizedOrder:
    """Build a canonical order from one raw payload.

    Args:
        raw: The payload as delivered; non-mappings are treated as empty.
        key: The event identifier, preferred over any ``id`` in the payload.
        catalog: Product records used to price items that arrive without one.
        now: Current instant; used for ``updated_at`` and as the last date
            fallback.
        tz: Business timezone for the order number.
        number: Order number to assign; generated when omitted.

    Returns:
        The order, the detected schema variant, where the creation instant
        came from and any warnings.
    """
    data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    schema = detect_schema(data)
    payload = RawOrderPayload.parse(data)
    warnings: list[str] = []

    order_id = key or payload.id or f"online-{int(now.timestamp() * 1000)}"
    resolved = resolve_order_instant(data, order_id, now)
    if resolved.source is InstantSource.NOW:
        warnings.append("no creation date in payload; using arrival time")

    if not payload.items:
        warnings.append("order has no items")
    lines = [
        _build_line(item, index, catalog=catalog, now=now, warnings=warnings)
        for index, item in enumerate(payload.items)
    ]
    totals = _build_totals(payload, lines, warnings)

    contact = payload.customer
    customer = OrderCustomer(
        name=contact.name or DEFAULT_CUSTOMER_NAME,
        phone=contact.phone,
        address=contact.address,
        neighborhood=contact.neighborhood,
        complement=contact.complement,
        reference=contact.reference,
    )

    order = CanonicalOrder(
        id=order_id,
        number=number or generate_order_number(now, tz),
        created_at=resolved.instant,
        updated_at=now,
        source="online",
        status=OrderStatus.PENDING,
        items=lines,
        customer=customer,
        totals=totals,
        payment_method=(
            payload.payment_method or payload.payment.method or DEFAULT_PAYMENT_METHOD
        ),
        payment_status=payload.payment_status or DEFAULT_PAYMENT_STATUS,
        delivery_type=(
            payload.delivery_type or payload.delivery.kind or DEFAULT_DELIVERY_TYPE
        ),
        estimated_time=payload.estimated_minutes or DEFAULT_ESTIMATED_TIME,
        observations=payload.observations,
        metadata={
            "platform": PLATFORM_NAME,
            "url": PLATFORM_URL,
            "ip": payload.metadata.ip,
            "user_agent": payload.metadata.user_agent,
        },
        fiscal=FiscalRecord(),
    )
    return NormalizedOrder(
        order=order,
        schema=schema,
        instant_source=resolved.source,
        warnings=tuple(warnings),
    )


class SchemaNormalizer:
    """Normalizes payloads against the cached product catalog."""

    def __init__(
        self,
        cache: ReadThroughCache,
        *,
        tz: tzinfo = DEFAULT_TIMEZONE,
        clock: Clock = utc_now,
        catalog_key: str = "products",
        number_factory: Callable[[datetime], str] | None = None,
        logger: NormalizerLogger | None = None,
    ) -> None:
        self._cache = cache
        self._tz = tz
        self._clock = clock
        self._catalog_key = catalog_key
        self._number_factory = number_factory or (
            lambda now: generate_order_number(now, tz)
        )
        self._logger = logger or NormalizerLogger()

    async def normalize(self, raw: Any, *, key: str | None = None) -> NormalizedOrder:
        now = self._clock()
        catalog = await self._cache.get(self._catalog_key)
        result = normalize_payload(
            raw,
            key=key,
            catalog=catalog,
            now=now,
            tz=self._tz,
            number=self._number_factory(now),
        )
        order = result.order
        for warning in result.warnings:
            self._logger.warning(order.id, warning)
        self._logger.normalized(
            order.id, result.schema.value, len(order.items), order.totals.total
        )
        return result
