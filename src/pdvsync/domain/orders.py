"""Canonical order records shared by the sync core and the back office.

Orders are kept as dataclasses in memory and as plain JSON-able dicts in the
local store. ``order_to_record`` and ``order_from_record`` convert between the
two; money travels as decimal strings and the calendar fields are recomputed
from ``created_at`` on every serialization.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, tzinfo
from decimal import Decimal, InvalidOperation
import enum
import math
from typing import Any
from zoneinfo import ZoneInfo

from pdvsync.core.clock import to_iso

DEFAULT_TIMEZONE = ZoneInfo("America/Sao_Paulo")
ZERO = Decimal("0")
CENTS = Decimal("0.01")

Record = dict[str, Any]


class OrderStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> OrderStatus | None:
        """Return the status named by ``value`` or None when it is not one."""
        if isinstance(value, OrderStatus):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_money(value: Any) -> Decimal:
    """Coerce a loosely typed amount into a non-negative Decimal in cents.

    Accepts numbers, numeric strings, ``"R$ 12,50"`` style strings and
    Decimals. Anything else, including negative amounts, becomes zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int | float):
        if isinstance(value, float) and not math.isfinite(value):
            return ZERO
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.replace("R$", "").strip()
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return ZERO
        if not amount.is_finite():
            return ZERO
    else:
        return ZERO
    if amount < 0:
        return ZERO
    return amount.quantize(CENTS)


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime (naive means UTC)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True, slots=True)
class OrderCalendar:
    """Calendar fields derived from an order's creation instant."""

    date: date
    year: int
    month: int
    day: int
    hour: int
    minute: int
    day_of_week: int  # 0 = Sunday
    week_number: int

    @classmethod
    def from_instant(cls, instant: datetime, tz: tzinfo) -> OrderCalendar:
        local = instant.astimezone(tz)
        day_of_week = (local.weekday() + 1) % 7
        return cls(
            date=local.date(),
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute,
            day_of_week=day_of_week,
            week_number=math.ceil((local.day + 6 - day_of_week) / 7),
        )


@dataclass(frozen=True, slots=True)
class Customization:
    name: str
    price: Decimal = ZERO


@dataclass(slots=True)
class OrderLine:
    """One item of an order, with customizations grouped by category."""

    id: str
    name: str
    quantity: int
    unit_price: Decimal
    customizations: dict[str, list[Customization]] = field(default_factory=dict)
    notes: str = ""

    @property
    def extras_total(self) -> Decimal:
        return sum(
            (item.price for group in self.customizations.values() for item in group),
            ZERO,
        )

    @property
    def total(self) -> Decimal:
        return (self.unit_price + self.extras_total) * self.quantity


@dataclass(slots=True)
class OrderCustomer:
    id: str | None = None
    name: str = ""
    phone: str = ""
    address: str = ""
    neighborhood: str = ""
    complement: str = ""
    reference: str = ""


@dataclass(frozen=True, slots=True)
class OrderTotals:
    subtotal: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(slots=True)
class FiscalRecord:
    """Fiscal document placeholder; issuance happens elsewhere."""

    enabled: bool = False
    status: str = "pending"
    model: str = "NFC-e"
    number: str | None = None
    series: str | None = None
    access_key: str | None = None
    protocol: str | None = None
    xml_url: str | None = None
    pdf_url: str | None = None
    environment: str = "homologacao"
    issued_at: str | None = None
    authorized_at: str | None = None
    cancelled_at: str | None = None
    error: str | None = None
    error_code: str | None = None
    attempts: list[Record] = field(default_factory=list)

    def to_record(self) -> Record:
        return {
            "enabled": self.enabled,
            "status": self.status,
            "model": self.model,
            "number": self.number,
            "series": self.series,
            "access_key": self.access_key,
            "protocol": self.protocol,
            "xml_url": self.xml_url,
            "pdf_url": self.pdf_url,
            "environment": self.environment,
            "issued_at": self.issued_at,
            "authorized_at": self.authorized_at,
            "cancelled_at": self.cancelled_at,
            "error": self.error,
            "error_code": self.error_code,
            "attempts": [dict(attempt) for attempt in self.attempts],
        }

    @classmethod
    def from_record(cls, data: Any) -> FiscalRecord:
        if not isinstance(data, Mapping):
            return cls()

        def text(key: str) -> str | None:
            value = data.get(key)
            return None if value is None else str(value)

        attempts = data.get("attempts")
        return cls(
            enabled=bool(data.get("enabled", False)),
            status=str(data.get("status") or "pending"),
            model=str(data.get("model") or "NFC-e"),
            number=text("number"),
            series=text("series"),
            access_key=text("access_key"),
            protocol=text("protocol"),
            xml_url=text("xml_url"),
            pdf_url=text("pdf_url"),
            environment=str(data.get("environment") or "homologacao"),
            issued_at=text("issued_at"),
            authorized_at=text("authorized_at"),
            cancelled_at=text("cancelled_at"),
            error=text("error"),
            error_code=text("error_code"),
            attempts=[
                dict(attempt)
                for attempt in (attempts if isinstance(attempts, list) else [])
                if isinstance(attempt, Mapping)
            ],
        )


@dataclass(frozen=True, slots=True)
class StatusChange:
    status: OrderStatus
    timestamp: datetime
    user: str
    previous_status: OrderStatus | None = None

    def to_record(self) -> Record:
        return {
            "status": self.status.value,
            "previous_status": (
                self.previous_status.value if self.previous_status else None
            ),
            "timestamp": to_iso(self.timestamp),
            "user": self.user,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> StatusChange | None:
        status = OrderStatus.parse(data.get("status"))
        timestamp = parse_instant(data.get("timestamp"))
        if status is None or timestamp is None:
            return None
        return cls(
            status=status,
            timestamp=timestamp,
            user=str(data.get("user") or ""),
            previous_status=OrderStatus.parse(data.get("previous_status")),
        )


@dataclass(slots=True)
class CanonicalOrder:
    """An order in the shape the back office works with."""

    id: str
    number: str
    created_at: datetime
    updated_at: datetime
    source: str = "online"
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderLine] = field(default_factory=list)
    customer: OrderCustomer = field(default_factory=OrderCustomer)
    customer_id: str | None = None
    totals: OrderTotals = field(default_factory=OrderTotals)
    payment_method: str = "Dinheiro"
    payment_status: str = "pending"
    delivery_type: str = "delivery"
    estimated_time: int = 45
    observations: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    fiscal: FiscalRecord = field(default_factory=FiscalRecord)
    status_history: list[StatusChange] = field(default_factory=list)

    def calendar(self, tz: tzinfo = DEFAULT_TIMEZONE) -> OrderCalendar:
        """Calendar fields of ``created_at`` in the business timezone."""
        return OrderCalendar.from_instant(self.created_at, tz)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)


def _line_to_record(line: OrderLine) -> Record:
    return {
        "id": line.id,
        "name": line.name,
        "quantity": line.quantity,
        "unit_price": str(line.unit_price),
        "customizations": {
            group: [{"name": item.name, "price": str(item.price)} for item in items]
            for group, items in line.customizations.items()
        },
        "notes": line.notes,
        "total": str(line.total),
    }


def _line_from_record(data: Mapping[str, Any], index: int) -> OrderLine:
    customizations: dict[str, list[Customization]] = {}
    raw_groups = data.get("customizations")
    if isinstance(raw_groups, Mapping):
        for group, items in raw_groups.items():
            if not isinstance(items, list):
                continue
            customizations[str(group)] = [
                Customization(
                    name=str(item.get("name", "")),
                    price=parse_money(item.get("price")),
                )
                for item in items
                if isinstance(item, Mapping)
            ]
    quantity = data.get("quantity")
    return OrderLine(
        id=str(data.get("id") or f"item-{index}"),
        name=str(data.get("name") or ""),
        quantity=quantity if isinstance(quantity, int) and quantity > 0 else 1,
        unit_price=parse_money(data.get("unit_price")),
        customizations=customizations,
        notes=str(data.get("notes") or ""),
    )


def order_to_record(order: CanonicalOrder, tz: tzinfo = DEFAULT_TIMEZONE) -> Record:
    """Serialize an order into the record stored under ``orders``."""
    calendar = order.calendar(tz)
    customer = order.customer
    return {
        "id": order.id,
        "number": order.number,
        "source": order.source,
        "status": order.status.value,
        "created_at": to_iso(order.created_at),
        "updated_at": to_iso(order.updated_at),
        "timestamp": int(order.created_at.timestamp() * 1000),
        "date": calendar.date.isoformat(),
        "year": calendar.year,
        "month": calendar.month,
        "day": calendar.day,
        "hour": calendar.hour,
        "minute": calendar.minute,
        "day_of_week": calendar.day_of_week,
        "week_number": calendar.week_number,
        "customer_id": order.customer_id,
        "customer_name": customer.name,
        "customer_phone": customer.phone,
        "customer": {
            "id": customer.id,
            "name": customer.name,
            "phone": customer.phone,
            "address": customer.address,
            "neighborhood": customer.neighborhood,
            "complement": customer.complement,
            "reference": customer.reference,
        },
        "items": [_line_to_record(line) for line in order.items],
        "subtotal": str(order.totals.subtotal),
        "delivery_fee": str(order.totals.delivery_fee),
        "discount": str(order.totals.discount),
        "total": str(order.totals.total),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "delivery_type": order.delivery_type,
        "estimated_time": order.estimated_time,
        "observations": order.observations,
        "metadata": dict(order.metadata),
        "fiscal": order.fiscal.to_record(),
        "status_history": [change.to_record() for change in order.status_history],
    }


def order_from_record(record: Mapping[str, Any]) -> CanonicalOrder:
    """Rebuild an order from a stored record, tolerating missing fields."""
    created_at = parse_instant(record.get("created_at")) or datetime.fromtimestamp(
        0, UTC
    )
    updated_at = parse_instant(record.get("updated_at")) or created_at

    raw_customer = record.get("customer")
    customer_data: Mapping[str, Any] = (
        raw_customer if isinstance(raw_customer, Mapping) else {}
    )

    def contact(key: str) -> str:
        value = customer_data.get(key)
        return "" if value is None else str(value)

    customer = OrderCustomer(
        id=customer_data.get("id") or record.get("customer_id"),
        name=contact("name") or str(record.get("customer_name") or ""),
        phone=contact("phone") or str(record.get("customer_phone") or ""),
        address=contact("address"),
        neighborhood=contact("neighborhood"),
        complement=contact("complement"),
        reference=contact("reference"),
    )

    raw_items = record.get("items")
    items = [
        _line_from_record(item, index)
        for index, item in enumerate(raw_items if isinstance(raw_items, list) else [])
        if isinstance(item, Mapping)
    ]

    raw_history = record.get("status_history")
    history = [
        change
        for change in (
            StatusChange.from_record(entry)
            for entry in (raw_history if isinstance(raw_history, list) else [])
            if isinstance(entry, Mapping)
        )
        if change is not None
    ]

    estimated_time = record.get("estimated_time")
    metadata = record.get("metadata")
    return CanonicalOrder(
        id=str(record.get("id", "")),
        number=str(record.get("number") or ""),
        created_at=created_at,
        updated_at=updated_at,
        source=str(record.get("source") or "online"),
        status=OrderStatus.parse(record.get("status")) or OrderStatus.PENDING,
        items=items,
        customer=customer,
        customer_id=record.get("customer_id") or customer.id,
        totals=OrderTotals(
            subtotal=parse_money(record.get("subtotal")),
            delivery_fee=parse_money(record.get("delivery_fee")),
            discount=parse_money(record.get("discount")),
            total=parse_money(record.get("total")),
        ),
        payment_method=str(record.get("payment_method") or "Dinheiro"),
        payment_status=str(record.get("payment_status") or "pending"),
        delivery_type=str(record.get("delivery_type") or "delivery"),
        estimated_time=estimated_time if isinstance(estimated_time, int) else 45,
        observations=str(record.get("observations") or ""),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        fiscal=FiscalRecord.from_record(record.get("fiscal")),
        status_history=history,
    )
