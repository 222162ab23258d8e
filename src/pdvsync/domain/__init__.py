"""Order and customer records shared across the sync core."""

from __future__ import annotations

from pdvsync.domain.customers import ADDRESS_FIELDS, Customer, phone_digits
from pdvsync.domain.orders import (
    CanonicalOrder,
    Customization,
    FiscalRecord,
    OrderCalendar,
    OrderCustomer,
    OrderLine,
    OrderStatus,
    OrderTotals,
    Record,
    StatusChange,
    order_from_record,
    order_to_record,
    parse_instant,
    parse_money,
)

__all__ = [
    "ADDRESS_FIELDS",
    "CanonicalOrder",
    "Customer",
    "Customization",
    "FiscalRecord",
    "OrderCalendar",
    "OrderCustomer",
    "OrderLine",
    "OrderStatus",
    "OrderTotals",
    "Record",
    "StatusChange",
    "order_from_record",
    "order_to_record",
    "parse_instant",
    "parse_money",
    "phone_digits",
]
