from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
import re
from typing import Any

from pdvsync.core.clock import to_iso
from pdvsync.domain.orders import ZERO, Record, parse_instant, parse_money

_NON_DIGITS = re.compile(r"\D+")

# Fields an online order can carry about where the customer lives.
ADDRESS_FIELDS = ("address", "neighborhood", "complement", "reference")


def phone_digits(phone: Any) -> str:
    """Strip everything but digits: ``"(11) 98888-7777"`` -> ``"11988887777"``."""
    if phone is None:
        return ""
    return _NON_DIGITS.sub("", str(phone))


@dataclass(slots=True)
class Customer:
    """Customer record as kept in the ``customers`` store.

    ``order_count`` and ``total_spent`` belong to the CRM module; the sync
    core carries them through without touching them.
    """

    id: str
    name: str
    phone: str
    email: str = ""
    cpf: str = ""
    address: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    complement: str = ""
    reference: str = ""
    birth_date: str = ""
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    active: bool = True
    order_count: int = 0
    total_spent: Decimal = ZERO
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_order_date: datetime | None = None
    source: str = ""

    def to_record(self) -> Record:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "cpf": self.cpf,
            "address": self.address,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "complement": self.complement,
            "reference": self.reference,
            "birth_date": self.birth_date,
            "notes": self.notes,
            "tags": list(self.tags),
            "active": self.active,
            "order_count": self.order_count,
            "total_spent": str(self.total_spent),
            "created_at": to_iso(self.created_at) if self.created_at else None,
            "updated_at": to_iso(self.updated_at) if self.updated_at else None,
            "last_order_date": (
                to_iso(self.last_order_date) if self.last_order_date else None
            ),
            "source": self.source,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Customer:
        def text(key: str) -> str:
            value = record.get(key)
            return "" if value is None else str(value)

        tags = record.get("tags")
        order_count = record.get("order_count")
        return cls(
            id=text("id"),
            name=text("name"),
            phone=text("phone"),
            email=text("email"),
            cpf=text("cpf"),
            address=text("address"),
            neighborhood=text("neighborhood"),
            city=text("city"),
            state=text("state"),
            zip_code=text("zip_code"),
            complement=text("complement"),
            reference=text("reference"),
            birth_date=text("birth_date"),
            notes=text("notes"),
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
            active=bool(record.get("active", True)),
            order_count=order_count if isinstance(order_count, int) else 0,
            total_spent=parse_money(record.get("total_spent")),
            created_at=parse_instant(record.get("created_at")),
            updated_at=parse_instant(record.get("updated_at")),
            last_order_date=parse_instant(record.get("last_order_date")),
            source=text("source"),
        )
