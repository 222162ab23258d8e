from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
import random
import string
from typing import Any

from pdvsync.adapters.db.store import LocalStore
from pdvsync.cache.read_through import ReadThroughCache, WriteOp
from pdvsync.core.clock import Clock, to_iso, utc_now
from pdvsync.domain.customers import ADDRESS_FIELDS, Customer, phone_digits
from pdvsync.domain.orders import CanonicalOrder, OrderCustomer
from pdvsync.sync.logger import CustomerLogger

CUSTOMER_TAGS = ("online", "cardapio-digital")
AUTO_CREATED_NOTE = "Cliente criado automaticamente a partir de pedido online"

Record = dict[str, Any]


def generate_customer_id(now: datetime, rng: random.Random | None = None) -> str:
    """``CUST-<epoch ms>-<9 uppercase alphanumerics>``."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join((rng or random).choices(alphabet, k=9))
    return f"CUST-{int(now.timestamp() * 1000)}-{suffix}"


def find_customer_by_phone(
    records: Sequence[Mapping[str, Any]], phone: str
) -> Mapping[str, Any] | None:
    """Match on the exact phone first, then on digits only on both sides."""
    for record in records:
        if str(record.get("phone") or "") == phone:
            return record
    digits = phone_digits(phone)
    if not digits:
        return None
    for record in records:
        if phone_digits(record.get("phone")) == digits:
            return record
    return None


def merge_customer_record(
    existing: Mapping[str, Any], contact: OrderCustomer, now: datetime
) -> Record:
    """Refresh a stored customer from an order's contact details.

    The name is overwritten; address fields are only filled where the stored
    record has none. Fields this module does not know about are kept as-is.
    """
    merged = dict(existing)
    merged["name"] = contact.name
    for field_name in ADDRESS_FIELDS:
        incoming = getattr(contact, field_name)
        if incoming and not str(merged.get(field_name) or "").strip():
            merged[field_name] = incoming
    merged["updated_at"] = to_iso(now)
    merged["last_order_date"] = to_iso(now)
    return merged


def new_customer(contact: OrderCustomer, customer_id: str, now: datetime) -> Customer:
    return Customer(
        id=customer_id,
        name=contact.name,
        phone=contact.phone,
        address=contact.address,
        neighborhood=contact.neighborhood,
        complement=contact.complement,
        reference=contact.reference,
        notes=AUTO_CREATED_NOTE,
        tags=list(CUSTOMER_TAGS),
        active=True,
        created_at=now,
        updated_at=now,
        last_order_date=now,
        source="online",
    )


class CustomerUpsertResolver:
    """Links an order to a customer record, creating one when needed."""

    def __init__(
        self,
        store: LocalStore,
        cache: ReadThroughCache,
        *,
        clock: Clock = utc_now,
        id_factory: Callable[[datetime], str] = generate_customer_id,
        store_name: str = "customers",
        logger: CustomerLogger | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._clock = clock
        self._id_factory = id_factory
        self._store_name = store_name
        self._logger = logger or CustomerLogger()

    async def resolve(self, order: CanonicalOrder) -> str | None:
        """Find or create the customer for ``order`` and link it.

        Returns:
            The customer id, or None when the order lacks a name or phone.
        """
        contact = order.customer
        if not contact.name.strip() or not contact.phone.strip():
            self._logger.insufficient_contact(order.id)
            return None

        records = await self._store.get_all(self._store_name)
        existing = find_customer_by_phone(records, contact.phone)
        now = self._clock()

        if existing is not None:
            record = merge_customer_record(existing, contact, now)
            customer_id = str(record["id"])
            await self._cache.update(self._store_name, WriteOp.UPDATE, record)
            self._logger.updated(customer_id, order.id)
        else:
            customer_id = self._id_factory(now)
            customer = new_customer(contact, customer_id, now)
            await self._cache.update(
                self._store_name, WriteOp.ADD, customer.to_record()
            )
            self._logger.created(customer_id, order.id)

        contact.id = customer_id
        order.customer_id = customer_id
        return customer_id
