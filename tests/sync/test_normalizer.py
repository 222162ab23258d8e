from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal
import random
from typing import Any

from pdvsync.adapters.db.facade import DB
from pdvsync.adapters.db.store import DBLocalStore
from pdvsync.cache.read_through import ReadThroughCache
from pdvsync.domain.orders import Customization, OrderStatus
from pdvsync.sync.dates import InstantSource
from pdvsync.sync.normalizer import (
    PLATFORM_NAME,
    NormalizedOrder,
    SchemaNormalizer,
    generate_order_number,
    normalize_payload,
)
from pdvsync.sync.payloads import SchemaVariant, detect_schema
from tests.fixtures.online_orders import (
    START,
    FakeClock,
    english_payload,
    order_key,
    portuguese_payload,
    product_catalog,
)

NOW = START + timedelta(minutes=3)


def normalize(
    raw: Any, key: str | None = "-Nkey", catalog: list[dict[str, Any]] | None = None
) -> NormalizedOrder:
    return normalize_payload(
        raw, key=key, catalog=catalog or [], now=NOW, number="20250314-001"
    )


class TestEnglishPayload:
    def test_fields(self) -> None:
        result = normalize(english_payload(START), key=order_key(START))
        order = result.order

        assert result.schema is SchemaVariant.ENGLISH
        assert result.instant_source is InstantSource.CREATED_AT
        assert result.warnings == ()
        assert order.id == order_key(START)
        assert order.number == "20250314-001"
        assert order.created_at == START
        assert order.updated_at == NOW
        assert order.source == "online"
        assert order.status is OrderStatus.PENDING
        assert order.customer.name == "Ana Souza"
        assert order.customer.phone == "(11) 98888-7777"
        assert order.customer.neighborhood == "Centro"
        assert order.payment_method == "Pix"
        assert order.delivery_type == "delivery"
        assert order.estimated_time == 30
        assert order.observations == "Portão azul"
        assert order.metadata["platform"] == PLATFORM_NAME
        assert order.metadata["user_agent"] == "Mozilla/5.0"

    def test_lines_and_totals(self) -> None:
        order = normalize(english_payload(START)).order

        burger, soda = order.items
        assert burger.id == "p-burger"
        assert burger.quantity == 2
        assert burger.customizations == {
            "Adicionais": [Customization("Bacon", Decimal("4.00"))]
        }
        assert burger.total == Decimal("58.00")
        assert soda.unit_price == Decimal("6.00")
        assert soda.id.startswith("item-")
        assert order.totals.subtotal == Decimal("64.00")
        assert order.totals.delivery_fee == Decimal("5.00")
        assert order.totals.total == Decimal("69.00")
        assert order.item_count == 3


class TestPortuguesePayload:
    def test_fields(self) -> None:
        result = normalize(portuguese_payload(START))
        order = result.order

        assert result.schema is SchemaVariant.PORTUGUESE
        assert result.instant_source is InstantSource.NUMERIC_TIMESTAMP
        assert result.warnings == ()
        assert order.created_at == START
        assert order.customer.name == "João Lima"
        assert order.customer.address == "Av. Brasil, 200"
        assert order.customer.complement == "Apto 12"
        assert order.customer.reference == "Perto da padaria"
        assert order.payment_method == "Cartão de Crédito"
        assert order.delivery_type == "retirada"
        assert order.observations == "Tocar a campainha"
        assert order.estimated_time == 45

    def test_lines_and_totals(self) -> None:
        order = normalize(portuguese_payload(START)).order

        (line,) = order.items
        assert line.name == "X-Salada"
        assert line.quantity == 2
        assert line.unit_price == Decimal("22.50")
        assert line.notes == "sem tomate"
        assert [c.name for c in line.customizations["Adicionais"]] == [
            "cheddar",
            "bacon",
            "ovo",
        ]
        assert order.totals.subtotal == Decimal("45.00")
        assert order.totals.delivery_fee == Decimal("7.00")
        assert order.totals.discount == Decimal("2.00")
        assert order.totals.total == Decimal("50.00")


def test_mixed_payload_prefers_populated_aliases_and_prices_from_catalog() -> None:
    raw = {
        "customer": {},
        "cliente": {"name": "", "nome": "Maria"},
        "items": [{"nome": "Batata Frita", "quantidade": 1}],
        "total": 0,
        "pagamento": {"valor": 20},
    }

    result = normalize(raw, catalog=product_catalog())
    order = result.order

    assert result.schema is SchemaVariant.MIXED
    assert order.customer.name == "Maria"
    assert order.items[0].unit_price == Decimal("15.50")
    assert order.totals.subtotal == Decimal("15.50")
    assert order.totals.total == Decimal("20.00")
    assert result.instant_source is InstantSource.NOW
    assert order.created_at == NOW
    assert result.warnings == (
        "no creation date in payload; using arrival time",
        "payload total 20.00 differs from computed total 15.50",
    )


def test_unknown_item_is_imported_at_zero_with_a_warning() -> None:
    raw = english_payload(START, items=[{"name": "Mystery Box"}], subtotal=0, total=0)

    result = normalize(raw, catalog=product_catalog())

    assert result.order.items[0].unit_price == Decimal("0.00")
    assert result.order.totals.total == Decimal("5.00")
    assert "no price for item 'Mystery Box'; imported at 0" in result.warnings


def test_item_shapes() -> None:
    raw = {
        "itens": {
            "1": {"nome": "Batata Frita", "quantidade": "abc"},
            "0": "X-Burguer",
        },
    }

    order = normalize(raw, catalog=product_catalog()).order

    assert [line.name for line in order.items] == ["X-Burguer", "Batata Frita"]
    assert [line.quantity for line in order.items] == [1, 1]
    assert order.items[0].unit_price == Decimal("25.00")
    assert order.totals.total == Decimal("40.50")


def test_empty_or_malformed_payload_gets_defaults() -> None:
    for raw in ({}, "garbage", None, {"customer": "nope", "items": "nope"}):
        result = normalize(raw, key="-Nempty")
        order = result.order

        assert order.id == "-Nempty"
        assert order.items == []
        assert order.customer.name == "Cliente Online"
        assert order.payment_method == "Dinheiro"
        assert order.payment_status == "pending"
        assert order.delivery_type == "delivery"
        assert order.totals.total == Decimal("0")
        assert "order has no items" in result.warnings


def test_detect_schema() -> None:
    assert detect_schema({}) is SchemaVariant.UNKNOWN
    assert detect_schema({"itens": []}) is SchemaVariant.PORTUGUESE
    assert detect_schema({"items": [], "valores": {}}) is SchemaVariant.MIXED


def test_order_number_uses_the_business_day() -> None:
    class FixedRandom(random.Random):
        def randrange(self, *args: Any, **kwargs: Any) -> int:
            return 7

    # 01:00 UTC on the 15th is still the 14th in Sao Paulo.
    late = START.replace(day=15, hour=1)

    assert generate_order_number(late, rng=FixedRandom()) == "20250314-007"


def test_schema_normalizer_reads_catalog_from_cache(db: DB) -> None:
    class CatalogSource:
        async def fetch(self, key: str) -> Any:
            return product_catalog() if key == "products" else []

    cache = ReadThroughCache(CatalogSource(), DBLocalStore(db))
    normalizer = SchemaNormalizer(
        cache, clock=FakeClock(NOW), number_factory=lambda now: "20250314-777"
    )

    result = asyncio.run(
        normalizer.normalize({"items": [{"name": "X-Burguer"}]}, key="-Nabc")
    )

    assert result.order.number == "20250314-777"
    assert result.order.items[0].unit_price == Decimal("25.00")
