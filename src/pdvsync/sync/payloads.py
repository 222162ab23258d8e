"""Pydantic models for inbound online-order payloads.

Two generations of the digital menu publish orders: the legacy one keys
everything in Portuguese (``cliente``, ``itens``, ``valores``), the current one
in English. Both are read through the same models using ``AliasChoices``.
When several aliases are present, an empty one (``None``, ``""``, ``0``, ``[]``,
``{}``) yields to a populated one, matching how the producers fill them.
"""

from __future__ import annotations

from collections.abc import Mapping
import enum
from typing import Any, Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class SchemaVariant(enum.Enum):
    ENGLISH = "english"
    PORTUGUESE = "portuguese"
    MIXED = "mixed"
    UNKNOWN = "unknown"


ENGLISH_MARKERS = frozenset(
    {"customer", "items", "subtotal", "deliveryFee", "paymentMethod", "deliveryType"}
)
PORTUGUESE_MARKERS = frozenset({"cliente", "itens", "valores", "pagamento", "entrega"})


def detect_schema(raw: Mapping[str, Any]) -> SchemaVariant:
    keys = set(raw)
    english = bool(keys & ENGLISH_MARKERS)
    portuguese = bool(keys & PORTUGUESE_MARKERS)
    if english and portuguese:
        return SchemaVariant.MIXED
    if english:
        return SchemaVariant.ENGLISH
    if portuguese:
        return SchemaVariant.PORTUGUESE
    return SchemaVariant.UNKNOWN


def _is_populated(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return value is True
    if isinstance(value, str | list | tuple | dict):
        return len(value) > 0
    if isinstance(value, int | float):
        return value != 0
    return True


def coerce_text(value: Any) -> str:
    if value is None or isinstance(value, dict | list):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class PayloadModel(BaseModel):
    """Shared base with a short parse alias and alias preference rules."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)

    @classmethod
    def coerce_input(cls, data: Any) -> Any:
        """Hook for subclasses accepting non-mapping input."""
        return data

    @model_validator(mode="before")
    @classmethod
    def prefer_populated_aliases(cls, data: Any) -> Any:
        data = cls.coerce_input(data)
        if not isinstance(data, Mapping):
            return {}
        cleaned = dict(data)
        for field_info in cls.model_fields.values():
            alias = field_info.validation_alias
            if not isinstance(alias, AliasChoices):
                continue
            names = [choice for choice in alias.choices if isinstance(choice, str)]
            if not any(_is_populated(cleaned.get(name)) for name in names):
                continue
            for name in names:
                if name in cleaned and not _is_populated(cleaned[name]):
                    del cleaned[name]
        return cleaned


def _mapping_or_empty(value: Any) -> Any:
    return value if isinstance(value, Mapping) else {}


class RawCustomer(PayloadModel):
    name: str = Field("", validation_alias=AliasChoices("name", "nome"))
    phone: str = Field("", validation_alias=AliasChoices("phone", "telefone"))
    address: str = Field("", validation_alias=AliasChoices("address", "endereco"))
    neighborhood: str = Field(
        "", validation_alias=AliasChoices("neighborhood", "bairro")
    )
    complement: str = Field(
        "", validation_alias=AliasChoices("complement", "complemento")
    )
    reference: str = Field("", validation_alias=AliasChoices("reference", "referencia"))

    @field_validator("*", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)


class RawItem(PayloadModel):
    id: str | None = None
    name: str = Field("", validation_alias=AliasChoices("name", "nome"))
    price: Any = Field(None, validation_alias=AliasChoices("price", "preco"))
    quantity: Any = Field(None, validation_alias=AliasChoices("quantity", "quantidade"))
    extras: Any = Field(None, validation_alias=AliasChoices("extras", "adicionais"))
    notes: str = Field(
        "", validation_alias=AliasChoices("observations", "observacao", "obs", "notes")
    )

    @classmethod
    def coerce_input(cls, data: Any) -> Any:
        # Some menus send items as plain product names.
        if isinstance(data, str):
            return {"name": data}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def id_as_text(cls, value: Any) -> str | None:
        text = coerce_text(value)
        return text or None

    @field_validator("name", "notes", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)

    @property
    def quantity_or_one(self) -> int:
        value = self.quantity
        if isinstance(value, bool):
            return 1
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                return 1
            value = int(value)
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return value if isinstance(value, int) and value > 0 else 1


class RawPayment(PayloadModel):
    method: str = Field("", validation_alias=AliasChoices("metodo", "method"))
    amount: Any = Field(None, validation_alias=AliasChoices("valor", "amount"))
    total: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)


class RawDelivery(PayloadModel):
    kind: str = Field("", validation_alias=AliasChoices("tipo", "type"))

    @field_validator("kind", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)


class RawAmounts(PayloadModel):
    subtotal: Any = None
    delivery_fee: Any = Field(None, validation_alias=AliasChoices("taxaEntrega"))
    discount: Any = Field(None, validation_alias=AliasChoices("desconto"))
    total: Any = None


class RawMetadata(PayloadModel):
    ip: str = ""
    user_agent: str = Field(
        "", validation_alias=AliasChoices("userAgent", "user_agent")
    )

    @field_validator("*", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)


class RawOrderPayload(PayloadModel):
    id: str | None = None
    status: str = ""
    customer: RawCustomer = Field(
        default_factory=RawCustomer,
        validation_alias=AliasChoices("customer", "cliente"),
    )
    items: list[RawItem] = Field(
        default_factory=list, validation_alias=AliasChoices("items", "itens")
    )
    subtotal: Any = None
    delivery_fee: Any = Field(
        None, validation_alias=AliasChoices("deliveryFee", "delivery_fee")
    )
    discount: Any = None
    total: Any = None
    amounts: RawAmounts = Field(
        default_factory=RawAmounts, validation_alias=AliasChoices("valores")
    )
    payment_method: str = Field(
        "", validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    payment: RawPayment = Field(
        default_factory=RawPayment, validation_alias=AliasChoices("pagamento")
    )
    payment_status: str = Field(
        "", validation_alias=AliasChoices("paymentStatus", "payment_status")
    )
    delivery_type: str = Field(
        "", validation_alias=AliasChoices("deliveryType", "delivery_type")
    )
    delivery: RawDelivery = Field(
        default_factory=RawDelivery, validation_alias=AliasChoices("entrega")
    )
    estimated_time: Any = Field(
        None, validation_alias=AliasChoices("estimatedTime", "estimated_time")
    )
    observations: str = Field(
        "", validation_alias=AliasChoices("observations", "observacoes")
    )
    metadata: RawMetadata = Field(default_factory=RawMetadata)

    @field_validator(
        "customer", "amounts", "payment", "delivery", "metadata", mode="before"
    )
    @classmethod
    def object_or_empty(cls, value: Any) -> Any:
        return _mapping_or_empty(value)

    @field_validator("items", mode="before")
    @classmethod
    def items_as_list(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            # Sparse arrays arrive as {"0": ..., "1": ...}.
            if value and all(str(key).isdigit() for key in value):
                return [value[key] for key in sorted(value, key=lambda k: int(k))]
            return []
        return value if isinstance(value, list) else []

    @field_validator("id", mode="before")
    @classmethod
    def id_as_text(cls, value: Any) -> str | None:
        text = coerce_text(value)
        return text or None

    @field_validator(
        "status",
        "payment_method",
        "payment_status",
        "delivery_type",
        "observations",
        mode="before",
    )
    @classmethod
    def as_text(cls, value: Any) -> str:
        return coerce_text(value)

    @property
    def estimated_minutes(self) -> int | None:
        value = self.estimated_time
        if isinstance(value, bool):
            return None
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return value if isinstance(value, int) and value > 0 else None
