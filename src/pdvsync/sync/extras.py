"""Classify and resolve item customizations ("extras" / "adicionais").

Three producer shapes exist in the wild: a free-text string
(``"bacon, cheddar + egg"``), a list of names, and a list of objects carrying
name, price and category. Each payload value is classified once into one of
the variants below and then resolved into customizations grouped by category.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import re
from typing import Any

from pdvsync.domain.orders import Customization, parse_money

DEFAULT_EXTRAS_GROUP = "Adicionais"
_SEPARATORS = re.compile(r"[,+]")


@dataclass(frozen=True, slots=True)
class NoExtras:
    pass


@dataclass(frozen=True, slots=True)
class RawExtras:
    text: str


@dataclass(frozen=True, slots=True)
class ExtraNames:
    names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StructuredExtras:
    entries: tuple[Mapping[str, Any], ...]


Extras = NoExtras | RawExtras | ExtraNames | StructuredExtras


def _as_sequence(value: Mapping[str, Any]) -> list[Any] | None:
    # Realtime databases hand back sparse arrays as {"0": ..., "2": ...}.
    if value and all(str(key).isdigit() for key in value):
        return [value[key] for key in sorted(value, key=lambda k: int(k))]
    return None


def classify_extras(value: Any) -> Extras:
    if value is None:
        return NoExtras()
    if isinstance(value, str):
        return RawExtras(value) if value.strip() else NoExtras()
    if isinstance(value, Mapping):
        as_list = _as_sequence(value)
        if as_list is None:
            return StructuredExtras((value,))
        value = as_list
    if not isinstance(value, list | tuple):
        return NoExtras()

    entries = [entry for entry in value if entry is not None]
    if not entries:
        return NoExtras()
    if all(isinstance(entry, str) for entry in entries):
        names = tuple(name.strip() for name in entries if name.strip())
        return ExtraNames(names) if names else NoExtras()
    return StructuredExtras(
        tuple(
            entry if isinstance(entry, Mapping) else {"name": str(entry)}
            for entry in entries
        )
    )


def _entry_name(entry: Mapping[str, Any]) -> str:
    for key in ("name", "nome", "label"):
        value = entry.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _entry_group(entry: Mapping[str, Any]) -> str:
    for key in ("categoria", "category"):
        value = entry.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return DEFAULT_EXTRAS_GROUP


def resolve_customizations(extras: Extras) -> dict[str, list[Customization]]:
    """Turn classified extras into ``{group: [Customization, ...]}``."""
    if isinstance(extras, RawExtras):
        names = [part.strip() for part in _SEPARATORS.split(extras.text)]
        items = [Customization(name=name) for name in names if name]
        return {DEFAULT_EXTRAS_GROUP: items} if items else {}
    if isinstance(extras, ExtraNames):
        return {DEFAULT_EXTRAS_GROUP: [Customization(name=n) for n in extras.names]}
    if isinstance(extras, StructuredExtras):
        groups: dict[str, list[Customization]] = {}
        for entry in extras.entries:
            name = _entry_name(entry)
            if not name:
                continue
            price = parse_money(entry.get("price")) or parse_money(entry.get("preco"))
            groups.setdefault(_entry_group(entry), []).append(
                Customization(name=name, price=price)
            )
        return groups
    return {}
