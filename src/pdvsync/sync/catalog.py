from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
import enum
from typing import Any
import unicodedata

from pdvsync.domain.orders import parse_money

# Unicode categories dropped before comparing product names: combining marks
# (accents after NFD), symbols (emoji included), format characters such as
# zero-width joiners and variation selectors, and private-use code points.
_NOISE_CATEGORIES = frozenset({"Mn", "Mc", "Me", "So", "Sk", "Sm", "Sc", "Cf", "Co"})


def normalize_product_name(text: str) -> str:
    """``"🍔 X-Búrguer  Duplo"`` -> ``"x-burguer duplo"``."""
    decomposed = unicodedata.normalize("NFD", text)
    kept = "".join(
        ch for ch in decomposed if unicodedata.category(ch) not in _NOISE_CATEGORIES
    )
    return " ".join(kept.split()).casefold()


class MatchTier(enum.Enum):
    ID = "id"
    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    NORMALIZED = "normalized"
    CONTAINS = "contains"


@dataclass(frozen=True, slots=True)
class CatalogMatch:
    product: Mapping[str, Any]
    tier: MatchTier
    price: Decimal


def find_catalog_price(
    *,
    item_id: str | None,
    name: str,
    products: Sequence[Mapping[str, Any]],
) -> CatalogMatch | None:
    """Find the catalog price of an item that arrived without one.

    Tries progressively looser tiers; each tier is a full pass over the
    catalog, so an exact match anywhere beats a fuzzy match earlier in the
    list. Products without a positive price are never matched.
    """
    priced = [
        (product, str(product.get("name") or ""), parse_money(product.get("price")))
        for product in products
        if isinstance(product, Mapping)
    ]
    priced = [entry for entry in priced if entry[2] > 0]

    folded_name = name.casefold()
    normalized_name = normalize_product_name(name)

    def contains(product_name: str) -> bool:
        normalized_product = normalize_product_name(product_name)
        if not normalized_name or not normalized_product:
            return False
        return (
            normalized_product in normalized_name
            or normalized_name in normalized_product
        )

    tiers: list[tuple[MatchTier, Callable[[Mapping[str, Any], str], bool]]] = [
        (
            MatchTier.ID,
            lambda product, _: item_id is not None
            and str(product.get("id", "")) == item_id,
        ),
        (MatchTier.EXACT, lambda _, product_name: product_name == name),
        (
            MatchTier.CASE_INSENSITIVE,
            lambda _, product_name: product_name.casefold() == folded_name,
        ),
        (
            MatchTier.NORMALIZED,
            lambda _, product_name: bool(normalized_name)
            and normalize_product_name(product_name) == normalized_name,
        ),
        (MatchTier.CONTAINS, lambda _, product_name: contains(product_name)),
    ]
    for tier, matches in tiers:
        for product, product_name, price in priced:
            if matches(product, product_name):
                return CatalogMatch(product=product, tier=tier, price=price)
    return None
