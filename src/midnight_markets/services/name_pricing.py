"""Name hashing and tiered price preview.

This is the pricing collaborator: the registry never calls it, it only
stores the hash and price a client computed with it.

    quote_name("Los Angeles Vintage")  # geo premium: 10 + 50 = 60
    quote_name("rare old brass pocket watches")  # niche discount: 10 - 2 * 20 -> 0
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

BASE_PRICE = 10
GEO_PREMIUM = 50
NICHE_DISCOUNT_PER_WORD = 20
NICHE_FREE_WORDS = 3
GEO_MARKERS = ("la", "los angeles")


@dataclass(frozen=True)
class NameQuote:
    name: str
    name_hash: str
    price: int


def hash_name(name: str) -> str:
    """Lowercase hex SHA-256 of the UTF-8 encoded name."""
    return hashlib.sha256(name.encode("utf-8")).hexdigest()


def price_name(name: str) -> int:
    lowered = name.lower()
    geo = GEO_PREMIUM if any(marker in lowered for marker in GEO_MARKERS) else 0
    words = len(name.split(" "))
    niche = (words - NICHE_FREE_WORDS) * NICHE_DISCOUNT_PER_WORD if words > NICHE_FREE_WORDS else 0
    return max(BASE_PRICE + geo - niche, 0)


def quote_name(name: str) -> NameQuote:
    if not name:
        raise ValueError("Name must not be empty")
    return NameQuote(name=name, name_hash=hash_name(name), price=price_name(name))
