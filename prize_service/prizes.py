"""Mapping of free-text wheel labels to canonical product ids.

Labels arrive from the wheel exactly as displayed ("WATER BOTTLES 💧",
"Keyholder", ...). They are resolved here, once, before anything reaches
the inventory ledger.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class PrizeProduct(str, Enum):
    WATER_BOTTLES = "water_bottles"
    KEY_HOLDERS = "key_holders"
    UMBRELLAS = "umbrellas"
    # Generic win for wheel sectors that are not tracked as a product
    WIN = "win"


PRIZE_LABELS: dict[PrizeProduct, tuple[str, ...]] = {
    PrizeProduct.WATER_BOTTLES: ("water bottles", "water bottle", "waterbottles", "waterbottle"),
    PrizeProduct.KEY_HOLDERS: ("key holders", "keyholders", "keyholder", "key holder"),
    PrizeProduct.UMBRELLAS: ("umbrellas", "umbrella"),
    PrizeProduct.WIN: ("win", "prize", "gift"),
}

LOSING_LABELS = frozenset({"try again", "lose", "nothing"})

# Whole cleaned label -> product id; labels never match by substring
LABEL_INDEX: dict[str, str] = {
    variant: product.value for product, variants in PRIZE_LABELS.items() for variant in variants
}

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


def clean_label(label: Optional[str]) -> str:
    if not label:
        return ""
    cleaned = _NON_WORD.sub("", label.lower())
    return _SPACES.sub(" ", cleaned).strip()


def resolve_product_id(label: Optional[str]) -> Optional[str]:
    """Return the canonical product id for a wheel label.

    The whole cleaned label must equal a known variant in PRIZE_LABELS
    ("Winter Cap" is not the generic "win"). Anything else falls back to the
    cleaned label as a slug, so products created later by an admin
    ("Sun Hats" -> "sun_hats") still resolve.
    """
    cleaned = clean_label(label)
    if not cleaned:
        return None

    return LABEL_INDEX.get(cleaned, cleaned.replace(" ", "_"))


def is_product_win(label: Optional[str]) -> bool:
    cleaned = clean_label(label)
    return bool(cleaned) and cleaned not in LOSING_LABELS


def all_product_ids() -> list[str]:
    return [product.value for product in PRIZE_LABELS]


def label_variants(product_id: str) -> tuple[str, ...]:
    try:
        return PRIZE_LABELS[PrizeProduct(product_id)]
    except ValueError:
        return ()
