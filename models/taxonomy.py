"""Canonical labels for closet categories and marketplace listings.

Closet items and listings share the same three garment categories. Helper
functions keep validation consistent between uploads, the mirror boundary and
marketplace filters.
"""

from typing import Dict, Iterable, List, Tuple

TOPS = "Tops"
BOTTOMS = "Bottoms"
FOOTWEAR = "Footwear"

CATEGORIES: Tuple[str, ...] = (TOPS, BOTTOMS, FOOTWEAR)
REQUIRED_CATEGORIES: Tuple[str, ...] = (TOPS, BOTTOMS, FOOTWEAR)
AVAILABILITY: Tuple[str, ...] = ("buy", "rent")
GENDERS: Tuple[str, ...] = ("Mens", "Womens", "Unisex")

ALL_FILTER = "All"

_CATEGORY_ALIASES: Dict[str, str] = {
    "tops": TOPS,
    "top": TOPS,
    "bottoms": BOTTOMS,
    "bottom": BOTTOMS,
    "footwear": FOOTWEAR,
    "shoes": FOOTWEAR,
}


def _normalize_key(value: str) -> str:
    return value.strip().lower()


def validate_category(category: str) -> str:
    """Return the canonical category label or raise ``ValueError``."""

    key = _normalize_key(str(category))
    if key not in _CATEGORY_ALIASES:
        raise ValueError(f"Unknown category '{category}'. Expected one of {list(CATEGORIES)}")
    return _CATEGORY_ALIASES[key]


def validate_availability(availability: str) -> str:
    key = _normalize_key(str(availability))
    if key not in AVAILABILITY:
        raise ValueError(f"Unknown availability '{availability}'. Expected one of {list(AVAILABILITY)}")
    return key


def validate_gender(gender: str) -> str:
    key = _normalize_key(str(gender))
    for label in GENDERS:
        if label.lower() == key:
            return label
    raise ValueError(f"Unknown gender '{gender}'. Expected one of {list(GENDERS)}")


def normalise_filter_values(values: Iterable[str] | None, validator) -> List[str]:
    """Validate a multi-select filter, dropping duplicates while keeping order."""

    normalised: List[str] = []
    for value in values or []:
        label = validator(value)
        if label not in normalised:
            normalised.append(label)
    return normalised


__all__ = [
    "ALL_FILTER",
    "AVAILABILITY",
    "BOTTOMS",
    "CATEGORIES",
    "FOOTWEAR",
    "GENDERS",
    "REQUIRED_CATEGORIES",
    "TOPS",
    "normalise_filter_values",
    "validate_availability",
    "validate_category",
    "validate_gender",
]
