"""Marketplace browse filters."""

from typing import Iterable, List, Optional

from models.listing import MarketplaceListing
from models.taxonomy import normalise_filter_values, validate_availability, validate_category, validate_gender


def sort_newest_first(listings: Iterable[MarketplaceListing]) -> List[MarketplaceListing]:
    return sorted(listings, key=lambda listing: listing.created_at or 0.0, reverse=True)


def filter_listings(
    listings: Iterable[MarketplaceListing],
    categories: Optional[Iterable[str]] = None,
    availability: Optional[Iterable[str]] = None,
    genders: Optional[Iterable[str]] = None,
    search: str | None = None,
) -> List[MarketplaceListing]:
    """Apply the browse filters; an empty or missing filter set matches everything."""

    wanted_categories = normalise_filter_values(categories, validate_category)
    wanted_availability = normalise_filter_values(availability, validate_availability)
    wanted_genders = normalise_filter_values(genders, validate_gender)
    needle = (search or "").strip().lower()

    matches = []
    for listing in listings:
        if wanted_categories and listing.category not in wanted_categories:
            continue
        if wanted_availability and listing.availability not in wanted_availability:
            continue
        if wanted_genders and listing.gender not in wanted_genders:
            continue
        if needle and needle not in listing.name.lower():
            continue
        matches.append(listing)
    return sort_newest_first(matches)


__all__ = ["filter_listings", "sort_newest_first"]
