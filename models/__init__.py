"""Model package exports."""

from models.taxonomy import *  # noqa: F401,F403
from models.closet_item import ClosetItem
from models.listing import MarketplaceListing
from models.outfit import Combo, ItemSnapshot, RecommendedOutfitSet, SavedOutfit

__all__ = [
    "ClosetItem",
    "Combo",
    "ItemSnapshot",
    "MarketplaceListing",
    "RecommendedOutfitSet",
    "SavedOutfit",
]
