"""Outfit schemas: item snapshots, combos, saved outfits and recommendation sets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from models.closet_item import ClosetItem


@dataclass(frozen=True)
class ItemSnapshot:
    """Shallow copy of a closet item; later edits to the source do not leak in."""

    id: str
    category: str
    image_url: str

    @classmethod
    def from_item(cls, item: ClosetItem) -> "ItemSnapshot":
        return cls(id=item.id, category=item.category, image_url=item.image_url)

    def to_document(self) -> Dict[str, str]:
        return {"id": self.id, "category": self.category, "image_url": self.image_url}


@dataclass(frozen=True)
class Combo:
    """One candidate outfit, exactly one item per required category."""

    items: Tuple[ItemSnapshot, ...]

    @property
    def key(self) -> Tuple[str, ...]:
        return tuple(item.id for item in self.items)

    def by_category(self) -> Dict[str, ItemSnapshot]:
        return {item.category: item for item in self.items}

    def to_document(self) -> Dict[str, Any]:
        return {"items": [item.to_document() for item in self.items]}


@dataclass
class SavedOutfit:
    id: str
    items: List[ItemSnapshot] = field(default_factory=list)
    created_at: Optional[float] = None


@dataclass
class RecommendedOutfitSet:
    """Derived per-user document; ``fingerprint`` is the recompute cache key."""

    combos: List[Combo]
    fingerprint: str
    computed_at: float

    def to_document(self) -> Dict[str, Any]:
        return {
            "combos": [combo.to_document() for combo in self.combos],
            "fingerprint": self.fingerprint,
            "computed_at": self.computed_at,
        }


__all__ = ["Combo", "ItemSnapshot", "RecommendedOutfitSet", "SavedOutfit"]
