"""Pydantic schemas for remote documents and the collection paths they live under.

Remote snapshots arrive as loose dictionaries. Each collection gets an explicit
schema here; the mirror validates every document against it and coerces it
into the dataclass domain model, skipping documents that do not fit.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from models.closet_item import ClosetItem
from models.listing import MarketplaceListing
from models.outfit import Combo, ItemSnapshot, RecommendedOutfitSet, SavedOutfit
from models.taxonomy import REQUIRED_CATEGORIES, validate_category, validate_gender

logger = logging.getLogger(__name__)

MARKETPLACE_PATH = "marketplace"
RECOMMENDATION_DOC_ID = "current"
PROFILE_DOC_ID = "settings"


def _user_path(user_id: str, collection: str) -> str:
    if not user_id or "/" in user_id:
        raise ValueError(f"Invalid user id for collection path: {user_id!r}")
    return f"users/{user_id}/{collection}"


def closet_path(user_id: str) -> str:
    return _user_path(user_id, "closet")


def saved_outfits_path(user_id: str) -> str:
    return _user_path(user_id, "savedOutfits")


def recommendations_path(user_id: str) -> str:
    return _user_path(user_id, "recommendations")


def profile_path(user_id: str) -> str:
    return _user_path(user_id, "profile")


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SnapshotDocument(_Document):
    id: str = Field(min_length=1)
    category: str
    image_url: str = Field(min_length=1)

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: str) -> str:
        return validate_category(value)

    def to_model(self) -> ItemSnapshot:
        return ItemSnapshot(id=self.id, category=self.category, image_url=self.image_url)


class ClosetItemDocument(_Document):
    """Schema for ``users/{uid}/closet`` documents and local-store records."""

    id: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    category: str
    image_url: str = Field(min_length=1)
    created_at: Optional[float] = None
    private: bool = True
    asset_id: Optional[str] = None
    name: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: str) -> str:
        return validate_category(value)

    def to_model(self) -> ClosetItem:
        return ClosetItem(**self.model_dump())


class SavedOutfitDocument(_Document):
    id: str = Field(min_length=1)
    items: List[SnapshotDocument] = Field(min_length=1)
    created_at: Optional[float] = None

    def to_model(self) -> SavedOutfit:
        return SavedOutfit(
            id=self.id,
            items=[item.to_model() for item in self.items],
            created_at=self.created_at,
        )


class ComboDocument(_Document):
    items: List[SnapshotDocument]

    @field_validator("items")
    @classmethod
    def _one_per_required_category(cls, items: List[SnapshotDocument]) -> List[SnapshotDocument]:
        categories = sorted(item.category for item in items)
        if categories != sorted(REQUIRED_CATEGORIES):
            raise ValueError("a combo needs exactly one item per required category")
        return items

    def to_model(self) -> Combo:
        ordered = sorted(self.items, key=lambda item: REQUIRED_CATEGORIES.index(item.category))
        return Combo(items=tuple(item.to_model() for item in ordered))


class RecommendedOutfitSetDocument(_Document):
    combos: List[ComboDocument] = Field(default_factory=list, max_length=3)
    fingerprint: str = ""
    computed_at: float = 0.0

    def to_model(self) -> RecommendedOutfitSet:
        return RecommendedOutfitSet(
            combos=[combo.to_model() for combo in self.combos],
            fingerprint=self.fingerprint,
            computed_at=self.computed_at,
        )


class MarketplaceListingDocument(_Document):
    id: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: int = Field(gt=0)
    category: str
    availability: Literal["buy", "rent"]
    gender: str = "Unisex"
    image_url: str = Field(min_length=1)
    created_at: Optional[float] = None
    asset_id: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: str) -> str:
        return validate_category(value)

    @field_validator("gender")
    @classmethod
    def _canonical_gender(cls, value: str) -> str:
        return validate_gender(value)

    def to_model(self) -> MarketplaceListing:
        return MarketplaceListing(**self.model_dump())


class ProfileDocument(_Document):
    profile_picture: Optional[str] = None
    updated_at: Optional[float] = None


def coerce_documents(
    raw_documents: Iterable[Dict[str, Any]],
    schema: type[_Document],
    on_invalid: Callable[[Dict[str, Any], ValidationError], None] | None = None,
) -> List[Any]:
    """Validate raw documents against ``schema`` and return domain models.

    Documents that fail validation are skipped with a warning rather than
    failing the whole snapshot.
    """

    models: List[Any] = []
    for raw in raw_documents:
        try:
            models.append(schema.model_validate(raw).to_model())  # type: ignore[attr-defined]
        except ValidationError as exc:
            logger.warning(
                "Skipping %s document %s: %s",
                schema.__name__,
                raw.get("id") if isinstance(raw, dict) else None,
                exc.error_count(),
            )
            if on_invalid:
                on_invalid(raw, exc)
    return models


__all__ = [
    "ClosetItemDocument",
    "ComboDocument",
    "MARKETPLACE_PATH",
    "MarketplaceListingDocument",
    "PROFILE_DOC_ID",
    "ProfileDocument",
    "RECOMMENDATION_DOC_ID",
    "RecommendedOutfitSetDocument",
    "SavedOutfitDocument",
    "SnapshotDocument",
    "closet_path",
    "coerce_documents",
    "profile_path",
    "recommendations_path",
    "saved_outfits_path",
]
