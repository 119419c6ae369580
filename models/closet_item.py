"""Closet item data model and helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from models.taxonomy import validate_category

LOCAL_ID_PREFIX = "local-"
LOCAL_OWNER = "local"


def is_local_id(item_id: str) -> bool:
    """Items created on the device carry a ``local-`` id prefix."""

    return str(item_id).startswith(LOCAL_ID_PREFIX)


@dataclass
class ClosetItem:
    """One garment image in a user's closet."""

    id: str
    owner_id: str
    category: str
    image_url: str
    created_at: Optional[float] = None
    private: bool = True
    asset_id: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        self.category = validate_category(self.category)

    @property
    def is_local(self) -> bool:
        return is_local_id(self.id)


__all__ = ["ClosetItem", "LOCAL_ID_PREFIX", "LOCAL_OWNER", "is_local_id"]
