"""Marketplace listing schema."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class MarketplaceListing:
    id: str
    owner_id: str
    name: str
    price: int
    category: str
    availability: str
    gender: str
    image_url: str
    created_at: Optional[float] = None
    asset_id: Optional[str] = None

    @property
    def is_rental(self) -> bool:
        return self.availability == "rent"
