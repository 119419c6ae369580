"""Explicit application view state: screen, toasts and the outfit carousel."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.outfit import Combo, ItemSnapshot
from models.taxonomy import ALL_FILTER, REQUIRED_CATEGORIES

SCREENS = ("closet", "outfits", "saved", "marketplace", "profile")


@dataclass(frozen=True)
class Toast:
    message: str
    kind: str = "info"


class OutfitCarousel:
    """Zero-based cursor over a list of combos with wraparound."""

    def __init__(self) -> None:
        self.combos: List[Combo] = []
        self.selected_index = 0

    def load(self, combos: List[Combo]) -> None:
        self.combos = list(combos)
        if not self.combos or self.selected_index >= len(self.combos):
            self.selected_index = 0

    def next(self) -> int:
        if self.combos:
            self.selected_index = (self.selected_index + 1) % len(self.combos)
        return self.selected_index

    def previous(self) -> int:
        if self.combos:
            self.selected_index = (self.selected_index - 1) % len(self.combos)
        return self.selected_index

    def current(self) -> Dict[str, Optional[ItemSnapshot]]:
        """Item shown per category; every category is ``None`` when there are no combos."""

        if not self.combos:
            return {category: None for category in REQUIRED_CATEGORIES}
        chosen = self.combos[self.selected_index].by_category()
        return {category: chosen.get(category) for category in REQUIRED_CATEGORIES}


@dataclass
class ViewState:
    screen: str = "closet"
    closet_filter: str = ALL_FILTER
    toasts: List[Toast] = field(default_factory=list)
    carousel: OutfitCarousel = field(default_factory=OutfitCarousel)

    def navigate(self, screen: str) -> None:
        if screen not in SCREENS:
            raise ValueError(f"Unknown screen '{screen}'")
        self.screen = screen

    def notify(self, message: str, kind: str = "info") -> Toast:
        toast = Toast(message=message, kind=kind)
        self.toasts.append(toast)
        return toast

    def pop_toasts(self) -> List[Toast]:
        toasts, self.toasts = self.toasts, []
        return toasts

    @property
    def last_toast(self) -> Optional[Toast]:
        return self.toasts[-1] if self.toasts else None


__all__ = ["OutfitCarousel", "SCREENS", "Toast", "ViewState"]
