"""Random outfit recommendations derived from closet contents.

Combos are drawn uniformly with rejection of repeats. The per-user
recommendation document is written at most once per distinct closet state:
the sorted ids of every item in a required category form a fingerprint, and a
trigger whose fingerprint matches the last successful write does nothing.
Moving an item between required categories keeps the fingerprint but changes
the category layout, which also forces a recompute.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from closet_app.logging_config import get_logger, log_event
from models.closet_item import ClosetItem
from models.documents import RECOMMENDATION_DOC_ID, recommendations_path
from models.outfit import Combo, ItemSnapshot, RecommendedOutfitSet
from models.taxonomy import REQUIRED_CATEGORIES
from tools.document_service import DocumentService, DocumentServiceError

LOGGER = get_logger(__name__)

MAX_RECOMMENDATIONS = 3
FINGERPRINT_SEPARATOR = ","

CategoryLayout = Tuple[Tuple[str, Tuple[str, ...]], ...]


def group_by_category(items: Iterable[ClosetItem]) -> Dict[str, List[ClosetItem]]:
    """Bucket items into the required categories, keeping the first item per id."""

    grouped: Dict[str, List[ClosetItem]] = {category: [] for category in REQUIRED_CATEGORIES}
    seen_ids = set()
    for item in items:
        if item.category not in grouped or item.id in seen_ids:
            continue
        seen_ids.add(item.id)
        grouped[item.category].append(item)
    return grouped


def has_required_categories(grouped: Dict[str, List[ClosetItem]]) -> bool:
    return all(grouped.get(category) for category in REQUIRED_CATEGORIES)


def compute_fingerprint(grouped: Dict[str, List[ClosetItem]]) -> str:
    ids = sorted(item.id for category in REQUIRED_CATEGORIES for item in grouped.get(category, []))
    return FINGERPRINT_SEPARATOR.join(ids)


def category_layout(grouped: Dict[str, List[ClosetItem]]) -> CategoryLayout:
    """Sorted ids per required category."""

    return tuple(
        (category, tuple(sorted(item.id for item in grouped.get(category, []))))
        for category in REQUIRED_CATEGORIES
    )


def combination_count(grouped: Dict[str, List[ClosetItem]]) -> int:
    total = 1
    for category in REQUIRED_CATEGORIES:
        total *= len(grouped.get(category, []))
    return total


def generate_combos(
    grouped: Dict[str, List[ClosetItem]],
    rng: random.Random | None = None,
    limit: int = MAX_RECOMMENDATIONS,
) -> List[Combo]:
    """Draw up to ``limit`` distinct combos.

    Each round picks one item per category uniformly at random and discards
    repeats. The loop stops once ``limit`` combos exist or every possible
    combination has been seen.
    """

    if not has_required_categories(grouped):
        return []
    rng = rng or random.Random()
    total = combination_count(grouped)
    seen = set()
    combos: List[Combo] = []
    while len(combos) < limit and len(seen) < total:
        picks = [rng.choice(grouped[category]) for category in REQUIRED_CATEGORIES]
        key = tuple(item.id for item in picks)
        if key in seen:
            continue
        seen.add(key)
        combos.append(Combo(items=tuple(ItemSnapshot.from_item(item) for item in picks)))
    return combos


class RecommendationEngine:
    """Computes and persists recommendations, skipping unchanged closets.

    The remembered fingerprint only advances after a successful write, so a
    failed write is retried by the next closet change.
    """

    def __init__(
        self,
        documents: DocumentService | None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        limit: int = MAX_RECOMMENDATIONS,
    ) -> None:
        self.documents = documents
        self.rng = rng or random.Random()
        self.clock = clock
        self.limit = limit
        self._persisted: Dict[str, str] = {}
        self._layouts: Dict[str, CategoryLayout] = {}
        self._primed_combos: Dict[str, List[Combo]] = {}

    def last_fingerprint(self, user_id: str) -> Optional[str]:
        return self._persisted.get(user_id)

    def prime(self, user_id: str, fingerprint: str, combos: Sequence[Combo] = ()) -> None:
        """Adopt the fingerprint of a recommendation document already stored remotely.

        The stored combos stand in for the unknown category layout until the
        next refresh checks them against the closet.
        """

        if not fingerprint:
            return
        if self._persisted.get(user_id) == fingerprint and user_id in self._layouts:
            return
        self._persisted[user_id] = fingerprint
        self._layouts.pop(user_id, None)
        self._primed_combos[user_id] = list(combos)

    def forget(self, user_id: str) -> None:
        self._persisted.pop(user_id, None)
        self._layouts.pop(user_id, None)
        self._primed_combos.pop(user_id, None)

    def _is_current(self, user_id: str, fingerprint: str, grouped: Dict[str, List[ClosetItem]]) -> bool:
        if self._persisted.get(user_id) != fingerprint:
            return False
        layout = category_layout(grouped)
        known = self._layouts.get(user_id)
        if known is not None:
            return known == layout
        categories = {item.id: item.category for items in grouped.values() for item in items}
        for combo in self._primed_combos.get(user_id, []):
            if any(categories.get(snapshot.id) != snapshot.category for snapshot in combo.items):
                return False
        self._layouts[user_id] = layout
        self._primed_combos.pop(user_id, None)
        return True

    async def refresh(self, user_id: str, closet_items: Iterable[ClosetItem]) -> Optional[RecommendedOutfitSet]:
        """Recompute and write recommendations for ``user_id`` if the closet changed.

        Returns the written set, or ``None`` when nothing was written.
        """

        if self.documents is None or not user_id:
            return None

        grouped = group_by_category(closet_items)
        if not has_required_categories(grouped):
            LOGGER.debug("Closet is missing a required category; no recommendations")
            return None

        fingerprint = compute_fingerprint(grouped)
        if self._is_current(user_id, fingerprint, grouped):
            log_event(LOGGER, logging.DEBUG, "recommendations_unchanged")
            return None

        recommended = RecommendedOutfitSet(
            combos=generate_combos(grouped, self.rng, self.limit),
            fingerprint=fingerprint,
            computed_at=self.clock(),
        )
        try:
            await self.documents.set(
                recommendations_path(user_id),
                RECOMMENDATION_DOC_ID,
                recommended.to_document(),
                merge=True,
            )
        except DocumentServiceError as exc:
            log_event(
                LOGGER,
                logging.ERROR,
                "recommendations_write_failed",
                error=str(exc),
                combo_count=len(recommended.combos),
            )
            return None

        self._persisted[user_id] = fingerprint
        self._layouts[user_id] = category_layout(grouped)
        self._primed_combos.pop(user_id, None)
        log_event(
            LOGGER,
            logging.INFO,
            "recommendations_written",
            combo_count=len(recommended.combos),
            combinations=combination_count(grouped),
        )
        return recommended


__all__ = [
    "MAX_RECOMMENDATIONS",
    "RecommendationEngine",
    "category_layout",
    "combination_count",
    "compute_fingerprint",
    "generate_combos",
    "group_by_category",
    "has_required_categories",
]
