"""Live mirror of remote collections into local view state.

The mirror holds at most one watch per ``(collection, owner)`` pair. Each watch
consumes full snapshots from a document-service subscription and folds the
latest one into :class:`MirrorState`. Writes are never applied optimistically:
view state changes only when the remote notification arrives.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from closet_app.logging_config import get_logger, log_event
from models.closet_item import ClosetItem
from models.documents import (
    MARKETPLACE_PATH,
    PROFILE_DOC_ID,
    RECOMMENDATION_DOC_ID,
    ClosetItemDocument,
    MarketplaceListingDocument,
    ProfileDocument,
    RecommendedOutfitSetDocument,
    SavedOutfitDocument,
    closet_path,
    coerce_documents,
    profile_path,
    recommendations_path,
    saved_outfits_path,
)
from models.listing import MarketplaceListing
from models.outfit import RecommendedOutfitSet, SavedOutfit
from models.taxonomy import ALL_FILTER, validate_category
from pydantic import ValidationError
from tools.document_service import DocumentService, Subscription

LOGGER = get_logger(__name__)

CLOSET = "closet"
SAVED_OUTFITS = "savedOutfits"
RECOMMENDATIONS = "recommendations"
PROFILE = "profile"
MARKETPLACE = "marketplace"
USER_COLLECTIONS = (CLOSET, SAVED_OUTFITS, RECOMMENDATIONS, PROFILE)

WatchKey = Tuple[str, Optional[str]]
SnapshotHandler = Callable[[List[Dict[str, Any]]], Optional[Awaitable[None]]]
ClosetListener = Callable[[str, List[ClosetItem]], Awaitable[None]]
RecommendationListener = Callable[[str, Optional[RecommendedOutfitSet]], None]


@dataclass
class MirrorState:
    closet_items: List[ClosetItem] = field(default_factory=list)
    saved_outfits: List[SavedOutfit] = field(default_factory=list)
    listings: List[MarketplaceListing] = field(default_factory=list)
    recommendations: Optional[RecommendedOutfitSet] = None
    profile_picture: Optional[str] = None
    closet_origin: str = "remote"

    def clear_user_state(self) -> None:
        self.closet_items = []
        self.saved_outfits = []
        self.recommendations = None
        self.profile_picture = None
        self.closet_origin = "remote"


class _Watch:
    def __init__(self, key: WatchKey, subscription: Subscription, handler: SnapshotHandler) -> None:
        self.key = key
        self.subscription = subscription
        self.handler = handler
        self.active = True
        self.processing = False
        self.task: Optional[asyncio.Task] = None

    @property
    def idle(self) -> bool:
        return not self.processing and not self.subscription.pending


class RemoteMirror:
    """Keeps :class:`MirrorState` consistent with remote collections without polling."""

    def __init__(self, documents: DocumentService | None) -> None:
        self.documents = documents
        self.state = MirrorState()
        self.user_id: Optional[str] = None
        self._watches: Dict[WatchKey, _Watch] = {}
        self._closet_listeners: List[ClosetListener] = []
        self._recommendation_listeners: List[RecommendationListener] = []

    def on_closet_change(self, listener: ClosetListener) -> None:
        self._closet_listeners.append(listener)

    def on_recommendations_change(self, listener: RecommendationListener) -> None:
        self._recommendation_listeners.append(listener)

    # -- subscription management -------------------------------------------------

    def subscribe(
        self,
        collection: str,
        owner_id: Optional[str],
        path: str,
        handler: SnapshotHandler,
        order_by: str | None = None,
        descending: bool = False,
    ) -> None:
        """Watch ``path``; any previous watch for the same pair is released first."""

        if self.documents is None:
            raise RuntimeError("No document service is configured")
        key = (collection, owner_id)
        self.unsubscribe(collection, owner_id)
        subscription = self.documents.subscribe(path, order_by=order_by, descending=descending)
        watch = _Watch(key, subscription, handler)
        self._watches[key] = watch
        watch.task = asyncio.create_task(self._consume(watch), name=f"mirror:{collection}")

    def unsubscribe(self, collection: str, owner_id: Optional[str] = None) -> None:
        """Release a watch. Synchronous and safe to call repeatedly."""

        watch = self._watches.pop((collection, owner_id), None)
        if watch is None:
            return
        watch.active = False
        watch.subscription.close()
        if watch.task is not None and not watch.task.done() and watch.task is not asyncio.current_task():
            watch.task.cancel()

    def unsubscribe_all(self) -> None:
        for collection, owner_id in list(self._watches):
            self.unsubscribe(collection, owner_id)

    def active_subscriptions(self) -> List[WatchKey]:
        return list(self._watches)

    def bind_user(self, user_id: Optional[str]) -> None:
        """Move per-user watches to ``user_id``, releasing the old ones first."""

        for collection, owner_id in list(self._watches):
            if collection in USER_COLLECTIONS:
                self.unsubscribe(collection, owner_id)
        self.state.clear_user_state()
        self.user_id = user_id
        if user_id is None or self.documents is None:
            return

        # Recommendations first so a stored fingerprint is known before the first closet snapshot.
        self.subscribe(
            RECOMMENDATIONS, user_id, recommendations_path(user_id), partial(self._fold_recommendations, user_id)
        )
        self.subscribe(CLOSET, user_id, closet_path(user_id), partial(self._fold_closet, user_id))
        self.subscribe(SAVED_OUTFITS, user_id, saved_outfits_path(user_id), partial(self._fold_saved_outfits, user_id))
        self.subscribe(PROFILE, user_id, profile_path(user_id), partial(self._fold_profile, user_id))

    def watch_marketplace(self) -> None:
        self.subscribe(
            MARKETPLACE,
            None,
            MARKETPLACE_PATH,
            self._fold_listings,
            order_by="created_at",
            descending=True,
        )

    async def settle(self, max_rounds: int = 200) -> None:
        """Yield to the event loop until every watch has drained its pending snapshots."""

        for _ in range(max_rounds):
            await asyncio.sleep(0)
            if all(watch.idle for watch in self._watches.values()):
                return

    async def _consume(self, watch: _Watch) -> None:
        collection = watch.key[0]
        try:
            async for documents in watch.subscription:
                if not watch.active:
                    break
                watch.processing = True
                try:
                    outcome = watch.handler(documents)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as exc:  # noqa: BLE001 - one bad snapshot must not end the watch
                    log_event(LOGGER, logging.ERROR, "mirror_fold_failed", collection=collection, error=str(exc))
                finally:
                    watch.processing = False
        except Exception as exc:  # noqa: BLE001 - subscription error channel
            log_event(
                LOGGER,
                logging.ERROR,
                "mirror_subscription_failed",
                collection=collection,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if self._watches.get(watch.key) is watch:
                self._watches.pop(watch.key)
            watch.active = False

    # -- folding snapshots into state --------------------------------------------

    async def _fold_closet(self, user_id: str, documents: List[Dict[str, Any]]) -> None:
        if user_id != self.user_id:
            return
        items = coerce_documents(({"owner_id": user_id, **doc} for doc in documents), ClosetItemDocument)
        self.state.closet_items = items
        self.state.closet_origin = "remote"
        log_event(LOGGER, logging.DEBUG, "mirror_closet_updated", item_count=len(items))
        for listener in list(self._closet_listeners):
            await listener(user_id, items)

    def _fold_saved_outfits(self, user_id: str, documents: List[Dict[str, Any]]) -> None:
        if user_id != self.user_id:
            return
        outfits = coerce_documents(documents, SavedOutfitDocument)
        outfits.sort(key=lambda outfit: outfit.created_at or 0.0, reverse=True)
        self.state.saved_outfits = outfits

    def _fold_recommendations(self, user_id: str, documents: List[Dict[str, Any]]) -> None:
        if user_id != self.user_id:
            return
        raw = next((doc for doc in documents if doc.get("id") == RECOMMENDATION_DOC_ID), None)
        recommended: Optional[RecommendedOutfitSet] = None
        if raw is not None:
            try:
                recommended = RecommendedOutfitSetDocument.model_validate(raw).to_model()
            except ValidationError as exc:
                LOGGER.warning("Ignoring malformed recommendation document: %s", exc.error_count())
                return
        self.state.recommendations = recommended
        for listener in list(self._recommendation_listeners):
            listener(user_id, recommended)

    def _fold_profile(self, user_id: str, documents: List[Dict[str, Any]]) -> None:
        if user_id != self.user_id:
            return
        raw = next((doc for doc in documents if doc.get("id") == PROFILE_DOC_ID), None)
        self.state.profile_picture = ProfileDocument.model_validate(raw).profile_picture if raw else None

    def _fold_listings(self, documents: List[Dict[str, Any]]) -> None:
        self.state.listings = coerce_documents(documents, MarketplaceListingDocument)

    # -- local fallback and views --------------------------------------------------

    def apply_local_closet(self, items: List[ClosetItem]) -> None:
        """Show the on-device closet; used only when no remote service is in play."""

        self.state.closet_items = list(items)
        self.state.closet_origin = "local"

    def my_closet(self, owner_id: Optional[str], category: str | None = None) -> List[ClosetItem]:
        """Items owned by ``owner_id``, optionally limited to one category."""

        if owner_id is None:
            return []
        wanted = None if category in (None, ALL_FILTER) else validate_category(category)
        return [
            item
            for item in self.state.closet_items
            if item.owner_id == owner_id and (wanted is None or item.category == wanted)
        ]


__all__ = [
    "CLOSET",
    "MARKETPLACE",
    "MirrorState",
    "PROFILE",
    "RECOMMENDATIONS",
    "RemoteMirror",
    "SAVED_OUTFITS",
    "USER_COLLECTIONS",
]
