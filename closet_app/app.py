"""StyleSphere app bootstrap."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from closet_app.config import AppConfig
from closet_app.logging_config import configure_logging, get_logger, log_event, operation_context
from logic.errors import InvalidInputError, ItemNotFoundError, PartialUploadError, StyleSphereError
from logic.marketplace import filter_listings
from logic.mirror import RemoteMirror
from logic.recommendation import RecommendationEngine, generate_combos, group_by_category
from logic.saved_outfits import OutfitLibrary
from logic.upload_coordinator import UploadCoordinator
from logic.view_state import ViewState
from memory.receipts import ReceiptLedger
from memory.session_store import Session, SessionManager
from models.closet_item import LOCAL_OWNER, ClosetItem
from models.listing import MarketplaceListing
from models.outfit import RecommendedOutfitSet, SavedOutfit
from tools.blob_host import BlobHost, CloudinaryBlobHost, MockBlobHost
from tools.checkout import CheckoutProvider, CheckoutReceipt, MockCheckoutProvider
from tools.document_service import DocumentService, InMemoryDocumentService, SQLiteDocumentService
from tools.identity import IdentityService, LocalIdentityService
from tools.local_store import JSONFileKeyValueStore, LocalKeyValueStore, SQLiteKeyValueStore

LOGGER = get_logger(__name__)


class StyleSphereApp:
    """Wires the session, mirror, recommendation engine and upload paths together.

    Collaborators can be injected; anything not injected is built from the
    config. With no remote backend configured the app runs in local fallback
    mode: closet uploads stay on the device and marketplace features report
    that a sign-in is required.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        documents: DocumentService | None = None,
        blobs: BlobHost | None = None,
        identity: IdentityService | None = None,
        checkout: CheckoutProvider | None = None,
        local_store: LocalKeyValueStore | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or AppConfig.from_env()
        configure_logging()
        self.clock = clock
        self.rng = rng or random.Random()

        self.documents = documents if documents is not None else self._build_document_service()
        self.blobs = blobs if blobs is not None else self._build_blob_host()
        self.identity = identity if identity is not None else self._build_identity()
        self.checkout = checkout or MockCheckoutProvider()
        self.local_store = local_store or self._build_local_store()

        self.view = ViewState()
        self.session = SessionManager(self.identity, auth_token=self.config.auth_token)
        self.mirror = RemoteMirror(self.documents)
        self.engine = RecommendationEngine(self.documents, rng=self.rng, clock=self.clock)
        self.uploads = UploadCoordinator(
            self.documents,
            self.blobs,
            self.local_store,
            user_id_provider=lambda: self.session.user_id,
            folder_root=self.config.blob_folder_root,
            clock=self.clock,
            on_local_change=self._on_local_change,
        )
        self.outfits = OutfitLibrary(self.documents, user_id_provider=lambda: self.session.user_id)
        self.receipts = ReceiptLedger(self.local_store)

        self.session.add_listener(self._on_session_change)
        self.mirror.on_closet_change(self._on_closet_change)
        self.mirror.on_recommendations_change(self._on_recommendations_change)

    def _build_document_service(self) -> DocumentService | None:
        if not self.config.remote_configured:
            return None
        backend = self.config.document_backend.lower()
        if backend == "memory":
            return InMemoryDocumentService(clock=self.clock)
        if backend == "sqlite":
            return SQLiteDocumentService(self.config.document_db_path or "data/documents.db", clock=self.clock)
        raise ValueError(f"Unsupported document backend '{self.config.document_backend}'")

    def _build_blob_host(self) -> BlobHost | None:
        if not self.config.remote_configured:
            return None
        backend = self.config.blob_backend.lower()
        if backend == "cloudinary":
            return CloudinaryBlobHost(
                cloud_name=self.config.cloudinary_cloud_name or "",
                upload_preset=self.config.cloudinary_upload_preset or "",
            )
        if backend == "mock":
            return MockBlobHost()
        raise ValueError(f"Unsupported blob backend '{self.config.blob_backend}'")

    def _build_identity(self) -> IdentityService | None:
        if self.documents is None:
            return None
        return LocalIdentityService(allow_anonymous=self.config.allow_anonymous)

    def _build_local_store(self) -> LocalKeyValueStore:
        if self.config.local_store_backend.lower() == "sqlite":
            return SQLiteKeyValueStore(self.config.local_store_path or "data/local_store.db")
        return JSONFileKeyValueStore(self.config.local_store_path or "data/local_store.json")

    # -- lifecycle -----------------------------------------------------------------

    @property
    def is_local_mode(self) -> bool:
        return self.documents is None or self.session.user_id is None

    async def start(self) -> Session:
        """Establish the session and open the live watches."""

        with operation_context("app:start") as correlation_id:
            if self.documents is not None:
                self.mirror.watch_marketplace()
            session = await self.session.start()
            await self.mirror.settle()
            log_event(
                LOGGER,
                logging.INFO,
                "app_started",
                local_mode=self.is_local_mode,
                authenticated=session.user_id is not None,
                correlation_id=correlation_id,
            )
            return session

    async def shutdown(self) -> None:
        self.session.stop()
        self.mirror.unsubscribe_all()
        log_event(LOGGER, logging.INFO, "app_stopped")

    def _on_session_change(self, session: Session) -> None:
        previous = self.mirror.user_id
        if previous and previous != session.user_id:
            self.engine.forget(previous)
        self.view.carousel.load([])
        self.mirror.bind_user(session.user_id)
        if self.is_local_mode:
            self.mirror.apply_local_closet(self.uploads.load_local_closet())

    async def _on_closet_change(self, user_id: str, items: List[ClosetItem]) -> None:
        await self.engine.refresh(user_id, items)

    def _on_recommendations_change(self, user_id: str, recommended: Optional[RecommendedOutfitSet]) -> None:
        if recommended is None:
            self.view.carousel.load([])
            return
        self.engine.prime(user_id, recommended.fingerprint, recommended.combos)
        self.view.carousel.load(recommended.combos)

    def _on_local_change(self, items: List[ClosetItem]) -> None:
        if self.is_local_mode:
            self.mirror.apply_local_closet(items)

    # -- responses -------------------------------------------------------------------

    def _success(self, action: str, message: str | None = None, **fields: Any) -> Dict[str, Any]:
        if message:
            self.view.notify(message, kind="success")
        log_event(LOGGER, logging.INFO, "app_action_completed", action=action)
        return {"status": "ok", **fields}

    def _failure(self, action: str, exc: StyleSphereError) -> Dict[str, Any]:
        log_event(
            LOGGER,
            logging.WARNING,
            "app_action_failed",
            action=action,
            error_type=type(exc).__name__,
            details=str(exc),
        )
        self.view.notify(exc.user_message, kind="error")
        response: Dict[str, Any] = {
            "status": "error",
            "error": type(exc).__name__,
            "message": exc.user_message,
        }
        if isinstance(exc, PartialUploadError):
            response["asset_id"] = exc.asset_id
        return response

    # -- closet ------------------------------------------------------------------------

    async def upload_closet_item(self, category: str, image: Any) -> Dict[str, Any]:
        with operation_context("app:upload_closet_item"):
            try:
                result = await self.uploads.upload_closet_item(category, image)
            except StyleSphereError as exc:
                return self._failure("upload_closet_item", exc)
            return self._success(
                "upload_closet_item",
                "Item added to your closet.",
                item_id=result.item_id,
                origin=result.origin,
            )

    async def delete_closet_item(self, item_id: str) -> Dict[str, Any]:
        with operation_context("app:delete_closet_item"):
            try:
                await self.uploads.delete_closet_item(item_id)
            except StyleSphereError as exc:
                return self._failure("delete_closet_item", exc)
            return self._success("delete_closet_item", "Item removed.", item_id=item_id)

    async def edit_closet_item(self, item_id: str, category: str) -> Dict[str, Any]:
        with operation_context("app:edit_closet_item"):
            try:
                await self.uploads.edit_closet_item(item_id, category)
            except StyleSphereError as exc:
                return self._failure("edit_closet_item", exc)
            return self._success("edit_closet_item", "Item updated.", item_id=item_id)

    def my_closet(self, category: str | None = None) -> List[ClosetItem]:
        """Closet items owned by the current session, filtered by category."""

        owner = self.session.user_id or LOCAL_OWNER
        return self.mirror.my_closet(owner, category or self.view.closet_filter)

    # -- outfits -----------------------------------------------------------------------

    def current_outfit(self) -> Dict[str, Optional[Dict[str, str]]]:
        return {
            category: snapshot.to_document() if snapshot else None
            for category, snapshot in self.view.carousel.current().items()
        }

    def next_outfit(self) -> Dict[str, Any]:
        index = self.view.carousel.next()
        return {"status": "ok", "index": index, "outfit": self.current_outfit()}

    def previous_outfit(self) -> Dict[str, Any]:
        index = self.view.carousel.previous()
        return {"status": "ok", "index": index, "outfit": self.current_outfit()}

    def shuffle_outfits(self) -> Dict[str, Any]:
        """Draw fresh combos from the whole closet without persisting them."""

        owner = self.session.user_id or LOCAL_OWNER
        combos = generate_combos(group_by_category(self.mirror.my_closet(owner)), self.rng)
        if not combos:
            self.view.notify("Add at least one top, bottom and footwear item first.", kind="error")
            return {"status": "error", "error": "InvalidInputError", "message": "Not enough items to build an outfit."}
        self.view.carousel.load(combos)
        self.view.carousel.selected_index = 0
        return {"status": "ok", "count": len(combos), "outfit": self.current_outfit()}

    @property
    def saved_outfits(self) -> List[SavedOutfit]:
        return list(self.mirror.state.saved_outfits)

    async def save_outfit(self, items: Iterable[Any] | None = None) -> Dict[str, Any]:
        """Save ``items``, or the outfit currently shown in the carousel."""

        with operation_context("app:save_outfit"):
            pieces = list(items) if items is not None else list(self.view.carousel.current().values())
            try:
                outfit_id = await self.outfits.save(pieces)
            except StyleSphereError as exc:
                return self._failure("save_outfit", exc)
            return self._success("save_outfit", "Outfit saved.", outfit_id=outfit_id)

    async def delete_saved_outfit(self, outfit_id: str) -> Dict[str, Any]:
        with operation_context("app:delete_saved_outfit"):
            try:
                await self.outfits.delete(outfit_id)
            except StyleSphereError as exc:
                return self._failure("delete_saved_outfit", exc)
            return self._success("delete_saved_outfit", "Outfit deleted.", outfit_id=outfit_id)

    # -- marketplace ---------------------------------------------------------------------

    def browse_marketplace(
        self,
        categories: Iterable[str] | None = None,
        availability: Iterable[str] | None = None,
        genders: Iterable[str] | None = None,
        search: str | None = None,
    ) -> List[MarketplaceListing]:
        try:
            return filter_listings(self.mirror.state.listings, categories, availability, genders, search)
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

    def _find_listing(self, listing_id: str) -> MarketplaceListing:
        for listing in self.mirror.state.listings:
            if listing.id == listing_id:
                return listing
        raise ItemNotFoundError(detail=f"listing {listing_id} is not in the marketplace")

    async def upload_listing(self, draft: Any, image: Any) -> Dict[str, Any]:
        with operation_context("app:upload_listing"):
            try:
                result = await self.uploads.upload_listing(draft, image)
            except StyleSphereError as exc:
                return self._failure("upload_listing", exc)
            return self._success(
                "upload_listing", "Listing published.", listing_id=result.item_id, image_url=result.image_url
            )

    async def edit_listing(self, listing_id: str, changes: Any = None, image: Any = None) -> Dict[str, Any]:
        with operation_context("app:edit_listing"):
            try:
                await self.uploads.edit_listing(listing_id, changes, image)
            except StyleSphereError as exc:
                return self._failure("edit_listing", exc)
            return self._success("edit_listing", "Listing updated.", listing_id=listing_id)

    async def delete_listing(self, listing_id: str) -> Dict[str, Any]:
        with operation_context("app:delete_listing"):
            try:
                await self.uploads.delete_listing(listing_id)
            except StyleSphereError as exc:
                return self._failure("delete_listing", exc)
            return self._success("delete_listing", "Listing removed.", listing_id=listing_id)

    def purchase(self, listing_id: str) -> Dict[str, Any]:
        """Open the checkout for a listing and record the receipt on success."""

        with operation_context("app:purchase"):
            try:
                listing = self._find_listing(listing_id)
            except StyleSphereError as exc:
                return self._failure("purchase", exc)

            outcome: Dict[str, Any] = {"status": "pending"}

            def on_success(receipt: CheckoutReceipt) -> None:
                record = self.receipts.record(receipt, listing.id, listing.availability, self.session.user_id)
                outcome.update({"status": "ok", "payment_id": record.payment_id, "amount": record.amount})
                self.view.notify("Payment successful!", kind="success")

            def on_cancel() -> None:
                outcome["status"] = "cancelled"
                self.view.notify("Payment cancelled.")

            action = "Rent" if listing.is_rental else "Buy"
            self.checkout.open(
                amount=listing.price,
                currency=self.config.checkout_currency,
                description=f"{action}: {listing.name}",
                on_success=on_success,
                on_cancel=on_cancel,
            )
            log_event(LOGGER, logging.INFO, "checkout_opened", listing_id=listing.id, outcome=outcome["status"])
            return outcome

    # -- profile -------------------------------------------------------------------------

    @property
    def profile_picture(self) -> Optional[str]:
        return self.mirror.state.profile_picture

    async def update_profile_picture(self, image: Any) -> Dict[str, Any]:
        with operation_context("app:update_profile_picture"):
            try:
                result = await self.uploads.update_profile_picture(image)
            except StyleSphereError as exc:
                return self._failure("update_profile_picture", exc)
            return self._success("update_profile_picture", "Profile picture updated.", image_url=result.image_url)

    async def logout(self) -> Dict[str, Any]:
        await self.session.sign_out()
        return self._success("logout", "Signed out.")


__all__ = ["StyleSphereApp"]
