"""Blob-then-document uploads with an on-device fallback for the closet.

The remote path uploads the image first and records its document second; the
document write is never attempted when the upload fails. When no remote
service or identity is available, closet items go to the local key-value
store instead. Marketplace listings and profile pictures have no local path.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from closet_app.logging_config import get_logger, log_event
from logic.errors import (
    AuthorizationError,
    InvalidInputError,
    ItemNotFoundError,
    PartialUploadError,
    RemoteServiceError,
    ServiceUnavailableError,
)
from logic.validation import ClosetUploadRequest, ImageUpload, ListingDraft, ListingUpdate, validate_input
from models.closet_item import LOCAL_ID_PREFIX, LOCAL_OWNER, ClosetItem, is_local_id
from models.documents import (
    MARKETPLACE_PATH,
    PROFILE_DOC_ID,
    ClosetItemDocument,
    closet_path,
    coerce_documents,
    profile_path,
)
from models.taxonomy import validate_category
from tools.blob_host import BlobAsset, BlobHost, BlobUploadError
from tools.document_service import SERVER_TIMESTAMP, DocumentNotFoundError, DocumentService, DocumentServiceError
from tools.local_store import LocalKeyValueStore
from tools.observability import instrument_operation

LOGGER = get_logger(__name__)

LOCAL_CLOSET_KEY = "local_closet_items"

LocalChangeListener = Callable[[List[ClosetItem]], None]


@dataclass
class UploadResult:
    item_id: str
    image_url: str
    origin: str
    asset_id: Optional[str] = None


@dataclass(frozen=True)
class _Remote:
    documents: DocumentService
    blobs: BlobHost
    user_id: str


class UploadCoordinator:
    """Stores closet items, listings and profile pictures.

    ``user_id_provider`` returns the current session's user id (or ``None``),
    so the coordinator always sees the latest identity without holding one.
    """

    def __init__(
        self,
        documents: DocumentService | None,
        blobs: BlobHost | None,
        local_store: LocalKeyValueStore,
        user_id_provider: Callable[[], Optional[str]],
        folder_root: str = "stylesphere",
        clock: Callable[[], float] = time.time,
        on_local_change: LocalChangeListener | None = None,
    ) -> None:
        self.documents = documents
        self.blobs = blobs
        self.local_store = local_store
        self.user_id_provider = user_id_provider
        self.folder_root = folder_root.strip("/")
        self.clock = clock
        self.on_local_change = on_local_change

    @property
    def remote_available(self) -> bool:
        return self.documents is not None and self.blobs is not None

    def _remote(self) -> Optional[_Remote]:
        """Collaborators and user for the remote path, or ``None`` when it is not usable."""

        if self.documents is None or self.blobs is None:
            return None
        user_id = self.user_id_provider()
        if not user_id:
            return None
        return _Remote(documents=self.documents, blobs=self.blobs, user_id=user_id)

    def _require_remote(self) -> _Remote:
        remote = self._remote()
        if remote is None:
            raise ServiceUnavailableError(
                detail="remote document service, blob host and identity are all required"
            )
        return remote

    def _folder(self, kind: str, user_id: str) -> str:
        return f"{self.folder_root}/{kind}/{user_id}"

    async def _upload_blob(self, remote: _Remote, image: ImageUpload, kind: str) -> BlobAsset:
        folder = self._folder(kind, remote.user_id)
        try:
            return await remote.blobs.upload(image.data, image.filename, image.content_type, folder)
        except BlobUploadError as exc:
            log_event(LOGGER, logging.ERROR, "blob_upload_failed", error=str(exc))
            raise RemoteServiceError("Image upload failed. Please try again.", detail=str(exc)) from exc

    def _partial(self, asset: BlobAsset, exc: DocumentServiceError, collection: str) -> PartialUploadError:
        log_event(
            LOGGER,
            logging.ERROR,
            "asset_orphaned",
            collection=collection,
            asset_id=asset.asset_id,
            error=str(exc),
        )
        return PartialUploadError(asset_id=asset.asset_id, url=asset.url, detail=str(exc))

    # -- closet ------------------------------------------------------------------

    @instrument_operation("upload_closet_item")
    async def upload_closet_item(self, category: str, image: ImageUpload | Dict[str, Any]) -> UploadResult:
        request = validate_input(ClosetUploadRequest, {"category": category, "image": image})
        remote = self._remote()
        if remote is None:
            return self._store_local(request)

        asset = await self._upload_blob(remote, request.image, "closet")
        try:
            item_id = await remote.documents.add(
                closet_path(remote.user_id),
                {
                    "owner_id": remote.user_id,
                    "category": request.category,
                    "image_url": asset.url,
                    "asset_id": asset.asset_id,
                    "private": True,
                    "created_at": SERVER_TIMESTAMP,
                },
            )
        except DocumentServiceError as exc:
            raise self._partial(asset, exc, "closet") from exc
        return UploadResult(item_id=item_id, image_url=asset.url, origin="remote", asset_id=asset.asset_id)

    @instrument_operation("delete_closet_item")
    async def delete_closet_item(self, item_id: str) -> None:
        """Delete through the path the item was created on. Hosted images are left in place."""

        if is_local_id(item_id):
            records = self.local_store.load_list(LOCAL_CLOSET_KEY)
            remaining = [record for record in records if record.get("id") != item_id]
            if len(remaining) == len(records):
                raise ItemNotFoundError(detail=f"no local closet item {item_id}")
            self._save_local(remaining)
            return

        remote = self._require_remote()
        try:
            await remote.documents.delete(closet_path(remote.user_id), item_id)
        except DocumentNotFoundError as exc:
            raise ItemNotFoundError(detail=str(exc)) from exc
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc

    @instrument_operation("edit_closet_item")
    async def edit_closet_item(self, item_id: str, category: str) -> None:
        """Change an item's category; the only field a closet item allows editing."""

        try:
            category = validate_category(category)
        except ValueError as exc:
            raise InvalidInputError(f"Invalid category: {category}", detail=str(exc)) from exc

        if is_local_id(item_id):
            records = self.local_store.load_list(LOCAL_CLOSET_KEY)
            record = next((record for record in records if record.get("id") == item_id), None)
            if record is None:
                raise ItemNotFoundError(detail=f"no local closet item {item_id}")
            record["category"] = category
            self._save_local(records)
            return

        remote = self._require_remote()
        try:
            await remote.documents.update(closet_path(remote.user_id), item_id, {"category": category})
        except DocumentNotFoundError as exc:
            raise ItemNotFoundError(detail=str(exc)) from exc
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc

    # -- local fallback ------------------------------------------------------------

    def _local_id(self, records: List[Dict[str, Any]]) -> str:
        base = f"{LOCAL_ID_PREFIX}{int(self.clock() * 1000)}"
        taken = {record.get("id") for record in records}
        candidate, suffix = base, 1
        while candidate in taken:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _store_local(self, request: ClosetUploadRequest) -> UploadResult:
        records = self.local_store.load_list(LOCAL_CLOSET_KEY)
        item_id = self._local_id(records)
        image_url = request.image.to_data_url()
        records.insert(
            0,
            {
                "id": item_id,
                "owner_id": self.user_id_provider() or LOCAL_OWNER,
                "category": request.category,
                "image_url": image_url,
                "created_at": self.clock(),
                "private": True,
            },
        )
        self._save_local(records)
        log_event(LOGGER, logging.INFO, "closet_item_stored_locally", item_id=item_id)
        return UploadResult(item_id=item_id, image_url=image_url, origin="local")

    def _save_local(self, records: List[Dict[str, Any]]) -> None:
        self.local_store.save_list(LOCAL_CLOSET_KEY, records)
        if self.on_local_change is not None:
            self.on_local_change(coerce_documents(records, ClosetItemDocument))

    def load_local_closet(self) -> List[ClosetItem]:
        return coerce_documents(self.local_store.load_list(LOCAL_CLOSET_KEY), ClosetItemDocument)

    # -- marketplace -----------------------------------------------------------------

    async def _owned_listing(self, remote: _Remote, listing_id: str) -> Dict[str, Any]:
        try:
            existing = await remote.documents.get(MARKETPLACE_PATH, listing_id)
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc
        if existing is None:
            raise ItemNotFoundError(detail=f"no listing {listing_id}")
        if existing.get("owner_id") != remote.user_id:
            log_event(LOGGER, logging.WARNING, "listing_authorization_denied", listing_id=listing_id)
            raise AuthorizationError(detail=f"listing {listing_id} belongs to another user")
        return existing

    @instrument_operation("upload_listing")
    async def upload_listing(
        self, draft: ListingDraft | Dict[str, Any], image: ImageUpload | Dict[str, Any]
    ) -> UploadResult:
        listing = validate_input(ListingDraft, draft)
        upload = validate_input(ImageUpload, image)
        remote = self._require_remote()

        asset = await self._upload_blob(remote, upload, "marketplace")
        try:
            listing_id = await remote.documents.add(
                MARKETPLACE_PATH,
                {
                    **listing.model_dump(),
                    "owner_id": remote.user_id,
                    "image_url": asset.url,
                    "asset_id": asset.asset_id,
                    "created_at": SERVER_TIMESTAMP,
                },
            )
        except DocumentServiceError as exc:
            raise self._partial(asset, exc, "marketplace") from exc
        return UploadResult(item_id=listing_id, image_url=asset.url, origin="remote", asset_id=asset.asset_id)

    @instrument_operation("edit_listing")
    async def edit_listing(
        self,
        listing_id: str,
        changes: ListingUpdate | Dict[str, Any] | None = None,
        image: ImageUpload | Dict[str, Any] | None = None,
    ) -> None:
        """Owner-only edit; a new image is uploaded before the document update."""

        update = validate_input(ListingUpdate, changes or {})
        upload = validate_input(ImageUpload, image) if image is not None else None
        fields = update.changes()
        if not fields and upload is None:
            raise InvalidInputError("Nothing to update.")

        remote = self._require_remote()
        await self._owned_listing(remote, listing_id)

        asset: Optional[BlobAsset] = None
        if upload is not None:
            asset = await self._upload_blob(remote, upload, "marketplace")
            fields.update({"image_url": asset.url, "asset_id": asset.asset_id})
        fields["updated_at"] = SERVER_TIMESTAMP

        try:
            await remote.documents.update(MARKETPLACE_PATH, listing_id, fields)
        except DocumentServiceError as exc:
            if asset is not None:
                raise self._partial(asset, exc, "marketplace") from exc
            if isinstance(exc, DocumentNotFoundError):
                raise ItemNotFoundError(detail=str(exc)) from exc
            raise RemoteServiceError(detail=str(exc)) from exc

    @instrument_operation("delete_listing")
    async def delete_listing(self, listing_id: str) -> None:
        remote = self._require_remote()
        await self._owned_listing(remote, listing_id)
        try:
            await remote.documents.delete(MARKETPLACE_PATH, listing_id)
        except DocumentNotFoundError as exc:
            raise ItemNotFoundError(detail=str(exc)) from exc
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc

    # -- profile -----------------------------------------------------------------------

    @instrument_operation("update_profile_picture")
    async def update_profile_picture(self, image: ImageUpload | Dict[str, Any]) -> UploadResult:
        upload = validate_input(ImageUpload, image)
        remote = self._require_remote()
        asset = await self._upload_blob(remote, upload, "profiles")
        try:
            await remote.documents.set(
                profile_path(remote.user_id),
                PROFILE_DOC_ID,
                {"profile_picture": asset.url, "updated_at": SERVER_TIMESTAMP},
                merge=True,
            )
        except DocumentServiceError as exc:
            raise self._partial(asset, exc, "profile") from exc
        return UploadResult(item_id=PROFILE_DOC_ID, image_url=asset.url, origin="remote", asset_id=asset.asset_id)


__all__ = ["LOCAL_CLOSET_KEY", "UploadCoordinator", "UploadResult"]
