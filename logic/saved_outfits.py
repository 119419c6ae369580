"""Saved outfit library stored under ``users/{uid}/savedOutfits``."""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Tuple

from closet_app.logging_config import get_logger, log_event
from logic.errors import ItemNotFoundError, RemoteServiceError, ServiceUnavailableError
from logic.validation import OutfitPieces, validate_input
from models.documents import saved_outfits_path
from tools.document_service import SERVER_TIMESTAMP, DocumentNotFoundError, DocumentService, DocumentServiceError

LOGGER = get_logger(__name__)


class OutfitLibrary:
    """Saves snapshots of outfits; later closet edits do not affect a saved outfit."""

    def __init__(self, documents: DocumentService | None, user_id_provider: Callable[[], Optional[str]]) -> None:
        self.documents = documents
        self.user_id_provider = user_id_provider

    def _remote(self) -> Tuple[DocumentService, str]:
        user_id = self.user_id_provider()
        if self.documents is None or not user_id:
            raise ServiceUnavailableError("Please sign in to save outfits.")
        return self.documents, user_id

    async def save(self, items: Iterable[Any]) -> str:
        """Store one snapshot per piece; pieces may be closet items, snapshots or snapshot dicts."""

        snapshots = validate_input(OutfitPieces, {"items": list(items)}).snapshots()
        documents, user_id = self._remote()
        try:
            outfit_id = await documents.add(
                saved_outfits_path(user_id),
                {"items": [snapshot.to_document() for snapshot in snapshots], "created_at": SERVER_TIMESTAMP},
            )
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc
        log_event(LOGGER, logging.INFO, "outfit_saved", outfit_id=outfit_id, item_count=len(snapshots))
        return outfit_id

    async def delete(self, outfit_id: str) -> None:
        documents, user_id = self._remote()
        try:
            await documents.delete(saved_outfits_path(user_id), outfit_id)
        except DocumentNotFoundError as exc:
            raise ItemNotFoundError(detail=str(exc)) from exc
        except DocumentServiceError as exc:
            raise RemoteServiceError(detail=str(exc)) from exc


__all__ = ["OutfitLibrary"]
