"""Pydantic contracts for upload and listing inputs, checked at the boundary."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from logic.errors import InvalidInputError
from models.closet_item import ClosetItem
from models.documents import SnapshotDocument
from models.outfit import ItemSnapshot
from models.taxonomy import REQUIRED_CATEGORIES, validate_availability, validate_category, validate_gender

ModelT = TypeVar("ModelT", bound=BaseModel)


class ImageUpload(BaseModel):
    """Binary image chosen by the user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    filename: str = Field(min_length=1)
    content_type: str
    data: bytes = Field(min_length=1, repr=False)

    @field_validator("content_type")
    @classmethod
    def _must_be_image(cls, content_type: str) -> str:
        if not content_type.lower().startswith("image/"):
            raise ValueError("only image files can be uploaded")
        return content_type.lower()

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class ClosetUploadRequest(BaseModel):
    category: str
    image: ImageUpload

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: str) -> str:
        return validate_category(value)


class ListingDraft(BaseModel):
    """Metadata for a new marketplace listing."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    price: int = Field(gt=0)
    category: str
    availability: str = "buy"
    gender: str = "Unisex"

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: str) -> str:
        return validate_category(value)

    @field_validator("availability")
    @classmethod
    def _canonical_availability(cls, value: str) -> str:
        return validate_availability(value)

    @field_validator("gender")
    @classmethod
    def _canonical_gender(cls, value: str) -> str:
        return validate_gender(value)


class ListingUpdate(BaseModel):
    """Owner edits to a listing; unset fields are left untouched."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=120)
    price: Optional[int] = Field(None, gt=0)
    category: Optional[str] = None
    availability: Optional[str] = None
    gender: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _canonical_category(cls, value: Optional[str]) -> Optional[str]:
        return validate_category(value) if value is not None else None

    @field_validator("availability")
    @classmethod
    def _canonical_availability(cls, value: Optional[str]) -> Optional[str]:
        return validate_availability(value) if value is not None else None

    @field_validator("gender")
    @classmethod
    def _canonical_gender(cls, value: Optional[str]) -> Optional[str]:
        return validate_gender(value) if value is not None else None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class OutfitPieces(BaseModel):
    """Items of an outfit to save: closet items, snapshots or their documents."""

    items: List[SnapshotDocument]

    @field_validator("items", mode="before")
    @classmethod
    def _as_documents(cls, pieces: Any) -> Any:
        if not isinstance(pieces, (list, tuple)):
            return pieces
        documents = []
        for piece in pieces:
            if piece is None:
                continue
            if isinstance(piece, ClosetItem):
                piece = ItemSnapshot.from_item(piece)
            if isinstance(piece, ItemSnapshot):
                piece = piece.to_document()
            documents.append(piece)
        return documents

    @field_validator("items")
    @classmethod
    def _one_per_category(cls, documents: List[SnapshotDocument]) -> List[SnapshotDocument]:
        present = {document.category for document in documents}
        missing = [category for category in REQUIRED_CATEGORIES if category not in present]
        if missing:
            raise ValueError(f"an outfit needs {', '.join(missing)}")
        return documents

    def snapshots(self) -> List[ItemSnapshot]:
        return [document.to_model() for document in self.items]


def _summarise(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return f"{location}: {first.get('msg', 'invalid value')}"


def validate_input(model: type[ModelT], payload: Any) -> ModelT:
    """Validate ``payload`` (a dict or an existing model) or raise :class:`InvalidInputError`."""

    if isinstance(payload, model):
        return payload
    try:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid {_summarise(exc)}", detail=str(exc)) from exc


__all__ = [
    "ClosetUploadRequest",
    "ImageUpload",
    "ListingDraft",
    "ListingUpdate",
    "OutfitPieces",
    "validate_input",
]
