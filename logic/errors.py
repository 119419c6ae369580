"""Error taxonomy for closet and marketplace operations.

Every error carries a ``user_message`` suitable for a toast. None of them is
fatal; the application layer turns them into an error response and carries on.
"""

from __future__ import annotations

from typing import Optional


class StyleSphereError(Exception):
    default_message = "Something went wrong."

    def __init__(self, user_message: str | None = None, *, detail: str | None = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(detail or self.user_message)


class InvalidInputError(StyleSphereError, ValueError):
    """Missing field, wrong file type or out-of-range value, rejected before any write."""

    default_message = "Please check the details and try again."


class AuthorizationError(StyleSphereError):
    """The caller does not own the resource; raised before any write."""

    default_message = "You can only change items you own."


class ItemNotFoundError(StyleSphereError, LookupError):
    default_message = "That item no longer exists."


class ServiceUnavailableError(StyleSphereError):
    """The operation needs the remote service or a signed-in user."""

    default_message = "Please sign in to do that."


class RemoteServiceError(StyleSphereError):
    """Transient failure reported by a remote collaborator."""

    default_message = "The service could not complete the request. Please try again."


class PartialUploadError(RemoteServiceError):
    """The image reached the host but its record was not written.

    The hosted asset is left in place because the client cannot delete it.
    """

    default_message = "Your image was uploaded but could not be saved. Please try again."

    def __init__(
        self,
        user_message: str | None = None,
        *,
        asset_id: Optional[str] = None,
        url: Optional[str] = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(user_message, detail=detail)
        self.asset_id = asset_id
        self.url = url


__all__ = [
    "AuthorizationError",
    "InvalidInputError",
    "ItemNotFoundError",
    "PartialUploadError",
    "RemoteServiceError",
    "ServiceUnavailableError",
    "StyleSphereError",
]
