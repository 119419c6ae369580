"""Identity service abstractions and an in-process implementation."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

IdentityListener = Callable[[Optional["Identity"]], None]


class IdentityError(RuntimeError):
    """Raised when sign-in cannot produce an identity."""


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    is_anonymous: bool = False


class IdentityService(ABC):
    """Authentication collaborator consumed by the session manager."""

    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """Return the signed-in identity, if any."""

    @abstractmethod
    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        """Register ``callback``; it fires now and on every change. Returns an unsubscribe function."""

    @abstractmethod
    async def sign_in_with_token(self, token: str) -> Identity:
        """Exchange an explicit credential for an identity."""

    @abstractmethod
    async def sign_in_anonymously(self) -> Identity:
        """Create a fresh anonymous identity."""

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the current identity."""


class LocalIdentityService(IdentityService):
    """Identity held in process memory.

    ``tokens`` maps accepted credentials to identities. Anonymous sign-in can be
    disabled to model projects that restrict it.
    """

    def __init__(self, tokens: Dict[str, Identity] | None = None, allow_anonymous: bool = True) -> None:
        self.tokens = dict(tokens or {})
        self.allow_anonymous = allow_anonymous
        self._current: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []

    def current_identity(self) -> Optional[Identity]:
        return self._current

    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        self._listeners.append(callback)
        callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_current(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for listener in list(self._listeners):
            listener(identity)

    async def sign_in_with_token(self, token: str) -> Identity:
        identity = self.tokens.get(token)
        if identity is None:
            raise IdentityError("Credential was not accepted")
        self._set_current(identity)
        return identity

    async def sign_in_anonymously(self) -> Identity:
        if not self.allow_anonymous:
            raise IdentityError("Anonymous sign-in is disabled for this project")
        identity = Identity(user_id=uuid.uuid4().hex[:28], is_anonymous=True)
        LOGGER.info("Created anonymous identity")
        self._set_current(identity)
        return identity

    async def sign_out(self) -> None:
        self._set_current(None)


__all__ = ["Identity", "IdentityError", "IdentityListener", "IdentityService", "LocalIdentityService"]
