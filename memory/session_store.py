"""Session state bound to the identity collaborator."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from closet_app.logging_config import get_logger, log_event
from tools.identity import Identity, IdentityError, IdentityService

LOGGER = get_logger(__name__)

SessionListener = Callable[["Session"], None]


@dataclass(frozen=True)
class Session:
    """Process-wide session; ``user_id`` is ``None`` until authentication completes."""

    user_id: Optional[str] = None
    display_name: str = "Guest"
    is_ready: bool = False
    is_anonymous: bool = False


def display_name_for(identity: Optional[Identity]) -> str:
    """Prefer the display name, then email, then a shortened user id."""

    if identity is None:
        return "Guest"
    if identity.display_name:
        return identity.display_name
    if identity.email:
        return identity.email
    if len(identity.user_id) > 8:
        return identity.user_id[:8] + "..."
    return identity.user_id


class SessionManager:
    """Tracks the active identity and tells listeners when it changes.

    Without an identity service the session becomes ready immediately with no
    user, which is the degraded mode where remote features are unavailable.
    """

    def __init__(self, identity: IdentityService | None, auth_token: str | None = None) -> None:
        self.identity = identity
        self.auth_token = auth_token
        self.session = Session()
        self._listeners: List[SessionListener] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id

    @property
    def is_authenticated(self) -> bool:
        return self.session.user_id is not None

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    async def start(self) -> Session:
        if self.identity is None:
            log_event(LOGGER, logging.INFO, "session_degraded", reason="identity_not_configured")
            self._apply(None)
            return self.session

        if self._unsubscribe is None:
            self._unsubscribe = self.identity.on_identity_change(self._apply)
        await self._ensure_identity(self.identity)
        return self.session

    async def _ensure_identity(self, identity: IdentityService) -> None:
        try:
            if self.auth_token:
                await identity.sign_in_with_token(self.auth_token)
            elif identity.current_identity() is None:
                await identity.sign_in_anonymously()
        except IdentityError as exc:
            log_event(LOGGER, logging.WARNING, "identity_unavailable", error=str(exc))

    def _apply(self, identity: Optional[Identity]) -> None:
        previous = self.session
        self.session = Session(
            user_id=identity.user_id if identity else None,
            display_name=display_name_for(identity),
            is_ready=True,
            is_anonymous=bool(identity and identity.is_anonymous),
        )
        if previous.is_ready and previous.user_id == self.session.user_id:
            return
        log_event(
            LOGGER,
            logging.INFO,
            "session_changed",
            authenticated=self.session.user_id is not None,
            anonymous=self.session.is_anonymous,
        )
        for listener in list(self._listeners):
            listener(self.session)

    async def sign_out(self) -> None:
        if self.identity is None:
            return
        await self.identity.sign_out()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


__all__ = ["Session", "SessionListener", "SessionManager", "display_name_for"]
