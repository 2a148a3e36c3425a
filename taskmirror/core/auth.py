"""Authentication context: who is signed in, and who needs to know when that changes."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from taskmirror.core import db_client
from taskmirror.core.errors import NotAuthenticatedError
from taskmirror.core.logging import span


logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

AuthListener = Callable[[str | None], Awaitable[None]]


class AuthContext:
    """Holds the current user id and notifies listeners when it changes.

    Every mirror store reads ``user_id`` before fetching and resets itself when
    the listener reports a sign-out.
    """

    def __init__(self, *, user: dict[str, Any] | None = None) -> None:
        self._user: dict[str, Any] | None = user
        self._listeners: list[AuthListener] = []

    @property
    def user(self) -> dict[str, Any] | None:
        return self._user

    @property
    def user_id(self) -> str | None:
        return self._user["id"] if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def require_user_id(self) -> str:
        """Return the current user id or raise NotAuthenticatedError."""
        if self._user is None:
            msg = "No user logged in"
            raise NotAuthenticatedError(msg)
        return self._user["id"]

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def set_user(self, user: dict[str, Any] | None) -> None:
        """Replace the current user and notify listeners if the id changed."""
        previous_id = self.user_id
        self._user = user
        if self.user_id != previous_id:
            logger.info("Auth user changed", extra={"previous_user_id": previous_id, "user_id": self.user_id})
            for listener in list(self._listeners):
                await listener(self.user_id)

    async def sign_in(self, *, email: str, password: str) -> dict[str, Any]:
        """Authenticate with email and password and make that user current."""
        with span("auth.sign_in"):
            user = await db_client.authenticate(collection=USERS_COLLECTION, identity=email, password=password)
            await self.set_user(user)
            return user

    async def sign_out(self) -> None:
        """Drop the session token and clear the current user."""
        with span("auth.sign_out"):
            db_client.clear_auth()
            await self.set_user(None)

    async def update_profile(self, data: dict[str, Any]) -> dict[str, Any]:
        """Update the signed-in user's auth record."""
        with span("auth.update_profile"):
            user_id = self.require_user_id()
            updated = await db_client.update_record(collection=USERS_COLLECTION, record_id=user_id, data=data)
            self._user = updated
            return updated
