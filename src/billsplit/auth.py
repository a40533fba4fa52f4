"""Signed-in session state.

A SessionContext is created by the caller and passed to whatever needs the
current user. It owns the session and the cached profile, and sign-out
clears both.
"""

import logging

from .clients.backend import BackendClient
from .exceptions import NotAuthenticatedError, NotFoundError
from .models import AuthSession, User

logger = logging.getLogger(__name__)


class SessionContext:
    """The current user's backend session and profile."""

    def __init__(self, client: BackendClient):
        """Initialize an empty (signed-out) context."""
        self.client = client
        self.session: AuthSession | None = None
        self._profile: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def require_user_id(self) -> str:
        """Return the signed-in user's ID or raise NotAuthenticatedError."""
        if self.session is None:
            raise NotAuthenticatedError("Sign in first")
        return self.session.user_id

    def _start(self, session: AuthSession):
        self.session = session
        self._profile = None
        self.client.set_access_token(session.access_token)

    def sign_in(self, email: str, password: str) -> User:
        """
        Sign in and load the user's profile.

        Raises:
            NotFoundError: If the account has no profile row
        """
        self._start(self.client.sign_in_with_password(email, password))
        logger.info(f"Signed in as {self.require_user_id()}")
        return self.profile

    def sign_up(self, email: str, password: str, full_name: str) -> User | None:
        """
        Create an account and its profile.

        The profile row is written and read back in one request, so it is
        available as soon as this returns.

        Returns:
            The new profile, or None when email confirmation is pending
        """
        session = self.client.sign_up(email, password, full_name)
        if session is None:
            return None
        self._start(session)
        self._profile = self.client.upsert_profile(
            User(user_id=session.user_id, full_name=full_name)
        )
        logger.info(f"Created profile for {session.user_id}")
        return self._profile

    @property
    def profile(self) -> User:
        """The signed-in user's profile, fetched once per session."""
        user_id = self.require_user_id()
        if self._profile is None:
            profile = self.client.get_profile(user_id)
            if profile is None:
                raise NotFoundError("Profile", user_id)
            self._profile = profile
        return self._profile

    def invalidate_profile(self):
        """Drop the cached profile so the next access refetches it."""
        self._profile = None

    def sign_out(self):
        """Sign out and clear all cached state."""
        if self.session is None:
            return
        try:
            self.client.sign_out()
        finally:
            self.session = None
            self._profile = None
            self.client.set_access_token(None)
        logger.info("Signed out")
