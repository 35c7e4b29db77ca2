"""
User Session

The authentication boundary. Signing in is done elsewhere; the tracker only
needs a stable user id and refuses to touch the store without one.
"""

from typing import Optional

import structlog

from expense_tracker.errors import NotAuthenticatedError


logger = structlog.get_logger(__name__)


class UserSession:
    """Holds the id of the signed-in user, if any."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_signed_in(self) -> bool:
        return self._user_id is not None

    def sign_in(self, user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise NotAuthenticatedError("Sign-in did not provide a user id")
        self._user_id = user_id.strip()
        logger.info("user_signed_in", user_id=self._user_id)

    def sign_out(self) -> None:
        if self._user_id is not None:
            logger.info("user_signed_out", user_id=self._user_id)
        self._user_id = None

    def require_user_id(self) -> str:
        """The signed-in user's id.

        Raises:
            NotAuthenticatedError: If nobody is signed in
        """
        if self._user_id is None:
            raise NotAuthenticatedError()
        return self._user_id
