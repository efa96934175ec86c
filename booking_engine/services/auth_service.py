"""Staff authentication for administrative endpoints (overrides, rules, units)."""

from __future__ import annotations

import secrets
import time
from typing import Callable, Optional

from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base class for staff login and session failures."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised on login when no staff token has been configured."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when a staff token or session is invalid."""


class AuthService:
    """Exchanges the staff token for short-lived bearer sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._sessions: dict[str, float] = {}

    @property
    def auth_enabled(self) -> bool:
        # An empty staff token leaves administrative endpoints open (local use).
        return self._settings.admin_token != ""

    def _prune(self) -> None:
        now = self._clock()
        self._sessions = {
            token: expires_at
            for token, expires_at in self._sessions.items()
            if expires_at > now
        }

    def login(self, staff_token: str) -> str:
        if not self.auth_enabled:
            raise AdminTokenNotConfiguredError(
                "Staff login is disabled: set ADMIN_TOKEN to enable it."
            )
        if not secrets.compare_digest(staff_token, self._settings.admin_token):
            logger.warning("Staff login rejected")
            raise InvalidAdminTokenError("Staff token rejected")

        self._prune()
        session_token = secrets.token_urlsafe(32)
        self._sessions[session_token] = self._clock() + self._settings.admin_session_ttl_seconds
        logger.info("Staff session opened | active_sessions=%s", len(self._sessions))
        return session_token

    def logout(self, bearer_token: str) -> None:
        if self._sessions.pop(bearer_token, None) is not None:
            logger.info("Staff session closed | active_sessions=%s", len(self._sessions))

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        self._prune()
        for session_token in self._sessions:
            if secrets.compare_digest(bearer_token, session_token):
                return
        raise InvalidAdminTokenError("Session is unknown or has expired; log in again.")
