"""
session.py — Client-side session gate for the dashboard runtime.

SessionGate owns the only copy of the "is this client authorized" flag
(a Session handle) and the three transitions that change it:

  check_session()  GET    /api/auth/check   VALID | INVALID
  login(secret)    POST   /api/auth         SUCCESS | INVALID_CREDENTIALS | SERVER_ERROR
  logout()         DELETE /api/auth         always ends logged out

Protected components receive the Session handle explicitly and call
session.require() before fetching or drawing anything.

Failure policy:
  - any network error during check_session counts as INVALID (fail closed)
  - 500, 429 and network errors during login are SERVER_ERROR, kept
    distinct from a wrong password so the UI can say "try again later"
  - logout flips the flag before talking to the server; a failed revoke
    call is logged and otherwise ignored
"""

import logging
from enum import Enum

import httpx

from tracemap.core.config import settings

logger = logging.getLogger(__name__)

AUTH_PATH = "/api/auth"
CHECK_PATH = "/api/auth/check"


class SessionStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


class LoginResult(str, Enum):
    SUCCESS = "success"
    INVALID_CREDENTIALS = "invalid-credentials"
    SERVER_ERROR = "server-error"


class NotAuthenticated(RuntimeError):
    """A protected component was used without a valid session."""


class Session:
    """Explicit session handle. Only SessionGate changes it."""

    def __init__(self) -> None:
        self._authenticated = False

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def require(self) -> None:
        if not self._authenticated:
            raise NotAuthenticated("Dashboard requires a valid session")

    def _set(self, authenticated: bool) -> None:
        if authenticated != self._authenticated:
            logger.info("Session %s", "granted" if authenticated else "revoked")
        self._authenticated = authenticated


class SessionGate:
    """Session state machine backed by the API's cookie endpoints."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client
        self.session = Session()

    async def check_session(self) -> SessionStatus:
        """Stateless check. Re-derives the session from the cookie every time."""
        valid = False
        try:
            response = await self.client.get(CHECK_PATH)
            if response.status_code == 200:
                body = response.json()
                valid = isinstance(body, dict) and body.get("authenticated") is True
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Session check failed, treating as logged out: %s", exc)
        finally:
            # Anything short of an explicit yes ends the session
            self.session._set(valid)

        return SessionStatus.VALID if valid else SessionStatus.INVALID

    async def login(self, secret: str) -> LoginResult:
        """Submit the operator secret. Only SUCCESS changes the session."""
        try:
            response = await self.client.post(AUTH_PATH, json={"password": secret})
        except httpx.HTTPError as exc:
            logger.error("Login request failed: %s", exc)
            return LoginResult.SERVER_ERROR

        if response.status_code == 200:
            self.session._set(True)
            return LoginResult.SUCCESS
        if response.status_code == 401:
            return LoginResult.INVALID_CREDENTIALS

        logger.error("Login returned HTTP %s", response.status_code)
        return LoginResult.SERVER_ERROR

    async def logout(self) -> None:
        """Log out locally first, then ask the server to clear the cookie."""
        self.session._set(False)
        self.client.cookies.delete(settings.session_cookie_name)
        try:
            response = await self.client.delete(AUTH_PATH)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Logout request failed (already logged out locally): %s", exc)
