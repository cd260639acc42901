"""
gate.py — Navigation gate for page routes.

Every page except /login needs a valid `auth_token` cookie; without one
the browser is redirected to /login. A valid cookie on /login redirects
back to the dashboard at /.

API, docs and static paths are not gated here: the API protects its own
routes with the `require_session` dependency and answers 401 instead of
redirecting.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from tracemap.core.config import settings
from tracemap.core.security import is_valid_session_token

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/"

_UNGATED_PREFIXES = ("/api", "/health", "/docs", "/redoc", "/openapi.json", "/static")
_UNGATED_PATHS = {"/favicon.ico"}


def is_gated_path(path: str) -> bool:
    if path in _UNGATED_PATHS:
        return False
    return not any(path == p or path.startswith(p + "/") for p in _UNGATED_PREFIXES)


class NavigationGateMiddleware(BaseHTTPMiddleware):
    """Redirects page navigations according to the session cookie."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not is_gated_path(path):
            return await call_next(request)

        authenticated = is_valid_session_token(
            request.cookies.get(settings.session_cookie_name)
        )
        is_public = path == LOGIN_PATH

        if not authenticated and not is_public:
            logger.debug("Gate: unauthenticated request for %s, redirecting to login", path)
            return RedirectResponse(LOGIN_PATH, status_code=307)
        if authenticated and is_public:
            return RedirectResponse(DASHBOARD_PATH, status_code=307)
        return await call_next(request)
