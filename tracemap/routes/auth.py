"""
auth.py — Operator session routes.

Routes:
  POST   /api/auth        — check the shared operator secret, issue `auth_token`
  DELETE /api/auth        — clear `auth_token` (always succeeds)
  GET    /api/auth/check  — stateless session check (200 / 401)

The cookie is httpOnly, sameSite=strict, path "/", max-age 24 h, and
secure in production. Its value is a signed token (see core/security.py).

Response bodies are fixed by the dashboard client:
  200 {"success": true}
  401 {"success": false, "message": "Invalid password"}
  500 {"success": false, "message": "Server error"}
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from tracemap.core.config import settings
from tracemap.core.rate_limit import limiter
from tracemap.core.security import (
    create_session_token,
    is_valid_session_token,
    verify_operator_secret,
)
from tracemap.models.auth import AuthResponse, SessionCheck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

INVALID_PASSWORD = "Invalid password"
SERVER_ERROR = "Server error"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _auth_json(status_code: int, success: bool, message: str | None = None) -> JSONResponse:
    body = AuthResponse(success=success, message=message).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


def has_valid_session(request: Request) -> bool:
    return is_valid_session_token(request.cookies.get(settings.session_cookie_name))


async def require_session(request: Request) -> None:
    """
    FastAPI dependency for API routes that read the location store.

    Raises 401 when the cookie is missing, forged, or expired.
    """
    if not has_valid_session(request):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("", response_model=AuthResponse)
@limiter.limit(settings.login_rate_limit)
async def login(request: Request):
    """Exchange the operator secret for a session cookie."""
    try:
        body = await request.json()
        password = body.get("password") if isinstance(body, dict) else None
        valid = isinstance(password, str) and verify_operator_secret(password)
    except Exception:
        logger.exception("Authentication error")
        return _auth_json(status.HTTP_500_INTERNAL_SERVER_ERROR, False, SERVER_ERROR)

    if not valid:
        logger.warning("Rejected operator login from %s", request.client.host if request.client else "?")
        return _auth_json(status.HTTP_401_UNAUTHORIZED, False, INVALID_PASSWORD)

    response = _auth_json(status.HTTP_200_OK, True)
    response.set_cookie(
        settings.session_cookie_name,
        create_session_token(),
        max_age=settings.session_max_age_seconds,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
    )
    logger.info("Operator session issued")
    return response


@router.delete("", response_model=AuthResponse)
async def logout():
    """Clear the session cookie. Succeeds whether or not a session existed."""
    response = _auth_json(status.HTTP_200_OK, True)
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
    )
    return response


@router.get("/check", response_model=SessionCheck)
async def check(request: Request):
    """Report whether the request carries a valid session cookie."""
    if not has_valid_session(request):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=SessionCheck(authenticated=False).model_dump(),
        )
    return SessionCheck(authenticated=True)
