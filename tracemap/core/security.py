"""
security.py — Operator secret check and signed session tokens.

Uses:
  - bcrypt (direct, no passlib) when ADMIN_PASSWORD_HASH is configured
  - python-jose for the signed `auth_token` cookie value

The cookie carries a JWT whose `exp` claim is the absolute 24 h expiry.
A token that fails signature or expiry checks is treated exactly like a
missing cookie, so a forged cookie never opens the dashboard.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from tracemap.core.config import settings

_SESSION_SUBJECT = "operator"


# ── Operator secret ───────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return bcrypt hash of *plain* (for generating ADMIN_PASSWORD_HASH)."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_operator_secret(candidate: str) -> bool:
    """
    Return True if *candidate* is the shared operator secret.

    Raises RuntimeError when no secret is configured at all; the login
    route reports that as a server error rather than letting anyone in.
    """
    if settings.admin_password_hash:
        return bcrypt.checkpw(
            candidate.encode("utf-8"),
            settings.admin_password_hash.encode("utf-8"),
        )
    if not settings.admin_password:
        raise RuntimeError("ADMIN_PASSWORD is not configured")
    return hmac.compare_digest(
        candidate.encode("utf-8"), settings.admin_password.encode("utf-8")
    )


# ── Session tokens ────────────────────────────────────────────────────────────

def create_session_token(expires_delta: Optional[timedelta] = None) -> str:
    """
    Create the signed cookie value for an authenticated operator.

    Args:
        expires_delta: Custom TTL; defaults to settings.session_max_age_seconds.
    """
    delta = expires_delta or timedelta(seconds=settings.session_max_age_seconds)
    now = datetime.now(tz=timezone.utc)
    payload = {"sub": _SESSION_SUBJECT, "iat": now, "exp": now + delta}
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def is_valid_session_token(token: Optional[str]) -> bool:
    """Stateless session check: signature, expiry and subject must all hold."""
    if not token:
        return False
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
        )
    except JWTError:
        return False
    return payload.get("sub") == _SESSION_SUBJECT
