"""
locations.py — Session-protected read gateway to the location store.

Routes:
  GET /api/locations           — rows for one user or a demographic filter
  GET /api/locations/users     — distinct {user_id, username} pairs
  GET /api/profiles/{user_id}  — display name lookup

Query parameters for /api/locations:
  user_id                           exact match (by-user read)
  age_range, gender, commute_mode   exact match each, ANDed (by-filter read)
  fields                            comma-separated projection, defaults to
                                    the by-user field set

Rows come back oldest first (created_at ascending) and contain only the
requested fields. Ordering is part of the contract: the dashboard draws
the route in the order it receives.

Every route requires a valid session cookie (401 otherwise) and answers
503 while MongoDB is unavailable.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from tracemap.core.database import get_db
from tracemap.models.location import (
    LOCATION_FIELDS,
    USER_TRACE_FIELDS,
    DirectoryEntry,
    FilterCriteria,
    LocationRow,
    ProfileOut,
)
from tracemap.routes.auth import require_session
from tracemap.services.location_store import MongoLocationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["locations"], dependencies=[Depends(require_session)])


def get_store(db=Depends(get_db)) -> MongoLocationStore:
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return MongoLocationStore(db)


def _parse_fields(raw: Optional[str]) -> list[str]:
    if not raw:
        return list(USER_TRACE_FIELDS)
    fields = [f.strip() for f in raw.split(",") if f.strip()]
    unknown = sorted(set(fields) - LOCATION_FIELDS)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown fields: {', '.join(unknown)}",
        )
    return fields


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/locations", response_model=list[LocationRow], response_model_exclude_unset=True)
async def list_locations(
    user_id: Optional[str] = Query(default=None, min_length=1),
    age_range: Optional[str] = Query(default=None),
    gender: Optional[str] = Query(default=None),
    commute_mode: Optional[str] = Query(default=None),
    fields: Optional[str] = Query(default=None, description="Comma-separated projection"),
    store: MongoLocationStore = Depends(get_store),
):
    """Return the location rows for a user or a demographic filter."""
    try:
        criteria = FilterCriteria(age_range=age_range, gender=gender, commute_mode=commute_mode)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        )

    where = criteria.as_query()
    if user_id:
        where["user_id"] = user_id
    if not where:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide user_id or at least one filter criterion",
        )

    projection = _parse_fields(fields)
    try:
        rows = await store.select_locations(where, projection)
    except Exception as exc:
        logger.error("Location query failed for %s: %s", where, exc)
        raise HTTPException(status_code=502, detail="Location store query failed")

    return [LocationRow(**row) for row in rows]


@router.get("/locations/users", response_model=list[DirectoryEntry])
async def list_users(store: MongoLocationStore = Depends(get_store)):
    """Distinct users that have at least one recorded location."""
    try:
        users = await store.distinct_users()
    except Exception as exc:
        logger.error("User directory query failed: %s", exc)
        raise HTTPException(status_code=502, detail="Location store query failed")
    return [DirectoryEntry(**u) for u in users]


@router.get("/profiles/{user_id}", response_model=ProfileOut)
async def get_profile(user_id: str, store: MongoLocationStore = Depends(get_store)):
    """Display name for *user_id*; username is null when no profile exists."""
    try:
        username = await store.find_username(user_id)
    except Exception as exc:
        logger.error("Profile lookup failed for %s: %s", user_id, exc)
        raise HTTPException(status_code=502, detail="Location store query failed")
    return ProfileOut(user_id=user_id, username=username)
