"""
trace_query.py — Turn a selection into a normalized trace.

TraceQuery sits between the dashboard and a location store. Any object
with these coroutines works as a store (MongoLocationStore on the server,
ApiLocationStore in the dashboard runtime):

    select_locations(where: dict, fields: Iterable[str]) -> list[dict]
    find_username(user_id: str) -> str | None
    distinct_users() -> list[dict]          # [{"user_id", "username"}]

Outcomes:
  - rows found      → Trace with validated LocationPoints, store order kept
  - no rows         → empty Trace (not an error; callers show "no data")
  - store failure   → QueryFailed (network, rejected query, or timeout)

Rows that fail validation (out-of-range coordinates, unreadable
timestamps, missing fields) are dropped here and never reach the map.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, Iterator, Optional, TypeVar

from pydantic import ValidationError

from tracemap.core.config import settings
from tracemap.models.location import (
    FILTER_TRACE_FIELDS,
    USER_TRACE_FIELDS,
    FilterCriteria,
    LocationPoint,
    UserOption,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueryFailed(Exception):
    """The location store could not answer the read."""


def display_name(user_id: str, username: Optional[str] = None) -> str:
    """Username when known, otherwise a truncated id: 'User 3f2a9c1e...'."""
    return username or f"User {user_id[:8]}..."


@dataclass(frozen=True)
class Trace:
    """An immutable, ordered trace for one selection."""

    points: tuple[LocationPoint, ...] = ()
    display_name: Optional[str] = None

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[LocationPoint]:
        return iter(self.points)

    def __getitem__(self, index):
        return self.points[index]


EMPTY_TRACE = Trace()


def normalize_rows(
    rows: Iterable[dict[str, Any]],
    user_id: Optional[str] = None,
    username: Optional[str] = None,
) -> tuple[LocationPoint, ...]:
    """
    Map raw store rows onto LocationPoints, keeping their order.

    *user_id* / *username* fill in for rows that don't carry them
    (the by-user read doesn't project user_id).
    """
    points = []
    dropped = 0
    for row in rows:
        if not isinstance(row, dict):
            dropped += 1
            logger.debug("Dropping non-object location row %r", row)
            continue
        try:
            points.append(
                LocationPoint(
                    latitude=row.get("latitude"),
                    longitude=row.get("longitude"),
                    timestamp=row.get("created_at"),
                    speed_kmh=row.get("speed") or 0.0,
                    user_id=row.get("user_id") or user_id,
                    username=row.get("username") or username,
                    age_range=row.get("age_range"),
                    gender=row.get("gender"),
                    commute_mode=row.get("commute_mode"),
                )
            )
        except ValidationError as exc:
            dropped += 1
            logger.debug("Dropping malformed location row %r: %s", row, exc)
    if dropped:
        logger.warning("Dropped %d malformed location row(s)", dropped)
    return tuple(points)


def _row_username(row: Any) -> Optional[str]:
    name = row.get("username") if isinstance(row, dict) else None
    return name if isinstance(name, str) else None


class TraceQuery:
    """Read-only trace queries against a location store."""

    def __init__(self, store, timeout: Optional[float] = None) -> None:
        self.store = store
        self.timeout = settings.query_timeout_seconds if timeout is None else timeout

    async def _read(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error("%s timed out after %.1fs", what, self.timeout)
            raise QueryFailed(f"{what} timed out") from exc
        except Exception as exc:
            logger.error("%s failed: %s", what, exc)
            raise QueryFailed(f"{what} failed") from exc

    async def _read_rows(self, what: str, call: Awaitable[Any]) -> list:
        """Like _read, for reads that must answer with a list."""
        rows = await self._read(what, call)
        if not isinstance(rows, list):
            logger.error("%s returned %s instead of a list", what, type(rows).__name__)
            raise QueryFailed(f"{what} returned a malformed response")
        return rows

    async def fetch_by_user(self, user_id: str) -> Trace:
        """All points recorded for *user_id*, oldest first."""
        # Profile lookup failures only cost us the display name
        try:
            username = await self._read("Profile lookup", self.store.find_username(user_id))
        except QueryFailed:
            username = None
        if not isinstance(username, str):
            username = None

        rows = await self._read_rows(
            "Location query",
            self.store.select_locations({"user_id": user_id}, USER_TRACE_FIELDS),
        )
        if not username:
            username = next(filter(None, map(_row_username, rows)), None)

        points = normalize_rows(rows, user_id=user_id, username=username)
        logger.info("Fetched %d point(s) for user %s", len(points), user_id)
        return Trace(points=points, display_name=display_name(user_id, username))

    async def fetch_by_filter(self, criteria: FilterCriteria) -> Trace:
        """
        Points of every user matching all set criteria, oldest first.

        An empty criteria set issues no read and returns an empty trace.
        """
        where = criteria.as_query()
        if not where:
            return EMPTY_TRACE

        rows = await self._read_rows(
            "Location query",
            self.store.select_locations(where, FILTER_TRACE_FIELDS),
        )
        points = tuple(
            p.model_copy(update={"username": display_name(p.user_id, p.username)})
            for p in normalize_rows(rows)
        )
        logger.info("Fetched %d point(s) for filter %s", len(points), where)
        return Trace(points=points)

    async def list_users(self) -> list[UserOption]:
        """Selector entries, labelled with username or truncated id."""
        users = await self._read_rows("User directory query", self.store.distinct_users())
        options = []
        for user in users:
            if not isinstance(user, dict) or not isinstance(user.get("user_id"), str) or not user["user_id"]:
                logger.debug("Skipping malformed directory entry %r", user)
                continue
            username = user.get("username")
            options.append(UserOption(
                value=user["user_id"],
                label=display_name(user["user_id"], username if isinstance(username, str) else None),
            ))
        return options
