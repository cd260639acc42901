"""
location.py — Pydantic models for location traces.

Two shapes live here:

  LocationRow    — a raw store row as it leaves the API (field names follow
                   the collection: created_at, speed, ...). Only the fields
                   the caller asked for are present.
  LocationPoint  — the normalized, validated point the dashboard renders.
                   Coordinates are range-checked here so nothing malformed
                   ever reaches the map.

FilterCriteria restricts each demographic filter to the vocabulary the
selector offers; an unknown value is a validation error, not a silent
empty result.
"""

from datetime import datetime
from typing import Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

AgeRange = Literal["18-24", "25-34", "35-44", "45-54", "55+"]
Gender = Literal["Male", "Female", "Other"]
CommuteMode = Literal["Car", "Public Transport", "Bike", "Walk", "Other"]

AGE_RANGES: tuple[str, ...] = get_args(AgeRange)
GENDERS: tuple[str, ...] = get_args(Gender)
COMMUTE_MODES: tuple[str, ...] = get_args(CommuteMode)

# Store fields per read. Only these are ever requested (no over-fetching).
USER_TRACE_FIELDS = ("latitude", "longitude", "created_at", "speed", "username")
FILTER_TRACE_FIELDS = USER_TRACE_FIELDS + ("user_id", "age_range", "gender", "commute_mode")
LOCATION_FIELDS = frozenset(FILTER_TRACE_FIELDS)


class FilterCriteria(BaseModel):
    """Demographic filter set. Omitted criteria are unconstrained; set ones are ANDed."""

    model_config = ConfigDict(frozen=True)

    age_range: Optional[AgeRange] = None
    gender: Optional[Gender] = None
    commute_mode: Optional[CommuteMode] = None

    @field_validator("age_range", "gender", "commute_mode", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        # The selector sends "" for "Any ..."
        return value or None

    def is_empty(self) -> bool:
        return not self.as_query()

    def as_query(self) -> dict[str, str]:
        """Exact-match clauses for the criteria that are set."""
        return self.model_dump(exclude_none=True)


class LocationRow(BaseModel):
    """One raw row from the location store."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime | str] = None
    speed: Optional[float] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    age_range: Optional[str] = None
    gender: Optional[str] = None
    commute_mode: Optional[str] = None


class LocationPoint(BaseModel):
    """A validated point of one trace."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: str                   # ISO-8601
    speed_kmh: float = 0.0
    user_id: str
    username: Optional[str] = None
    age_range: Optional[str] = None
    gender: Optional[str] = None
    commute_mode: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _iso_timestamp(cls, value):
        if isinstance(value, datetime):
            return value.isoformat()
        if not isinstance(value, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        # Raises ValueError for anything fromisoformat can't read
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return value

    @property
    def coordinates(self) -> tuple[float, float]:
        """(lng, lat) — GeoJSON axis order."""
        return (self.longitude, self.latitude)


class UserOption(BaseModel):
    """One entry of the user selector."""

    value: str       # user id
    label: str       # username, or truncated id when unknown


class DirectoryEntry(BaseModel):
    """Distinct user as returned by GET /api/locations/users."""

    user_id: str
    username: Optional[str] = None


class ProfileOut(BaseModel):
    user_id: str
    username: Optional[str] = None
