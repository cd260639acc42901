"""
location_store.py — Read-only MongoDB access to recorded location fixes.

The store exposes exactly three reads:

  select_locations(where, fields)  — rows matching exact-match clauses,
                                     projected to *fields*, oldest first
  find_username(user_id)           — display name from the profiles collection
  distinct_users()                 — {user_id, username} pairs for the selector

Document shapes:

  locations_aggregated:
    { "user_id": "3f2a...", "latitude": 51.5, "longitude": -0.12,
      "created_at": ISODate(...), "speed": 12.4, "username": "ayo",
      "age_range": "25-34", "gender": "Female", "commute_mode": "Bike" }

  profiles:
    { "_id": "3f2a...", "username": "ayo" }

Indexes (created by scripts/seed_db.py):
  locations_aggregated: (user_id, created_at), (created_at),
                        (age_range, gender, commute_mode, created_at)
"""

import logging
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from tracemap.core.config import settings
from tracemap.models.location import LOCATION_FIELDS

logger = logging.getLogger(__name__)


class MongoLocationStore:
    """Motor-backed implementation of the location store reads."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._locations = db[settings.locations_collection]
        self._profiles = db[settings.profiles_collection]

    async def select_locations(
        self,
        where: dict[str, str],
        fields: Iterable[str],
    ) -> list[dict[str, Any]]:
        fields = list(fields)
        unknown = set(fields) - LOCATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown location fields: {sorted(unknown)}")

        projection = {name: 1 for name in fields}
        projection["_id"] = 0
        cursor = self._locations.find(dict(where), projection).sort("created_at", 1)
        rows = await cursor.to_list(length=None)
        logger.debug("select_locations %s -> %d rows", where, len(rows))
        return rows

    async def find_username(self, user_id: str) -> Optional[str]:
        doc = await self._profiles.find_one({"_id": user_id}, {"username": 1})
        if not doc:
            return None
        return doc.get("username") or None

    async def distinct_users(self) -> list[dict[str, Any]]:
        pipeline = [
            {"$group": {"_id": "$user_id", "username": {"$first": "$username"}}},
            {"$sort": {"_id": 1}},
        ]
        users = [
            {"user_id": doc["_id"], "username": doc.get("username")}
            async for doc in self._locations.aggregate(pipeline)
            if doc.get("_id")
        ]

        # Fill gaps from the profiles collection in one round trip
        missing = [u["user_id"] for u in users if not u["username"]]
        if missing:
            names = {
                doc["_id"]: doc.get("username")
                async for doc in self._profiles.find({"_id": {"$in": missing}}, {"username": 1})
            }
            for user in users:
                if not user["username"]:
                    user["username"] = names.get(user["user_id"])
        return users
