"""
database.py — Motor connection for the location store.

Collections:
  locations_aggregated — one document per recorded GPS fix
  profiles             — { _id: <user id>, username }

One DatabaseClient per process. The lifespan in main.py opens it on
startup and closes it on shutdown; routes receive the database through
the get_db dependency and never import the singleton.

Timestamps come back as timezone-aware datetimes (tz_aware=True), so
created_at serializes with its UTC offset.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from tracemap.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Motor client plus the selected database; both None while disconnected."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def ping(self) -> bool:
        if self.client is None:
            return False
        await self.client.admin.command("ping")
        return True

    def reset(self) -> None:
        self.client = None
        self.db = None


db_client = DatabaseClient()


def _client_options(uri: str) -> dict:
    options = {"serverSelectionTimeoutMS": 5000, "tz_aware": True}
    # Atlas (mongodb+srv) needs certifi's CA bundle
    if uri.startswith("mongodb+srv://"):
        options["tlsCAFile"] = certifi.where()
    return options


async def connect_to_mongo() -> None:
    """
    Open the connection and verify it with a ping.

    A failure leaves the client disconnected instead of aborting startup:
    login and the pages keep working, the store routes answer 503.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(settings.mongo_uri, **_client_options(settings.mongo_uri))
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.ping()
    except Exception as exc:
        logger.warning("MongoDB unavailable at startup (%s); location routes will answer 503", exc)
        db_client.reset()
        return
    logger.info("MongoDB connected (db: %s)", settings.mongo_db_name)


async def close_mongo_connection() -> None:
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")
    db_client.reset()


def get_db() -> AsyncIOMotorDatabase | None:
    """FastAPI dependency. None while MongoDB is unavailable."""
    return db_client.db


def _redact_uri(uri: str) -> str:
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
