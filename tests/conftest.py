"""
pytest configuration and shared fixtures for the Tracemap tests.

Tests never need a live MongoDB:
  1. The Mongo lifecycle used by the lifespan is patched to no-ops and
     db_client is left disconnected for every test.
  2. Routes that read locations get an in-memory FakeDB through
     app.dependency_overrides[get_db] (see `api_client`).

The operator secret and session signing key are fixed test values, set
before anything imports tracemap so Settings picks them up.
"""

import os
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ADMIN_PASSWORD", "correct-horse")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

OPERATOR_PASSWORD = os.environ["ADMIN_PASSWORD"]
BASE_URL = "http://test"


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

def _matches(doc: dict, query: dict) -> bool:
    for key, expected in query.items():
        value = doc.get(key)
        if isinstance(expected, dict):
            if "$in" in expected and value not in expected["$in"]:
                return False
            if "$regex" in expected and not (isinstance(value, str) and re.search(expected["$regex"], value)):
                return False
        elif value != expected:
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    if not projection:
        return dict(doc)
    included = [k for k, v in projection.items() if v and k != "_id"]
    out = {k: doc[k] for k in included if k in doc}
    if projection.get("_id", 1) and "_id" in doc:
        out["_id"] = doc["_id"]
    return out


class FakeCursor:
    """Supports the cursor calls MongoLocationStore makes: sort, to_list, async for."""

    def __init__(self, docs, projection=None):
        self._docs = list(docs)
        self._projection = projection

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        docs = self._docs if length is None else self._docs[:length]
        return [_project(d, self._projection) for d in docs]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield _project(doc, self._projection)


class FakeCollection:
    """Minimal replica of a Motor collection (read side only)."""

    def __init__(self, docs=None):
        self.docs = [dict(d) for d in docs or []]
        self.error: Exception | None = None
        self.queries: list[dict] = []

    def _check(self):
        if self.error is not None:
            raise self.error

    def find(self, query=None, projection=None):
        self._check()
        self.queries.append(dict(query or {}))
        return FakeCursor((d for d in self.docs if _matches(d, query or {})), projection)

    async def find_one(self, query, projection=None):
        self._check()
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def aggregate(self, pipeline):
        """Understands the {$group: {_id: "$field", x: {$first: "$y"}}} + {$sort} stages used here."""
        self._check()
        docs = list(self.docs)
        for stage in pipeline:
            if "$group" in stage:
                stage_def = stage["$group"]
                key_field = stage_def["_id"].lstrip("$")
                groups: dict = {}
                for doc in docs:
                    key = doc.get(key_field)
                    group = groups.setdefault(key, {"_id": key})
                    for name, acc in stage_def.items():
                        if name != "_id" and name not in group:
                            group[name] = doc.get(acc["$first"].lstrip("$"))
                docs = list(groups.values())
            elif "$sort" in stage:
                (field, direction), = stage["$sort"].items()
                docs.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return FakeCursor(docs)


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self):
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


# ── Sample data ───────────────────────────────────────────────────────────────

T0 = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)

# abc123: three fixes over ten minutes, stored out of order on purpose
SAMPLE_LOCATIONS = [
    {"user_id": "abc123", "latitude": 51.5080, "longitude": -0.1290, "created_at": T0 + timedelta(minutes=10),
     "speed": 14.25, "username": "ayo", "age_range": "25-34", "gender": "Female", "commute_mode": "Bike"},
    {"user_id": "abc123", "latitude": 51.5074, "longitude": -0.1278, "created_at": T0,
     "speed": 0.0, "username": "ayo", "age_range": "25-34", "gender": "Female", "commute_mode": "Bike"},
    {"user_id": "abc123", "latitude": 51.5101, "longitude": -0.1340, "created_at": T0 + timedelta(minutes=5),
     "speed": 22.5, "username": "ayo", "age_range": "25-34", "gender": "Female", "commute_mode": "Bike"},
    {"user_id": "f00dbabe-1234-5678", "latitude": 48.8566, "longitude": 2.3522, "created_at": T0 + timedelta(minutes=2),
     "speed": 4.0, "age_range": "25-34", "gender": "Male", "commute_mode": "Bike"},
    {"user_id": "f00dbabe-1234-5678", "latitude": 48.8570, "longitude": 2.3530, "created_at": T0 + timedelta(minutes=3),
     "speed": 5.5, "age_range": "25-34", "gender": "Male", "commute_mode": "Walk"},
]

SAMPLE_PROFILES = [
    {"_id": "abc123", "username": "ayo"},
]


@pytest.fixture()
def fake_db():
    """Fresh in-memory DB seeded with the sample traces."""
    db = FakeDB()
    db["locations_aggregated"].docs = [dict(d) for d in SAMPLE_LOCATIONS]
    db["profiles"].docs = [dict(d) for d in SAMPLE_PROFILES]
    return db


# ── App fixtures ──────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test and leave db_client
    disconnected (health check reports "disconnected").
    """
    with (
        patch("tracemap.main.connect_to_mongo", new_callable=AsyncMock),
        patch("tracemap.main.close_mongo_connection", new_callable=AsyncMock),
    ):
        import tracemap.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from tracemap.core.rate_limit import limiter

    try:
        limiter._limiter.storage.reset()
    except Exception:
        pass  # Some storage backends don't support reset — safe to ignore.


@pytest.fixture()
def app():
    from tracemap.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(app):
    """Plain HTTPX client against the app — no database."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as ac:
        yield ac


@pytest.fixture()
async def api_client(app, fake_db):
    """HTTPX client with get_db overridden to the seeded FakeDB."""
    from tracemap.core.database import get_db

    app.dependency_overrides[get_db] = lambda: fake_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as ac:
        yield ac


@pytest.fixture()
def session_token():
    from tracemap.core.security import create_session_token

    return create_session_token()


@pytest.fixture()
async def authed_client(api_client, session_token):
    """api_client already carrying a valid auth_token cookie."""
    api_client.cookies.set("auth_token", session_token)
    return api_client
