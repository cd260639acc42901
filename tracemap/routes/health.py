"""
health.py — Liveness check.

GET /health answers 200 while the process is up and reports the
location store separately, so "API down" and "store unreachable" can be
told apart. Not gated and needs no session.
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from tracemap.core import database as db_module
from tracemap.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str        # "ok" whenever this handler runs
    version: str
    database: str      # "connected" | "disconnected"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    try:
        # Module reference, so tests that swap db_module.db_client are honoured
        reachable = await db_module.db_client.ping()
    except Exception as exc:
        logger.warning("MongoDB ping failed: %s", exc)
        reachable = False

    return HealthResponse(
        status="ok",
        version="0.1.0",
        database="connected" if reachable else "disconnected",
        environment=settings.environment,
    )
