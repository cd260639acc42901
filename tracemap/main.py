"""
main.py — Tracemap API application.

Serves three things from one process:
  /api/auth, /api/locations, /api/profiles   JSON API (session cookie)
  /login, /                                   page shells behind the navigation gate
  /health                                     liveness, never gated

Run locally:
    uvicorn tracemap.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tracemap.core.config import settings
from tracemap.core.database import close_mongo_connection, connect_to_mongo
from tracemap.core.gate import NavigationGateMiddleware
from tracemap.core.rate_limit import limiter
from tracemap.routes.auth import router as auth_router
from tracemap.routes.health import router as health_router
from tracemap.routes.locations import router as locations_router
from tracemap.routes.pages import router as pages_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the MongoDB connection on startup, close it on shutdown."""
    logger.info("Starting Tracemap API (env: %s)", settings.environment)
    if not (settings.admin_password or settings.admin_password_hash):
        logger.warning("No operator secret configured; every login will answer 500")
    await connect_to_mongo()
    yield
    logger.info("Shutting down Tracemap API")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Tracemap API",
    description="Operator session gate and read gateway for recorded location traces.",
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit(...) + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# Page navigations go through the session gate; /api routes check the
# session themselves and answer 401 instead of redirecting.
app.add_middleware(NavigationGateMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(auth_router)
app.include_router(locations_router)
app.include_router(pages_router)
