"""
kehila.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn kehila.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from kehila.api.deps import get_cache, get_config, get_engine  # noqa: E402
from kehila.api.routes.admin import router as admin_router  # noqa: E402
from kehila.api.routes.notifications import router as notifications_router  # noqa: E402
from kehila.api.routes.points import router as points_router  # noqa: E402
from kehila.engine.cache import CacheSweeper  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine, run the cache sweeper."""
    engine = get_engine()
    cfg = get_config()

    sweeper = CacheSweeper(get_cache(), interval=cfg.cache_sweep_interval_seconds)
    sweeper.start(asyncio.get_running_loop())
    logger.info("Kehila API started — engine ready (%s)", engine.url.database)
    yield
    sweeper.stop()
    logger.info("Kehila API shutting down")


app = FastAPI(
    title="Kehila Gamification API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(points_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
