"""
kehila.database.engine — Database Connection & Async Helper
============================================================

Request handlers run on an ``asyncio`` event loop, while SQLAlchemy +
psycopg2 is **synchronous**.  Service functions are therefore written as
plain sync functions that open their own session, and async callers ship
them to a worker thread:

    1. A request handler (async) needs to award points.
    2. It calls ``await run_db(award_points, engine, schema, user_id, ...)``.
    3. ``run_db`` runs the function on the default thread pool via
       ``asyncio.to_thread()``.
    4. The event loop stays free while the DB round-trips happen.

Usage::

    from kehila.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    result = await run_db(award_points, engine, schema, user_id, "daily_login")
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine

from kehila.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Engine for ``DATABASE_URL``.

    PostgreSQL gets a small pre-pinged pool (5 + 10 overflow, 10 s checkout
    timeout, hourly recycle).  SQLite URLs, used for local development,
    get a plain engine that worker threads may share.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        logger.info("Database engine created → %s", engine.url.database)
        return engine

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`kehila.database.models`.

    Safe to call on every startup.  After creating tables, seeds the
    default gamification rules so awards work on a fresh database.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is kept for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from kehila.database.seed import seed_default_rules

    seed_default_rules(engine)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Parameters
    ----------
    func:
        Any sync callable (typically a service function that opens a
        session and runs queries).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
