"""
tests/conftest.py — Shared Test Fixtures
=========================================

Two in-memory SQLite databases:

* ``db_engine`` — the current schema straight from the ORM models
  (``action_name`` ledger with the unique ``idempotency_key`` index).
* ``legacy_engine`` — the drifted deployment: ledger labelled ``action``
  without ``related_id``/``idempotency_key``, rules keyed by
  ``trigger_action``/``is_active`` only, and a notifications CHECK that
  does not accept ``points``.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
)
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from kehila.database.models import Badge, Base, Profile
from kehila.database.schema import SchemaAdapter, resolve_schema
from kehila.services.rule_service import ensure_gamification_rules

_LEGACY_NOTIFICATION_TYPES = (
    "comment", "reply", "mention", "like", "follow",
    "project_offer", "forum_reply", "forum_mention",
)


def memory_engine() -> Engine:
    """In-memory SQLite shared across threads (``run_db`` uses to_thread)."""
    return create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


# Helper to run async code without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Current schema
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """An in-memory SQLite engine with all Kehila tables."""
    engine = memory_engine()
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def schema(db_engine: Engine) -> SchemaAdapter:
    return resolve_schema(db_engine)


@pytest.fixture
def seeded(db_engine: Engine, schema: SchemaAdapter) -> Engine:
    """Current-schema engine with the default rules inserted."""
    ensure_gamification_rules(db_engine, schema)
    return db_engine


# ---------------------------------------------------------------------------
# Legacy schema
# ---------------------------------------------------------------------------
def _create_legacy_tables(engine: Engine) -> None:
    Base.metadata.create_all(
        engine,
        tables=[
            Base.metadata.tables["profiles"],
            Base.metadata.tables["badges"],
            Base.metadata.tables["user_badges"],
        ],
    )

    legacy = MetaData()
    Table(
        "gamification_rules", legacy,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("trigger_action", String(100)),
        Column("point_value", Integer, nullable=False, default=0),
        Column("is_active", Boolean, default=True),
        Column("description", Text),
    )
    Table(
        "points_history", legacy,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("user_id", String(36), nullable=False),
        Column("action", String(100), nullable=False),
        Column("points", Integer, nullable=False, default=0),
        Column("created_at", DateTime(timezone=True), server_default=func.now()),
    )
    type_list = ", ".join(f"'{t}'" for t in _LEGACY_NOTIFICATION_TYPES)
    Table(
        "notifications", legacy,
        Column("id", String(36), primary_key=True),
        Column("user_id", String(36), nullable=False),
        Column("type", String(30), nullable=False),
        Column("title", String(200), nullable=False),
        Column("message", Text, nullable=False),
        Column("link", String(500)),
        Column("related_id", String(100)),
        Column("related_type", String(50)),
        Column("is_read", Boolean, default=False),
        Column("created_at", DateTime(timezone=True), server_default=func.now()),
        CheckConstraint(f"type IN ({type_list})", name="ck_notifications_type"),
    )
    legacy.create_all(engine)


@pytest.fixture
def legacy_engine() -> Engine:
    engine = memory_engine()
    _create_legacy_tables(engine)
    return engine


@pytest.fixture
def legacy_schema(legacy_engine: Engine) -> SchemaAdapter:
    schema = resolve_schema(legacy_engine)
    ensure_gamification_rules(legacy_engine, schema)
    return schema


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
def make_profile(
    engine: Engine,
    *,
    user_id: str | None = "auth-1",
    points: int = 0,
    display_name: str = "Dana",
    profile_id: str | None = None,
) -> str:
    """Insert a profile and return its ``id``."""
    with Session(engine) as session:
        profile = Profile(user_id=user_id, points=points, display_name=display_name)
        if profile_id is not None:
            profile.id = profile_id
        session.add(profile)
        session.commit()
        return profile.id


def make_badge(engine: Engine, name: str, threshold: int, **kw) -> int:
    with Session(engine) as session:
        badge = Badge(name=name, points_threshold=threshold, **kw)
        session.add(badge)
        session.commit()
        return badge.id


def profile_points(engine: Engine, profile_id: str) -> int:
    with Session(engine) as session:
        return session.get(Profile, profile_id).points
