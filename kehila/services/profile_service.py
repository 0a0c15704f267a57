"""
kehila.services.profile_service — Profile Lookups & Rankings
=============================================================

Callers hold either the auth identity (``profiles.user_id``) or the
profile key (``profiles.id``); :func:`resolve_profile` accepts both.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kehila.constants import CacheTTL, leaderboard_cache_key
from kehila.database.models import Profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from kehila.engine.cache import TTLCache

logger = logging.getLogger(__name__)


def resolve_profile(session: Session, user_id: str) -> Profile | None:
    """Find a profile by ``user_id``, falling back to ``id``."""
    profile = session.scalar(select(Profile).where(Profile.user_id == user_id))
    if profile is None:
        profile = session.get(Profile, user_id)
    return profile


def get_user_gamification_stats(engine: Engine, user_id: str) -> dict[str, Any] | None:
    """Return ``{"points", "rank"}`` — rank is 1 + members with more points."""
    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        if profile is None:
            return None
        points = profile.points or 0
        ahead = session.scalar(
            select(func.count()).select_from(Profile).where(Profile.points > points)
        ) or 0
        return {"points": points, "rank": ahead + 1}


def get_leaderboard(
    engine: Engine, *, cache: TTLCache | None = None, limit: int = 10,
) -> list[dict[str, Any]]:
    """Top members by points, cached briefly since totals move often."""
    key = leaderboard_cache_key(limit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    with Session(engine) as session:
        rows = session.scalars(
            select(Profile)
            .order_by(Profile.points.desc(), Profile.display_name)
            .limit(limit)
        ).all()
        board = [
            {
                "rank": i,
                "profile_id": p.id,
                "display_name": p.display_name,
                "points": p.points or 0,
            }
            for i, p in enumerate(rows, start=1)
        ]

    if cache is not None:
        cache.set(key, board, CacheTTL.SHORT)
    return board
