"""
kehila.services.badge_service — Points-Threshold Badges
========================================================

Badges are earned by cumulative points: every active badge whose
``points_threshold`` is at or below the member's total is awarded once.
Re-evaluation runs after each successful points update and is
idempotent: the ``(user_id, badge_id)`` primary key makes a second
award impossible.

The catalogue itself is maintained through the admin API
(:func:`create_badge`, :func:`update_badge`, :func:`delete_badge`).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from kehila.database.models import Badge, UserBadge
from kehila.services.profile_service import resolve_profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _active_badges_query():
    return (
        select(Badge)
        .where(Badge.is_active.is_(True))
        .order_by(Badge.display_order, Badge.points_threshold)
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_active_badges(engine: Engine) -> list[Badge]:
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(_active_badges_query()).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def get_all_badges(engine: Engine) -> list[Badge]:
    """Every badge, inactive ones included, in display order."""
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(Badge).order_by(Badge.display_order, Badge.points_threshold)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def get_user_badges(engine: Engine, user_id: str) -> list[Badge]:
    """Badges the member holds, highest threshold first."""
    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        if profile is None:
            return []
        rows = session.scalars(
            select(Badge)
            .join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(UserBadge.user_id == profile.id)
            .order_by(Badge.points_threshold.desc())
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def get_user_highest_badge(engine: Engine, user_id: str) -> Badge | None:
    badges = get_user_badges(engine, user_id)
    return badges[0] if badges else None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def check_and_award_badges(engine: Engine, user_id: str) -> list[int]:
    """Award every earned-but-missing badge.  Returns the new badge IDs."""
    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        if profile is None:
            logger.warning("Badge check skipped, no profile for %s", user_id)
            return []

        held = set(session.scalars(
            select(UserBadge.badge_id).where(UserBadge.user_id == profile.id)
        ).all())
        points = profile.points or 0

        awarded: list[int] = []
        for badge in session.scalars(_active_badges_query()).all():
            if badge.id in held or badge.points_threshold > points:
                continue
            session.add(UserBadge(user_id=profile.id, badge_id=badge.id))
            awarded.append(badge.id)

        session.commit()

    if awarded:
        logger.info("Awarded %d badge(s) to profile %s", len(awarded), user_id)
    return awarded


# ---------------------------------------------------------------------------
# Catalogue (admin)
# ---------------------------------------------------------------------------
_FROZEN_KEYS = ("id", "created_at")


def create_badge(
    engine: Engine,
    *,
    name: str,
    points_threshold: int = 0,
    icon: str | None = None,
    icon_color: str | None = None,
    description: str | None = None,
    display_order: int = 0,
    is_active: bool = True,
) -> Badge:
    badge = Badge(
        name=name,
        points_threshold=points_threshold,
        icon=icon,
        icon_color=icon_color,
        description=description,
        display_order=display_order,
        is_active=is_active,
    )
    with Session(engine, expire_on_commit=False) as session:
        session.add(badge)
        session.commit()
        session.refresh(badge)
        session.expunge(badge)
    logger.info("Created badge %d (%s, threshold %d)", badge.id, name, points_threshold)
    return badge


def update_badge(engine: Engine, badge_id: int, **changes: Any) -> Badge | None:
    """Apply *changes* to a badge.  Returns None if it does not exist.

    Members already holding the badge keep it when the threshold is raised.
    """
    with Session(engine, expire_on_commit=False) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return None
        for key, value in changes.items():
            if hasattr(badge, key) and key not in _FROZEN_KEYS:
                setattr(badge, key, value)
        session.commit()
        session.refresh(badge)
        session.expunge(badge)
        return badge


def delete_badge(engine: Engine, badge_id: int) -> bool:
    """Delete a badge and every award of it."""
    with Session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return False
        session.execute(delete(UserBadge).where(UserBadge.badge_id == badge_id))
        session.delete(badge)
        session.commit()
    logger.info("Deleted badge %d", badge_id)
    return True
