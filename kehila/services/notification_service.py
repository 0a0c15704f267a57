"""
kehila.services.notification_service — Member Notifications
============================================================

Creates and manages the in-app notification inbox.

``notifications.type`` is a CHECK-constrained enumeration.  Older
deployments do not accept ``points``; :func:`notify_points_awarded`
detects the rejection and retries once with an accepted fallback type.
Notification failures never propagate to the action that caused them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kehila.constants import (
    POINTS_NOTIFICATION_LINK,
    POINTS_NOTIFICATION_TITLE,
    NotificationType,
    points_notification_message,
)
from kehila.database.models import Notification

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TYPE_REJECTED = "type_rejected"

DEFAULT_KEEP_COUNT = 60


def _is_type_rejection(exc: IntegrityError) -> bool:
    """True if *exc* is a CHECK violation (PG 23514 / SQLite 'CHECK constraint')."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23514":
        return True
    return "check constraint" in str(orig or exc).lower()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_notification(
    engine: Engine,
    *,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    link: str | None = None,
    related_id: str | None = None,
    related_type: str | None = None,
    is_read: bool = False,
) -> tuple[str | None, str | None]:
    """Insert one notification.

    Returns ``(notification_id, None)`` on success, ``(None, TYPE_REJECTED)``
    when the store rejects *type_*, or ``(None, message)`` on other
    database errors.
    """
    with Session(engine) as session:
        row = Notification(
            user_id=user_id,
            type=type_,
            title=title,
            message=message,
            link=link,
            related_id=related_id,
            related_type=related_type,
            is_read=is_read,
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if _is_type_rejection(exc):
                logger.info("Notification type %r rejected by the store", type_)
                return None, TYPE_REJECTED
            logger.warning("Error creating notification: %s", exc.orig)
            return None, str(exc.orig)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Error creating notification: %s", exc)
            return None, str(exc)
        return row.id, None


def notify_points_awarded(
    engine: Engine,
    *,
    user_id: str,
    points: int,
    description: str,
    fallback_type: str = NotificationType.LIKE,
) -> bool:
    """Tell the member they earned *points*.  Returns True if delivered."""
    message = points_notification_message(points, description)
    for type_ in (NotificationType.POINTS, fallback_type):
        notification_id, error = create_notification(
            engine,
            user_id=user_id,
            type_=str(type_),
            title=POINTS_NOTIFICATION_TITLE,
            message=message,
            link=POINTS_NOTIFICATION_LINK,
        )
        if notification_id is not None:
            return True
        if error != TYPE_REJECTED:
            return False
    logger.warning("Points notification dropped, no accepted type for %s", user_id)
    return False


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
def get_user_notifications(
    engine: Engine,
    user_id: str,
    *,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
) -> list[Notification]:
    """Newest-first page of a member's notifications."""
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = (
        stmt.order_by(Notification.created_at.desc(), Notification.id)
        .offset(offset)
        .limit(limit)
    )
    with Session(engine) as session:
        rows = session.scalars(stmt).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def get_unread_count(engine: Engine, user_id: str) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0


def mark_notification_as_read(engine: Engine, notification_id: str) -> bool:
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(is_read=True)
        )
        session.commit()
        return result.rowcount > 0


def mark_all_notifications_as_read(engine: Engine, user_id: str) -> int:
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        session.commit()
        return result.rowcount


def delete_notification(engine: Engine, notification_id: str) -> bool:
    with Session(engine) as session:
        result = session.execute(
            delete(Notification).where(Notification.id == notification_id)
        )
        session.commit()
        return result.rowcount > 0


def delete_old_notifications(
    engine: Engine, user_id: str, keep_count: int = DEFAULT_KEEP_COUNT,
) -> int:
    """Keep only the newest *keep_count* notifications.  Returns deletions."""
    with Session(engine) as session:
        ids = session.scalars(
            select(Notification.id)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id)
        ).all()
        doomed = ids[keep_count:]
        if not doomed:
            return 0
        session.execute(delete(Notification).where(Notification.id.in_(doomed)))
        session.commit()
    logger.info("Deleted %d old notifications for %s", len(doomed), user_id)
    return len(doomed)
