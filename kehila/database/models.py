"""
kehila.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables touched by the gamification core:
- profiles            — Member profiles holding the running points total
- gamification_rules  — Points per action (bilingual labels)
- points_history      — Append-only points ledger with idempotent insert
- badges              — Points-threshold badges
- user_badges         — Earned badges
- notifications       — User-facing notifications (CHECK-constrained type)

``points_history`` and ``gamification_rules`` are declared here in their
current shape.  Older deployments carry ``action`` instead of
``action_name`` and lack ``related_id``/``idempotency_key``; the live shape
is resolved at start-up by :mod:`kehila.database.schema`.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from kehila.constants import NOTIFICATION_TYPES, RULE_STATUS_ACTIVE


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Kehila ORM models."""


# ---------------------------------------------------------------------------
# Profiles — one row per member
# ---------------------------------------------------------------------------
class Profile(Base):
    """Member profile.

    ``user_id`` is the auth identity; ``id`` is the profile key the ledger
    references.  Callers may hold either, so lookups try ``user_id`` first
    and fall back to ``id``.
    """
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(36), unique=True, nullable=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_profiles_points_desc", "points"),
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} name={self.display_name!r} points={self.points}>"


# ---------------------------------------------------------------------------
# GamificationRule — points per action
# ---------------------------------------------------------------------------
class GamificationRule(Base):
    """Points awarded per action label.

    Rules are matched on ``action_name`` or ``trigger_action``; both flag
    columns are honoured when present.  Active filtering is done in code.
    """
    __tablename__ = "gamification_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    trigger_action: Mapped[str | None] = mapped_column(String(100), nullable=True)
    point_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, default=RULE_STATUS_ACTIVE
    )
    is_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        label = self.trigger_action or self.action_name
        return f"<GamificationRule id={self.id} action={label!r} points={self.point_value}>"


# ---------------------------------------------------------------------------
# PointsHistory — append-only points ledger
# ---------------------------------------------------------------------------
class PointsHistory(Base):
    __tablename__ = "points_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    action_name: Mapped[str] = mapped_column(String(100), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    related_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # The insert is the award guard: one row per member and daily/entity key.
        Index(
            "ix_points_history_idempotent",
            "user_id",
            "idempotency_key",
            unique=True,
            postgresql_where=idempotency_key.isnot(None),
            sqlite_where=idempotency_key.isnot(None),
        ),
        Index("ix_points_history_user_time", "user_id", "created_at"),
        Index("ix_points_history_user_action", "user_id", "action_name"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointsHistory id={self.id} user={self.user_id} "
            f"action={self.action_name!r} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# Badge — points-threshold recognition
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    icon_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    points_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    earned_by: Mapped[list[UserBadge]] = relationship(back_populates="badge")

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r} threshold={self.points_threshold}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# Notification — user-facing inbox
# ---------------------------------------------------------------------------
_TYPE_LIST = ", ".join(f"'{t}'" for t in NOTIFICATION_TYPES)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    related_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    related_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"type IN ({_TYPE_LIST})", name="ck_notifications_type"),
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type!r}>"
