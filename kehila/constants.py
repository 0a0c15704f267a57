"""
kehila.constants — Shared Constants
====================================

Single source of truth for cache tiers, cache key conventions and the
notification type vocabulary.  Import from here instead of repeating
literals in services and routes.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Cache TTL tiers (seconds) — chosen by intent, not enforced elsewhere
# ---------------------------------------------------------------------------
class CacheTTL(enum.IntEnum):
    SHORT = 60            # frequently-changing lists
    MEDIUM = 300          # default
    LONG = 600            # mostly-static reference data (rules)
    VERY_LONG = 1800
    EXTRA_LONG = 3600     # profiles and posts that rarely change


DEFAULT_SWEEP_INTERVAL = 5 * 60

# ---------------------------------------------------------------------------
# Cache keys
# ---------------------------------------------------------------------------
RULES_CACHE_KEY = "gamification_rules:active"
PROFILES_CACHE_PREFIX = "profiles"


def leaderboard_cache_key(limit: int) -> str:
    return f"{PROFILES_CACHE_PREFIX}:leaderboard:{limit}"


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
class NotificationType(enum.StrEnum):
    """Values accepted by the ``notifications.type`` CHECK constraint."""
    COMMENT = "comment"
    REPLY = "reply"
    MENTION = "mention"
    LIKE = "like"
    FOLLOW = "follow"
    PROJECT_OFFER = "project_offer"
    FORUM_REPLY = "forum_reply"
    FORUM_MENTION = "forum_mention"
    POINTS = "points"


NOTIFICATION_TYPES: tuple[str, ...] = tuple(t.value for t in NotificationType)

POINTS_NOTIFICATION_TITLE = "קיבלת נקודות! \U0001f389"  # 🎉
POINTS_NOTIFICATION_LINK = "/profile"


def points_notification_message(points: int, description: str) -> str:
    return f"קיבלת {points} נקודות עבור: {description}"


# ---------------------------------------------------------------------------
# Rule status vocabulary
# ---------------------------------------------------------------------------
RULE_STATUS_ACTIVE = "active"

DEDUCTION_ACTION_LABEL = "הגשת הצעה לפרויקט"
