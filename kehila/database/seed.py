"""
kehila.database.seed — Default Gamification Rules
==================================================

Baseline rules seeded on first startup so points are awarded on a fresh
database.  Labels are the Hebrew ones members see; the alias table in
:mod:`kehila.engine.actions` maps English callers onto them.

Seeding is idempotent — only labels that don't already exist are
inserted, and admin edits are never overwritten.  The repairing variant
(:func:`kehila.services.rule_service.ensure_gamification_rules`) also
re-activates and re-prices existing defaults.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default rules catalogue
# ---------------------------------------------------------------------------
DEFAULT_RULES: dict[str, tuple[int, str]] = {
    "לייק לפוסט": (1, "לייק לפוסט"),
    "תגובה לפוסט": (5, "תגובה לפוסט"),
    "כניסה יומית": (5, "כניסה יומית לאתר"),
    "פוסט חדש": (10, "יצירת פוסט חדש"),
    "תגובה לנושא": (5, "תגובה בפורום"),
    "הרשמה": (10, "הרשמה למערכת"),
    "host_live_event": (50, "העברת לייב"),
    "קיבלתי לייק על פוסט": (1, "קיבלתי לייק על פוסט שפרסמתי"),
}
"""Each entry maps ``label`` → ``(point_value, description)``."""


def seed_default_rules(engine: Engine) -> int:
    """Insert any missing default rules.  Returns the number created."""
    from kehila.database.schema import resolve_schema
    from kehila.services.rule_service import ensure_gamification_rules

    created, _ = ensure_gamification_rules(
        engine, resolve_schema(engine), repair=False,
    )
    if created:
        logger.info("Seeded %d default gamification rules", created)
    return created
