"""
kehila.engine.actions — Canonical Actions & Alias Table
========================================================

Members trigger the same action from screens that speak different
languages: the Hebrew UI sends ``"כניסה יומית"`` while API clients send
``"daily_login"``.  Every label is resolved here, once, to a canonical
action id so the award guard treats both as the same action.

Labels that are not catalogued still work: they are their own canonical
id (casefolded), matched case-insensitively against rule labels.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ACTIONS",
    "ActionDefinition",
    "action_aliases",
    "canonical_action",
    "is_daily_action",
    "normalize_label",
    "resolve_action",
]


@dataclass(frozen=True, slots=True)
class ActionDefinition:
    """A canonical action and every label that means it."""

    canonical: str
    aliases: tuple[str, ...]
    daily: bool = False

    @property
    def match_set(self) -> frozenset[str]:
        return frozenset(normalize_label(a) for a in (self.canonical, *self.aliases))


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
ACTIONS: tuple[ActionDefinition, ...] = (
    ActionDefinition("daily_login", ("daily_login", "כניסה יומית"), daily=True),
    ActionDefinition("like_post", ("like_post", "לייק לפוסט")),
    ActionDefinition("comment_post", ("comment_post", "תגובה לפוסט")),
    ActionDefinition("new_post", ("new_post", "פוסט חדש")),
    ActionDefinition("forum_reply", ("forum_reply", "תגובה לנושא")),
    ActionDefinition(
        "registration",
        ("registration", "הרשמה", "signup", "הרשמה למערכת", "user_registration"),
    ),
    ActionDefinition("host_live_event", ("host_live_event", "העברת לייב")),
    ActionDefinition(
        "post_like_received", ("post_like_received", "קיבלתי לייק על פוסט"),
    ),
)


def normalize_label(label: str) -> str:
    return label.strip().casefold()


_BY_LABEL: dict[str, ActionDefinition] = {
    label: action for action in ACTIONS for label in action.match_set
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def resolve_action(label: str) -> ActionDefinition | None:
    """Return the catalogued action for *label*, or None."""
    if not label:
        return None
    return _BY_LABEL.get(normalize_label(label))


def action_aliases(label: str) -> frozenset[str]:
    """Normalized labels that mean the same action as *label*."""
    action = resolve_action(label)
    if action is not None:
        return action.match_set
    return frozenset({normalize_label(label)})


def canonical_action(label: str) -> str:
    action = resolve_action(label)
    return action.canonical if action is not None else normalize_label(label)


def is_daily_action(label: str) -> bool:
    action = resolve_action(label)
    return action is not None and action.daily
