"""
kehila.engine.awards — Award Pipeline Primitives
=================================================

Pure helpers used by :mod:`kehila.services.points_service`.
No DB I/O in here.

Pipeline states (per award attempt)::

    START → RULE_LOOKUP → GUARD_CHECK → LEDGER_WRITE → AGGREGATE_UPDATE
          → CASCADE (best effort) → END

Every non-success exit is an :class:`AwardResult` with ``success=False``;
``already_awarded`` separates "already claimed" from "something broke".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any

from kehila.constants import RULE_STATUS_ACTIVE
from kehila.engine.actions import (
    action_aliases,
    canonical_action,
    normalize_label,
    resolve_action,
)

__all__ = [
    "ALREADY_AWARDED_ENTITY",
    "ALREADY_AWARDED_TODAY",
    "PROFILE_NOT_FOUND",
    "RULE_NOT_FOUND",
    "AwardOptions",
    "AwardResult",
    "day_window",
    "find_rule",
    "idempotency_key",
    "rule_canonical",
    "rule_is_active",
    "rule_label",
    "rule_labels",
]

RULE_NOT_FOUND = "Rule not found"
PROFILE_NOT_FOUND = "Profile not found"
ALREADY_AWARDED_TODAY = "Already awarded today"
ALREADY_AWARDED_ENTITY = "Points already awarded for this action"


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AwardOptions:
    """Idempotency guards requested by the caller.

    ``check_daily`` — at most one award per calendar day.
    ``check_related_id`` + ``related_id`` — at most one award per entity
    (e.g. liking a given post), permanently.
    """

    check_daily: bool = False
    check_related_id: bool = False
    related_id: str | None = None

    @property
    def entity_guard(self) -> bool:
        return self.check_related_id and bool(self.related_id)


@dataclass
class AwardResult:
    """Outcome of one award attempt."""

    success: bool
    points: int | None = None
    error: str | None = None
    already_awarded: bool = False
    badges_awarded: list[int] = field(default_factory=list)

    @classmethod
    def failed(cls, error: str, *, already_awarded: bool = False) -> AwardResult:
        return cls(success=False, error=error, already_awarded=already_awarded)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            out["points"] = self.points
            if self.badges_awarded:
                out["badges_awarded"] = list(self.badges_awarded)
        else:
            out["error"] = self.error
            out["already_awarded"] = self.already_awarded
        return out


# ---------------------------------------------------------------------------
# Calendar day & idempotency keys
# ---------------------------------------------------------------------------
def day_window(now: datetime, tz: tzinfo = UTC) -> tuple[datetime, datetime, date]:
    """Return ``(start_utc, end_utc, day)`` for the calendar day of *now* in *tz*.

    The window is half-open: ``start <= created_at < end``.
    Naive *now* values are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(tz)
    day = local.date()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC), day


def idempotency_key(
    canonical: str,
    *,
    day: date | None = None,
    related_id: str | None = None,
) -> str | None:
    """Unique ledger key for a guarded award, or None when unguarded.

    The entity key wins when both are given; the daily window is then
    checked separately.
    """
    if related_id:
        return f"entity:{canonical}:{related_id}"
    if day is not None:
        return f"daily:{canonical}:{day.isoformat()}"
    return None


# ---------------------------------------------------------------------------
# Rule matching
# ---------------------------------------------------------------------------
def rule_labels(rule: Mapping[str, Any]) -> list[str]:
    """Non-empty label values of a rule row, trigger_action first."""
    return [
        v for v in (rule.get("trigger_action"), rule.get("action_name"))
        if isinstance(v, str) and v.strip()
    ]


def rule_label(rule: Mapping[str, Any]) -> str | None:
    """The label recorded in the ledger for awards under *rule*."""
    labels = rule_labels(rule)
    return labels[0] if labels else None


def rule_canonical(rule: Mapping[str, Any]) -> str:
    """Canonical action id for awards under *rule*.

    A catalogued label on any of the rule's label columns wins; otherwise
    the rule row itself is the action, so its labels share one guard.
    """
    labels = rule_labels(rule)
    for lbl in labels:
        action = resolve_action(lbl)
        if action is not None:
            return action.canonical
    if rule.get("id") is not None:
        return f"rule:{rule['id']}"
    return canonical_action(labels[0]) if labels else ""


def rule_is_active(rule: Mapping[str, Any]) -> bool:
    """True unless a present flag column marks the rule inactive."""
    if "status" in rule and rule["status"] != RULE_STATUS_ACTIVE:
        return False
    if "is_active" in rule and not rule["is_active"]:
        return False
    return True


def find_rule(
    rules: Iterable[Mapping[str, Any]], label: str,
) -> Mapping[str, Any] | None:
    """First active rule whose label means the same action as *label*."""
    wanted = action_aliases(label)
    for rule in rules:
        if not rule_is_active(rule):
            continue
        if any(normalize_label(lbl) in wanted for lbl in rule_labels(rule)):
            return rule
    return None
