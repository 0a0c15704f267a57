"""
kehila.services.points_service — Point-Award Pipeline & Ledger
===============================================================

Awards points for a named action exactly once per guard condition, then
cascades to badge evaluation and a member notification.

Pipeline (:func:`award_points`):

1. Resolve the rule for the action label (bilingual aliases collapse to
   one canonical action).  Missing rule → soft failure, nothing written.
2. Resolve the member's profile (``user_id``, falling back to ``id``).
3. Guard: on the current schema the ledger insert **is** the guard — a
   unique ``(user_id, idempotency_key)`` index turns a member's second
   daily/entity award into an ``IntegrityError`` inside a SAVEPOINT.
   Legacy ledgers without the key column fall back to a read-then-write
   query.  Keys are built from the matched rule, so every label of a rule
   shares one guard.
4. Write one ledger row labelled with the rule's canonical label.
5. Add the rule's points to the profile total in the same transaction.
6. Cascade (best effort): badges, then a ``points`` notification with one
   fallback-type retry.

Nothing in the pipeline raises: every failure becomes an
:class:`~kehila.engine.awards.AwardResult` with ``success=False`` and the
caller's like/post/comment goes ahead regardless.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kehila.constants import DEDUCTION_ACTION_LABEL, PROFILES_CACHE_PREFIX
from kehila.database.engine import run_db
from kehila.database.models import Profile
from kehila.engine.actions import action_aliases, is_daily_action
from kehila.engine.awards import (
    ALREADY_AWARDED_ENTITY,
    ALREADY_AWARDED_TODAY,
    PROFILE_NOT_FOUND,
    RULE_NOT_FOUND,
    AwardOptions,
    AwardResult,
    day_window,
    find_rule,
    idempotency_key,
    rule_canonical,
    rule_label,
    rule_labels,
)
from kehila.services.badge_service import check_and_award_badges
from kehila.services.notification_service import notify_points_awarded
from kehila.services.profile_service import resolve_profile
from kehila.services.rule_service import (
    DEFAULT_FETCH_LIMIT,
    ensure_gamification_rules,
    load_active_rules,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from kehila.config import KehilaConfig
    from kehila.database.schema import SchemaAdapter
    from kehila.engine.cache import TTLCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Guard queries (legacy ledgers, and the daily half of a double guard)
# ---------------------------------------------------------------------------
def _label_match(schema: SchemaAdapter, labels: Iterable[str]):
    return func.lower(schema.label_column).in_(sorted({lbl.lower() for lbl in labels}))


def _awarded_in_window(
    session: Session,
    schema: SchemaAdapter,
    profile_id: str,
    labels: Iterable[str],
    start: datetime,
    end: datetime,
) -> bool:
    ledger = schema.ledger
    row = session.execute(
        select(ledger.c.id)
        .where(
            ledger.c.user_id == profile_id,
            _label_match(schema, labels),
            ledger.c.created_at >= start,
            ledger.c.created_at < end,
        )
        .limit(1)
    ).first()
    return row is not None


def _awarded_for_entity(
    session: Session,
    schema: SchemaAdapter,
    profile_id: str,
    labels: Iterable[str],
    related_id: str,
) -> bool:
    if not schema.ledger_has_related_id:
        logger.warning(
            "Ledger has no related_id column; per-entity guard skipped for %s",
            related_id,
        )
        return False
    ledger = schema.ledger
    row = session.execute(
        select(ledger.c.id)
        .where(
            ledger.c.user_id == profile_id,
            _label_match(schema, labels),
            ledger.c.related_id == related_id,
        )
        .limit(1)
    ).first()
    return row is not None


def _key_exists(
    session: Session, schema: SchemaAdapter, profile_id: str, key: str,
) -> bool:
    ledger = schema.ledger
    return session.execute(
        select(ledger.c.id)
        .where(ledger.c.user_id == profile_id, ledger.c.idempotency_key == key)
        .limit(1)
    ).first() is not None


# ---------------------------------------------------------------------------
# Rule resolution
# ---------------------------------------------------------------------------
def _resolve_rule(
    engine: Engine,
    schema: SchemaAdapter,
    action_label: str,
    *,
    cache: TTLCache | None,
    limit: int,
) -> Mapping[str, Any] | None:
    rule = find_rule(
        load_active_rules(engine, schema, cache=cache, limit=limit), action_label,
    )
    if rule is not None:
        return rule

    logger.warning("Rule not found for action %r, ensuring defaults exist", action_label)
    try:
        ensure_gamification_rules(engine, schema, cache=cache, repair=False)
    except SQLAlchemyError:
        logger.warning("Could not ensure default gamification rules", exc_info=True)
        return None
    return find_rule(
        load_active_rules(engine, schema, cache=cache, limit=limit), action_label,
    )


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------
def _cascade(
    engine: Engine,
    *,
    profile_id: str,
    points: int,
    description: str,
    fallback_type: str,
) -> list[int]:
    """Badge evaluation + notification.  Failures are logged, never raised."""
    badges: list[int] = []
    try:
        badges = check_and_award_badges(engine, profile_id)
    except Exception:
        logger.warning("Error checking badges after points update", exc_info=True)

    try:
        notify_points_awarded(
            engine,
            user_id=profile_id,
            points=points,
            description=description,
            fallback_type=fallback_type,
        )
    except Exception:
        logger.warning("Error creating points notification", exc_info=True)
    return badges


# ---------------------------------------------------------------------------
# Award pipeline
# ---------------------------------------------------------------------------
def award_points(
    engine: Engine,
    schema: SchemaAdapter,
    user_id: str,
    action_label: str,
    options: AwardOptions | None = None,
    *,
    cache: TTLCache | None = None,
    cfg: KehilaConfig | None = None,
    now: datetime | None = None,
) -> AwardResult:
    """Award the points for *action_label* to *user_id*.

    Parameters
    ----------
    engine : SQLAlchemy engine
    schema : resolved ledger/rules layout
    user_id : auth identity or profile key
    action_label : action name in any catalogued language
    options : idempotency guards (daily / per-entity)
    cache : optional TTLCache for rule lookups; profile keys are
        invalidated after a successful award
    cfg : supplies the calendar-day timezone and rule fetch bound
    now : award time (defaults to the current UTC time)

    Never raises.
    """
    try:
        return _award_points(
            engine, schema, user_id, action_label,
            options or AwardOptions(),
            cache=cache, cfg=cfg, now=now or datetime.now(UTC),
        )
    except Exception as exc:
        logger.exception("Error awarding %r points to %s", action_label, user_id)
        return AwardResult.failed(str(exc) or exc.__class__.__name__)


def _award_points(
    engine: Engine,
    schema: SchemaAdapter,
    user_id: str,
    action_label: str,
    options: AwardOptions,
    *,
    cache: TTLCache | None,
    cfg: KehilaConfig | None,
    now: datetime,
) -> AwardResult:
    now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)
    tz = cfg.tzinfo if cfg is not None else UTC
    limit = cfg.rules_fetch_limit if cfg is not None else DEFAULT_FETCH_LIMIT
    fallback_type = cfg.notification_fallback_type if cfg is not None else "like"

    # 1. Rule
    rule = _resolve_rule(engine, schema, action_label, cache=cache, limit=limit)
    if rule is None:
        logger.warning("Rule not found for action %r, continuing without points", action_label)
        return AwardResult.failed(RULE_NOT_FOUND)

    label = rule_label(rule) or action_label
    point_value = int(rule.get("point_value") or 0)
    canonical = rule_canonical(rule)
    rule_names = [action_label, *rule_labels(rule)]
    labels = frozenset().union(*(action_aliases(n) for n in rule_names))
    daily = options.check_daily or any(is_daily_action(n) for n in rule_names)
    start, end, day = day_window(now, tz)

    if options.check_related_id and not options.related_id:
        logger.warning("check_related_id without related_id for %r; no entity guard", action_label)

    with Session(engine) as session:
        # 2. Profile
        profile = resolve_profile(session, user_id)
        if profile is None:
            return AwardResult.failed(PROFILE_NOT_FOUND)

        # 3. Guard
        key: str | None = None
        if schema.ledger_has_idempotency_key:
            key = idempotency_key(
                canonical,
                day=day if daily else None,
                related_id=options.related_id if options.entity_guard else None,
            )
            if daily and options.entity_guard and _awarded_in_window(
                session, schema, profile.id, labels, start, end,
            ):
                return AwardResult.failed(ALREADY_AWARDED_TODAY, already_awarded=True)
        else:
            if options.entity_guard and _awarded_for_entity(
                session, schema, profile.id, labels, options.related_id,
            ):
                return AwardResult.failed(ALREADY_AWARDED_ENTITY, already_awarded=True)
            if daily and _awarded_in_window(
                session, schema, profile.id, labels, start, end,
            ):
                return AwardResult.failed(ALREADY_AWARDED_TODAY, already_awarded=True)

        # 4. Ledger
        values = schema.ledger_values(
            user_id=profile.id,
            label=label,
            points=point_value,
            created_at=now,
            related_id=options.related_id,
            idempotency_key=key,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.execute(insert(schema.ledger).values(**values))
        except IntegrityError:
            # Unique key hit: this award already happened.
            if key is None or not _key_exists(session, schema, profile.id, key):
                raise
            session.rollback()
            logger.info("Duplicate award blocked for %s (%s)", profile.id, key)
            message = ALREADY_AWARDED_ENTITY if key.startswith("entity:") else ALREADY_AWARDED_TODAY
            return AwardResult.failed(message, already_awarded=True)

        # 5. Aggregate
        profile.points = (profile.points or 0) + point_value
        new_total = profile.points
        profile_id = profile.id
        session.commit()

    logger.info(
        "Awarded %d points to %s for %r (total %d)",
        point_value, profile_id, label, new_total,
    )

    # 6. Cascade
    badges = _cascade(
        engine,
        profile_id=profile_id,
        points=point_value,
        description=rule.get("description") or action_label,
        fallback_type=fallback_type,
    )
    if cache is not None:
        cache.clear(PROFILES_CACHE_PREFIX)

    return AwardResult(success=True, points=new_total, badges_awarded=badges)


async def award_points_async(*args: Any, **kwargs: Any) -> AwardResult:
    """:func:`award_points` on a worker thread, for async request handlers."""
    return await run_db(award_points, *args, **kwargs)


# ---------------------------------------------------------------------------
# Deductions
# ---------------------------------------------------------------------------
def deduct_points(
    engine: Engine,
    schema: SchemaAdapter,
    user_id: str,
    amount: int,
    *,
    reason: str = DEDUCTION_ACTION_LABEL,
    cache: TTLCache | None = None,
) -> dict[str, Any]:
    """Spend *amount* points (e.g. submitting a project offer)."""
    if amount <= 0:
        return {"success": False, "error": "Amount must be positive"}

    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        if profile is None:
            return {"success": False, "error": PROFILE_NOT_FOUND}

        current = profile.points or 0
        if current < amount:
            logger.warning("Insufficient points for %s: %d < %d", profile.id, current, amount)
            return {
                "success": False,
                "error": "Insufficient points",
                "current_points": current,
                "required_points": amount,
            }

        session.execute(
            insert(schema.ledger).values(**schema.ledger_values(
                user_id=profile.id,
                label=reason,
                points=-amount,
                created_at=datetime.now(UTC),
            ))
        )
        profile.points = current - amount
        new_total = profile.points
        session.commit()

    if cache is not None:
        cache.clear(PROFILES_CACHE_PREFIX)
    return {"success": True, "points": new_total, "previous_points": current}


# ---------------------------------------------------------------------------
# Ledger reads & reconciliation
# ---------------------------------------------------------------------------
def get_user_points_history(
    engine: Engine, schema: SchemaAdapter, user_id: str,
) -> list[dict[str, Any]]:
    """Ledger rows for a member, newest first, with the label as ``action``."""
    ledger = schema.ledger
    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        profile_id = profile.id if profile is not None else user_id
        rows = session.execute(
            select(ledger)
            .where(ledger.c.user_id == profile_id)
            .order_by(ledger.c.created_at.desc(), ledger.c.id.desc())
        ).mappings().all()

    history = []
    for r in rows:
        created = r.get("created_at")
        history.append({
            "id": r["id"],
            "action": r[schema.ledger_label],
            "points": r["points"],
            "related_id": r.get("related_id"),
            "created_at": created.isoformat() if created else None,
        })
    return history


def _sync_profile(session: Session, schema: SchemaAdapter, profile: Profile) -> dict[str, Any]:
    ledger = schema.ledger
    total = session.scalar(
        select(func.coalesce(func.sum(ledger.c.points), 0))
        .where(ledger.c.user_id == profile.id)
    ) or 0
    current = profile.points or 0
    if total == current:
        return {"success": True, "points": current, "was_inconsistent": False}

    profile.points = total
    logger.info("Resynced profile %s points: %d → %d", profile.id, current, total)
    return {
        "success": True,
        "points": total,
        "previous_points": current,
        "was_inconsistent": True,
    }


def sync_user_points(
    engine: Engine, schema: SchemaAdapter, user_id: str,
) -> dict[str, Any]:
    """Recompute a member's total from the ledger and fix any drift."""
    with Session(engine) as session:
        profile = resolve_profile(session, user_id)
        if profile is None:
            return {"success": False, "error": PROFILE_NOT_FOUND}
        result = _sync_profile(session, schema, profile)
        session.commit()
        return result


def sync_all_users_points(engine: Engine, schema: SchemaAdapter) -> dict[str, Any]:
    """Resync every profile.  Returns per-profile results and totals."""
    results: list[dict[str, Any]] = []
    inconsistent = 0
    with Session(engine) as session:
        profiles = session.scalars(select(Profile).order_by(Profile.id)).all()
        for profile in profiles:
            result = _sync_profile(session, schema, profile)
            results.append({"profile_id": profile.id, **result})
            if result["was_inconsistent"]:
                inconsistent += 1
        session.commit()

    logger.info("Synced %d profiles (%d inconsistent)", len(results), inconsistent)
    return {
        "success": True,
        "results": results,
        "synced": len(results),
        "inconsistent": inconsistent,
        "total": len(results),
    }
