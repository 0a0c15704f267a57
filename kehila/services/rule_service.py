"""
kehila.services.rule_service — Gamification Rule Store
=======================================================

Reads the ``gamification_rules`` table through the resolved
:class:`~kehila.database.schema.SchemaAdapter`, so both the
``action_name``/``status`` and the ``trigger_action``/``is_active`` shapes
work.  Rules are fetched with a bounded query and filtered in code,
because one of the flag columns may be absent.

Loaded rules are cached under :data:`~kehila.constants.RULES_CACHE_KEY`;
every mutation here invalidates that key.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from kehila.constants import RULE_STATUS_ACTIVE, RULES_CACHE_KEY, CacheTTL
from kehila.database.seed import DEFAULT_RULES
from kehila.engine.awards import rule_is_active, rule_label

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from kehila.database.schema import SchemaAdapter
    from kehila.engine.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 100


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def fetch_rules(
    engine: Engine, schema: SchemaAdapter, *, limit: int = DEFAULT_FETCH_LIMIT,
) -> list[dict[str, Any]]:
    """Every rule row (active or not) as a plain dict, bounded by *limit*."""
    with engine.connect() as conn:
        rows = conn.execute(select(schema.rules).limit(limit)).mappings().all()
    return [dict(r) for r in rows]


def load_active_rules(
    engine: Engine,
    schema: SchemaAdapter,
    *,
    cache: TTLCache | None = None,
    limit: int = DEFAULT_FETCH_LIMIT,
) -> list[dict[str, Any]]:
    """Active rules sorted by label, served from *cache* when warm.

    A failed fetch logs a warning and yields an empty list; rules are
    never critical to the caller's primary operation.
    """
    if cache is not None:
        cached = cache.get(RULES_CACHE_KEY)
        if cached is not None:
            return cached

    try:
        rules = fetch_rules(engine, schema, limit=limit)
    except SQLAlchemyError:
        logger.warning("Error fetching gamification rules", exc_info=True)
        return []

    active = [r for r in rules if rule_is_active(r)]
    active.sort(key=lambda r: (rule_label(r) or "").casefold())

    if cache is not None:
        cache.set(RULES_CACHE_KEY, active, CacheTTL.LONG)
    return active


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _label_of(row: Mapping[str, Any], schema: SchemaAdapter) -> str | None:
    for col in schema.rule_label_columns:
        if row.get(col):
            return row[col]
    return None


def _active_values(schema: SchemaAdapter) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "status" in schema.rule_flag_columns:
        values["status"] = RULE_STATUS_ACTIVE
    if "is_active" in schema.rule_flag_columns:
        values["is_active"] = True
    return values


def ensure_gamification_rules(
    engine: Engine,
    schema: SchemaAdapter,
    *,
    cache: TTLCache | None = None,
    repair: bool = True,
) -> tuple[int, int]:
    """Make sure every default rule exists.

    Missing labels are inserted.  With *repair*, existing defaults that
    are inactive or carry a different point value are reset.

    Returns ``(created, updated)``.
    """
    rules_table = schema.rules
    label_col = (
        "action_name" if "action_name" in schema.rule_label_columns
        else schema.rule_label_columns[0]
    )
    has_description = "description" in rules_table.c

    with engine.begin() as conn:
        existing = [dict(r) for r in conn.execute(select(rules_table)).mappings()]
        by_label = {
            label: row for row in existing
            if (label := _label_of(row, schema)) is not None
        }

        missing = [label for label in DEFAULT_RULES if label not in by_label]
        if missing:
            rows = []
            for label in missing:
                point_value, description = DEFAULT_RULES[label]
                values = {label_col: label, "point_value": point_value}
                values.update(_active_values(schema))
                if has_description:
                    values["description"] = description
                rows.append(values)
            conn.execute(insert(rules_table), rows)

        updated = 0
        if repair:
            for label, (point_value, _) in DEFAULT_RULES.items():
                row = by_label.get(label)
                if row is None:
                    continue
                if row.get("point_value") == point_value and rule_is_active(row):
                    continue
                key = (
                    rules_table.c.id == row["id"] if "id" in rules_table.c
                    else rules_table.c[label_col] == label
                )
                conn.execute(
                    update(rules_table)
                    .where(key)
                    .values(point_value=point_value, **_active_values(schema))
                )
                updated += 1

    if cache is not None:
        cache.invalidate(RULES_CACHE_KEY)

    if missing or updated:
        logger.info(
            "Gamification rules ensured: %d created, %d updated",
            len(missing), updated,
        )
    return len(missing), updated
