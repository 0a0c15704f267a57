"""
kehila.database.schema — Live Schema Adapter
=============================================

Deployments of the community database drifted over time:

* ``points_history`` labels rows with ``action`` (legacy) or
  ``action_name`` (current); only the current shape has ``related_id``
  and the unique ``idempotency_key`` used as the award guard.
* ``gamification_rules`` is keyed by ``action_name`` and/or
  ``trigger_action`` and flags activity with ``status`` and/or
  ``is_active``.

Instead of probing a sample row on every award, the live shape is
inspected **once** at start-up and captured in an immutable
:class:`SchemaAdapter` that services receive by reference.

Usage::

    schema = resolve_schema(engine)
    schema.version            # SchemaVersion.CURRENT
    schema.ledger_label       # "action_name"
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import MetaData, Table, inspect

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

LEDGER_TABLE = "points_history"
RULES_TABLE = "gamification_rules"

# Preference order: the current label column wins when both exist.
LEDGER_LABEL_COLUMNS: tuple[str, ...] = ("action_name", "action")
RULE_LABEL_COLUMNS: tuple[str, ...] = ("trigger_action", "action_name")
RULE_FLAG_COLUMNS: tuple[str, ...] = ("status", "is_active")


class SchemaVersion(enum.StrEnum):
    """The two ledger shapes the gamification core supports."""
    LEGACY = "legacy"      # action label, read-then-write guard
    CURRENT = "current"    # action_name + idempotency_key unique index


@dataclass(frozen=True, slots=True)
class SchemaAdapter:
    """Resolved column layout of the ledger and rules tables."""

    ledger: Table
    rules: Table
    ledger_label: str
    ledger_has_related_id: bool
    ledger_has_idempotency_key: bool
    rule_label_columns: tuple[str, ...]
    rule_flag_columns: tuple[str, ...]

    @property
    def version(self) -> SchemaVersion:
        if self.ledger_label == "action_name" and self.ledger_has_idempotency_key:
            return SchemaVersion.CURRENT
        return SchemaVersion.LEGACY

    @property
    def label_column(self):
        """The ledger's label column as a SQL expression."""
        return self.ledger.c[self.ledger_label]

    def ledger_values(
        self,
        *,
        user_id: str,
        label: str,
        points: int,
        created_at: datetime | None = None,
        related_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Build an insert row for whichever ledger shape is live.

        Columns the live table lacks are silently dropped.
        """
        values: dict[str, Any] = {
            "user_id": user_id,
            self.ledger_label: label,
            "points": points,
        }
        if created_at is not None:
            values["created_at"] = created_at
        if related_id is not None and self.ledger_has_related_id:
            values["related_id"] = related_id
        if idempotency_key is not None and self.ledger_has_idempotency_key:
            values["idempotency_key"] = idempotency_key
        return values


def resolve_schema(engine: Engine) -> SchemaAdapter:
    """Inspect the live database and return its :class:`SchemaAdapter`.

    Raises
    ------
    RuntimeError
        If the ledger or rules table is missing, or the ledger has no
        label column at all.
    """
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    for required in (LEDGER_TABLE, RULES_TABLE):
        if required not in tables:
            raise RuntimeError(
                f"Table '{required}' not found.  "
                "Run `alembic upgrade head` (or init_db) first."
            )

    ledger_cols = {c["name"] for c in inspector.get_columns(LEDGER_TABLE)}
    rule_cols = {c["name"] for c in inspector.get_columns(RULES_TABLE)}

    ledger_label = next((c for c in LEDGER_LABEL_COLUMNS if c in ledger_cols), None)
    if ledger_label is None:
        raise RuntimeError(
            f"'{LEDGER_TABLE}' has neither of the label columns "
            f"{LEDGER_LABEL_COLUMNS}; cannot record awards."
        )

    label_cols = tuple(c for c in RULE_LABEL_COLUMNS if c in rule_cols)
    if not label_cols:
        raise RuntimeError(
            f"'{RULES_TABLE}' has neither of the label columns {RULE_LABEL_COLUMNS}."
        )

    metadata = MetaData()
    adapter = SchemaAdapter(
        ledger=Table(LEDGER_TABLE, metadata, autoload_with=engine),
        rules=Table(RULES_TABLE, metadata, autoload_with=engine),
        ledger_label=ledger_label,
        ledger_has_related_id="related_id" in ledger_cols,
        ledger_has_idempotency_key="idempotency_key" in ledger_cols,
        rule_label_columns=label_cols,
        rule_flag_columns=tuple(c for c in RULE_FLAG_COLUMNS if c in rule_cols),
    )
    logger.info(
        "Schema resolved: %s ledger (label=%s, related_id=%s), "
        "rule labels=%s, rule flags=%s",
        adapter.version,
        adapter.ledger_label,
        adapter.ledger_has_related_id,
        ",".join(adapter.rule_label_columns),
        ",".join(adapter.rule_flag_columns) or "none",
    )
    return adapter
