"""
tests/test_rule_service.py — Rule Store Tests (both schema shapes)
===================================================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from kehila.constants import RULES_CACHE_KEY
from kehila.database.seed import DEFAULT_RULES, seed_default_rules
from kehila.engine.cache import TTLCache
from kehila.services.rule_service import (
    ensure_gamification_rules,
    fetch_rules,
    load_active_rules,
)


class TestEnsureRules:
    def test_creates_every_default(self, db_engine, schema):
        created, updated = ensure_gamification_rules(db_engine, schema)
        assert created == len(DEFAULT_RULES)
        assert updated == 0

        rows = fetch_rules(db_engine, schema)
        assert {r["action_name"] for r in rows} == set(DEFAULT_RULES)
        assert all(r["status"] == "active" and r["is_active"] for r in rows)

    def test_second_run_is_noop(self, db_engine, schema):
        ensure_gamification_rules(db_engine, schema)
        assert ensure_gamification_rules(db_engine, schema) == (0, 0)

    def test_repair_reactivates_and_reprices(self, db_engine, schema):
        ensure_gamification_rules(db_engine, schema)
        with db_engine.begin() as conn:
            conn.execute(
                update(schema.rules)
                .where(schema.rules.c.action_name == "פוסט חדש")
                .values(status="inactive", point_value=99)
            )

        assert ensure_gamification_rules(db_engine, schema) == (0, 1)
        row = next(r for r in fetch_rules(db_engine, schema) if r["action_name"] == "פוסט חדש")
        assert row["status"] == "active"
        assert row["point_value"] == 10

    def test_without_repair_admin_edits_survive(self, db_engine, schema):
        ensure_gamification_rules(db_engine, schema)
        with db_engine.begin() as conn:
            conn.execute(
                update(schema.rules)
                .where(schema.rules.c.action_name == "פוסט חדש")
                .values(point_value=99)
            )
        assert ensure_gamification_rules(db_engine, schema, repair=False) == (0, 0)
        row = next(r for r in fetch_rules(db_engine, schema) if r["action_name"] == "פוסט חדש")
        assert row["point_value"] == 99

    def test_legacy_writes_trigger_action(self, legacy_engine, legacy_schema):
        rows = fetch_rules(legacy_engine, legacy_schema)
        assert {r["trigger_action"] for r in rows} == set(DEFAULT_RULES)
        assert "status" not in rows[0]

    def test_invalidates_cache(self, db_engine, schema):
        cache = TTLCache()
        cache.set(RULES_CACHE_KEY, [])
        ensure_gamification_rules(db_engine, schema, cache=cache)
        assert RULES_CACHE_KEY not in cache

    def test_seed_on_startup(self, db_engine):
        assert seed_default_rules(db_engine) == len(DEFAULT_RULES)
        assert seed_default_rules(db_engine) == 0


class TestLoadActiveRules:
    def test_filters_inactive(self, seeded, schema):
        with seeded.begin() as conn:
            conn.execute(
                update(schema.rules)
                .where(schema.rules.c.action_name == "הרשמה")
                .values(is_active=False)
            )
        labels = {r["action_name"] for r in load_active_rules(seeded, schema)}
        assert "הרשמה" not in labels
        assert "פוסט חדש" in labels

    def test_served_from_cache(self, seeded, schema):
        cache = TTLCache()
        first = load_active_rules(seeded, schema, cache=cache)
        with seeded.begin() as conn:
            conn.execute(schema.rules.delete())
        assert load_active_rules(seeded, schema, cache=cache) == first
        assert cache.stats().hits == 1

    def test_fetch_bounded(self, seeded, schema):
        assert len(load_active_rules(seeded, schema, limit=3)) == 3

    def test_fetch_error_yields_empty(self, schema):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT", {}, Exception("down"))
        assert load_active_rules(engine, schema) == []

    def test_sorted_by_label(self, seeded, schema):
        labels = [r["action_name"] for r in load_active_rules(seeded, schema)]
        assert labels == sorted(labels, key=str.casefold)

    def test_rows_are_plain_dicts(self, seeded, schema):
        rule = load_active_rules(seeded, schema)[0]
        assert isinstance(rule, dict)
        with seeded.connect() as conn:
            assert conn.execute(select(schema.rules.c.id).where(
                schema.rules.c.id == rule["id"])).scalar_one() == rule["id"]
