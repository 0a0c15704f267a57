"""
tests/test_engine.py — Engine Factory, init_db & run_db
========================================================
"""

from __future__ import annotations

import threading

import pytest
from conftest import run_async

from kehila.database.engine import create_db_engine, init_db, run_db
from kehila.database.schema import resolve_schema
from kehila.database.seed import DEFAULT_RULES
from kehila.services.rule_service import fetch_rules


def test_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        create_db_engine()


def test_sqlite_url_and_init(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'kehila.db'}")
    engine = create_db_engine()

    init_db(engine)
    init_db(engine)

    schema = resolve_schema(engine)
    assert len(fetch_rules(engine, schema)) == len(DEFAULT_RULES)


def test_run_db_uses_worker_thread():
    main = threading.get_ident()

    def work(x, *, y):
        return x + y, threading.get_ident()

    total, ident = run_async(run_db(work, 2, y=3))
    assert total == 5
    assert ident != main
