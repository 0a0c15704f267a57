"""
kehila.api.deps — FastAPI dependency injection
===============================================

One engine, one config, one cache and one resolved schema per process.
Tests swap any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine

from kehila.config import KehilaConfig, load_config
from kehila.database.engine import create_db_engine
from kehila.database.schema import SchemaAdapter, resolve_schema
from kehila.engine.cache import TTLCache


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> KehilaConfig:
    return load_config(os.getenv("KEHILA_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_cache() -> TTLCache:
    return TTLCache()


def get_schema(engine: Annotated[Engine, Depends(get_engine)]) -> SchemaAdapter:
    """Resolved once per engine; the live layout does not change at runtime."""
    return _schema_for(engine)


@lru_cache(maxsize=4)
def _schema_for(engine: Engine) -> SchemaAdapter:
    return resolve_schema(engine)
