"""
kehila.api.routes.admin — Reconciliation, rules, badge catalogue & cache tools
===============================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from kehila.api.deps import get_cache, get_engine, get_schema
from kehila.constants import PROFILES_CACHE_PREFIX
from kehila.database.engine import run_db
from kehila.database.models import Badge
from kehila.database.schema import SchemaAdapter
from kehila.engine.cache import TTLCache
from kehila.services import badge_service, points_service, rule_service

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SyncRequest(BaseModel):
    user_id: str | None = None


class BadgeCreate(BaseModel):
    name: str = Field(min_length=1)
    points_threshold: int = Field(default=0, ge=0)
    icon: str | None = None
    icon_color: str | None = None
    description: str | None = None
    display_order: int = 0
    is_active: bool = True


class BadgeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    points_threshold: int | None = Field(default=None, ge=0)
    icon: str | None = None
    icon_color: str | None = None
    description: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


def _badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "icon": b.icon,
        "icon_color": b.icon_color,
        "points_threshold": b.points_threshold,
        "description": b.description,
        "display_order": b.display_order,
        "is_active": b.is_active,
        "created_at": b.created_at.isoformat() if b.created_at else None,
    }


# ---------------------------------------------------------------------------
# Reconciliation & rules
# ---------------------------------------------------------------------------
@router.post("/sync-points")
async def sync_points(
    body: SyncRequest | None = None,
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
    cache: TTLCache = Depends(get_cache),
):
    """Recompute aggregates from the ledger: one member, or everyone."""
    if body is not None and body.user_id:
        result = await run_db(points_service.sync_user_points, engine, schema, body.user_id)
    else:
        result = await run_db(points_service.sync_all_users_points, engine, schema)
    cache.clear(PROFILES_CACHE_PREFIX)
    return result


@router.post("/gamification/ensure-rules")
def ensure_rules(
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
    cache: TTLCache = Depends(get_cache),
):
    created, updated = rule_service.ensure_gamification_rules(engine, schema, cache=cache)
    logger.info("Admin ensured gamification rules (%d created, %d updated)", created, updated)
    return {"success": True, "created": created, "updated": updated}


@router.get("/gamification/rules")
def list_rules(
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
    cache: TTLCache = Depends(get_cache),
):
    return {"rules": rule_service.load_active_rules(engine, schema, cache=cache)}


# ---------------------------------------------------------------------------
# Badge catalogue
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_all_badges(engine: Engine = Depends(get_engine)):
    """Every badge, inactive ones included."""
    return {"badges": [_badge_dict(b) for b in badge_service.get_all_badges(engine)]}


@router.post("/badges", status_code=201)
def create_badge(body: BadgeCreate, engine: Engine = Depends(get_engine)):
    badge = badge_service.create_badge(engine, **body.model_dump())
    return _badge_dict(badge)


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: int,
    body: BadgeUpdate,
    engine: Engine = Depends(get_engine),
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    badge = badge_service.update_badge(engine, badge_id, **changes)
    if badge is None:
        raise HTTPException(404, "Badge not found")
    return _badge_dict(badge)


@router.delete("/badges/{badge_id}")
def delete_badge(badge_id: int, engine: Engine = Depends(get_engine)):
    if not badge_service.delete_badge(engine, badge_id):
        raise HTTPException(404, "Badge not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
@router.get("/cache/stats")
def cache_stats(cache: TTLCache = Depends(get_cache)):
    return cache.stats().to_dict()


@router.delete("/cache")
def clear_cache(pattern: str | None = None, cache: TTLCache = Depends(get_cache)):
    removed = cache.clear(pattern)
    return {"success": True, "removed": removed}
