"""
kehila.api.routes.points — Awards, deductions, ledger & leaderboard
====================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from kehila.api.deps import get_cache, get_config, get_engine, get_schema
from kehila.config import KehilaConfig
from kehila.constants import DEDUCTION_ACTION_LABEL
from kehila.database.engine import run_db
from kehila.database.models import Badge
from kehila.database.schema import SchemaAdapter
from kehila.engine.awards import AwardOptions
from kehila.engine.cache import TTLCache
from kehila.services import badge_service, points_service, profile_service

router = APIRouter(prefix="/points", tags=["points"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AwardOptionsBody(BaseModel):
    check_daily: bool = False
    check_related_id: bool = False
    related_id: str | None = None


class AwardRequest(BaseModel):
    user_id: str = Field(min_length=1)
    action_name: str = Field(min_length=1)
    options: AwardOptionsBody | None = None


class DeductRequest(BaseModel):
    user_id: str = Field(min_length=1)
    amount: int
    reason: str = DEDUCTION_ACTION_LABEL


def _badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "icon": b.icon,
        "icon_color": b.icon_color,
        "points_threshold": b.points_threshold,
        "description": b.description,
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
@router.post("/award")
async def award(
    body: AwardRequest,
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
    cache: TTLCache = Depends(get_cache),
    cfg: KehilaConfig = Depends(get_config),
):
    """Award points for an action.  Soft failures come back as 200 + error."""
    opts = body.options or AwardOptionsBody()
    result = await points_service.award_points_async(
        engine, schema, body.user_id, body.action_name,
        AwardOptions(
            check_daily=opts.check_daily,
            check_related_id=opts.check_related_id,
            related_id=opts.related_id,
        ),
        cache=cache, cfg=cfg,
    )
    return result.to_dict()


@router.post("/deduct")
async def deduct(
    body: DeductRequest,
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
    cache: TTLCache = Depends(get_cache),
):
    result = await run_db(
        points_service.deduct_points,
        engine, schema, body.user_id, body.amount,
        reason=body.reason, cache=cache,
    )
    if not result["success"] and result["error"] == "Amount must be positive":
        raise HTTPException(400, result["error"])
    return result


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    cache: TTLCache = Depends(get_cache),
):
    return {"leaderboard": profile_service.get_leaderboard(engine, cache=cache, limit=limit)}


@router.get("/badges")
def list_badges(engine: Engine = Depends(get_engine)):
    return {"badges": [_badge_dict(b) for b in badge_service.get_active_badges(engine)]}


@router.get("/{user_id}/history")
def history(
    user_id: str,
    engine: Engine = Depends(get_engine),
    schema: SchemaAdapter = Depends(get_schema),
):
    return {"history": points_service.get_user_points_history(engine, schema, user_id)}


@router.get("/{user_id}/stats")
def stats(user_id: str, engine: Engine = Depends(get_engine)):
    result = profile_service.get_user_gamification_stats(engine, user_id)
    if result is None:
        raise HTTPException(404, "Profile not found")
    highest = badge_service.get_user_highest_badge(engine, user_id)
    return {
        **result,
        "badges": [_badge_dict(b) for b in badge_service.get_user_badges(engine, user_id)],
        "highest_badge": _badge_dict(highest) if highest else None,
    }
