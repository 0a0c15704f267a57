"""
kehila.api.routes.notifications — Member notification inbox
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import Engine

from kehila.api.deps import get_config, get_engine
from kehila.config import KehilaConfig
from kehila.database.models import Notification
from kehila.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "related_id": n.related_id,
        "related_type": n.related_type,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("/{user_id}")
def list_notifications(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    engine: Engine = Depends(get_engine),
):
    rows = notification_service.get_user_notifications(
        engine, user_id, limit=limit, offset=offset, unread_only=unread_only,
    )
    return {"notifications": [_notification_dict(n) for n in rows]}


@router.get("/{user_id}/unread-count")
def unread_count(user_id: str, engine: Engine = Depends(get_engine)):
    return {"count": notification_service.get_unread_count(engine, user_id)}


@router.post("/{notification_id}/read")
def mark_read(notification_id: str, engine: Engine = Depends(get_engine)):
    if not notification_service.mark_notification_as_read(engine, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"success": True}


@router.post("/{user_id}/read-all")
def mark_all_read(user_id: str, engine: Engine = Depends(get_engine)):
    return {
        "success": True,
        "updated": notification_service.mark_all_notifications_as_read(engine, user_id),
    }


@router.delete("/{notification_id}")
def delete(notification_id: str, engine: Engine = Depends(get_engine)):
    if not notification_service.delete_notification(engine, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"success": True}


@router.post("/{user_id}/cleanup")
def cleanup(
    user_id: str,
    engine: Engine = Depends(get_engine),
    cfg: KehilaConfig = Depends(get_config),
):
    """Trim the inbox to the configured number of newest notifications."""
    deleted = notification_service.delete_old_notifications(
        engine, user_id, keep_count=cfg.notification_keep_count,
    )
    return {"success": True, "deleted": deleted}
