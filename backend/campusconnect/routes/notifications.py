from uuid import UUID
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..ratelimit import rate_limit
from ..services import inbox, workflow
from ..settings import NOTIFICATION_PAGE_SIZE
from .. import models, schemas, pubsub

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=schemas.NotificationPage)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    unread_only: bool = Query(False, description="Only unread notifications"),
    type: Optional[str] = Query(None, description="Filter by notification type"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return inbox.list_for(
        db,
        user,
        page=page,
        limit=limit,
        unread_only=unread_only,
        notification_type=type,
    )


@router.get("/stats", response_model=schemas.NotificationStatsOut)
def get_notification_stats(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Notification counts by type (administrators)"""
    return inbox.stats(db, user)


@router.post("/broadcast", response_model=schemas.BroadcastOut)
@rate_limit("5/minute")
def broadcast(
    request: Request,
    payload: schemas.BroadcastRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.broadcast(db, user, payload.title, payload.message, payload.priority)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return schemas.BroadcastOut(
        message=f"Broadcast sent to {result.recipient_count} users",
        recipient_count=result.recipient_count,
    )


@router.post("/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Mark all unread notifications as read"""
    updated = inbox.mark_all_read(db, user)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return inbox.mark_read(db, user, notification_id)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Delete a notification"""
    inbox.delete(db, user, notification_id)
    return {"message": "Notification deleted"}


@router.delete("")
def clear_notifications(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    removed = inbox.clear_all(db, user)
    return {"message": "All notifications cleared", "deleted": removed}
