import math
from uuid import UUID
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..services import workflow
from ..services.scope import require_admin
from ..settings import MODERATION_QUEUE_LIMIT, describe_settings
from .. import models, schemas, pubsub, audit

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/pending/{kind}", response_model=schemas.PendingPageOut)
def list_pending(
    kind: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    items, total, scope = workflow.list_pending(db, user, kind, page=page, limit=limit)
    return schemas.PendingPageOut(
        items=[schemas.ModeratedItemOut.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
        admin_department=scope.department,
    )


@router.post("/{kind}/{item_id}/approve", response_model=schemas.ModeratedItemOut)
def approve_item(
    kind: str,
    item_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.approve_item(db, user, kind, item_id)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.post("/{kind}/{item_id}/reject", response_model=schemas.RejectOut)
def reject_item(
    kind: str,
    item_id: UUID,
    background_tasks: BackgroundTasks,
    payload: Optional[schemas.RejectRequest] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    reason = payload.reason if payload else None
    result = workflow.reject_item(db, user, kind, item_id, reason)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    rejected = result.item
    return schemas.RejectOut(
        message=f"{rejected.label.capitalize()} rejected and removed",
        reason=rejected.reason,
    )


@router.post("/{kind}/{item_id}/moderate", response_model=schemas.ModeratedItemOut)
def moderate_item(
    kind: str,
    item_id: UUID,
    payload: schemas.ModerationRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.moderate(db, user, kind, item_id, payload.action, payload.reason)


@router.get("/moderation-queue", response_model=schemas.ModerationQueueOut)
def moderation_queue(
    kind: Optional[str] = Query(None),
    limit: int = Query(MODERATION_QUEUE_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    content, totals, scope = workflow.moderation_queue(db, user, kind, limit=limit)
    return schemas.ModerationQueueOut(
        content={
            name: [schemas.ModeratedItemOut.model_validate(item) for item in items]
            for name, items in content.items()
        },
        total_reports=totals,
        admin_department=scope.department,
    )


@router.get("/users", response_model=schemas.UserPageOut)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    role: Optional[str] = Query(None, pattern="^(admin|student)$"),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    users, total, scope = workflow.list_users(
        db, user, page=page, limit=limit, status=status, role=role, search=search
    )
    return schemas.UserPageOut(
        users=[schemas.UserOut.model_validate(row) for row in users],
        total=total,
        page=page,
        pages=math.ceil(total / limit),
        admin_department=scope.department,
    )


@router.get("/stats", response_model=schemas.AdminStatsOut)
def dashboard_stats(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    stats, scope = workflow.dashboard_stats(db, user)
    return schemas.AdminStatsOut(stats=stats, admin_department=scope.department)


@router.get("/settings", response_model=schemas.SettingsOut)
def view_settings(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    return schemas.SettingsOut(
        settings=describe_settings(),
        admin=schemas.UserOut.model_validate(user),
    )


@router.get("/audit/report", response_model=list[schemas.AuditReportRow])
def audit_report(
    start: datetime,
    end: datetime,
    actor_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    return audit.generate_report(db, start, end, actor_id)
