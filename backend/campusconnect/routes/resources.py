from uuid import UUID
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import NotFound
from ..services import workflow
from ..services.scope import can_view
from .. import models, schemas, pubsub

router = APIRouter(prefix="/api/resources", tags=["resources"])


@router.get("", response_model=list[schemas.ResourceOut])
def list_resources(
    category: Optional[str] = Query(None),
    department: Optional[str] = Query(None, description="Academic department of the material"),
    subject: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Resource).filter(
        models.Resource.approval == models.APPROVAL_APPROVED,
        models.Resource.visibility == models.VISIBILITY_VISIBLE,
    )
    if category:
        query = query.filter(models.Resource.category == category)
    if department:
        query = query.filter(models.Resource.department == department)
    if subject:
        query = query.filter(models.Resource.subject == subject)
    if semester:
        query = query.filter(models.Resource.semester == semester)
    return (
        query.order_by(models.Resource.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


@router.get("/bookmarks", response_model=list[schemas.ResourceOut])
def list_bookmarks(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return (
        db.query(models.Resource)
        .join(models.ResourceBookmark, models.ResourceBookmark.resource_id == models.Resource.id)
        .filter(
            models.ResourceBookmark.user_id == user.id,
            models.Resource.approval == models.APPROVAL_APPROVED,
            models.Resource.visibility == models.VISIBILITY_VISIBLE,
        )
        .order_by(models.ResourceBookmark.created_at.desc())
        .all()
    )


@router.post("", response_model=schemas.ResourceOut, status_code=201)
def create_resource(
    payload: schemas.ResourceCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.create_item(db, user, models.Resource.kind, payload)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.get("/{resource_id}", response_model=schemas.ResourceOut)
def get_resource(
    resource_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    resource = db.get(models.Resource, resource_id)
    if resource is None or not can_view(user, resource):
        raise NotFound("Resource not found")
    return resource


@router.put("/{resource_id}", response_model=schemas.ResourceOut)
def update_resource(
    resource_id: UUID,
    payload: schemas.ResourceUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.update_item(db, user, models.Resource.kind, resource_id, payload).item


@router.post("/{resource_id}/bookmark", response_model=schemas.ToggleOut)
def toggle_bookmark(
    resource_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.toggle_bookmark(db, user, resource_id)
    return schemas.ToggleOut(
        active=result.active,
        message="Resource bookmarked" if result.active else "Bookmark removed",
    )


@router.post("/{resource_id}/report", response_model=schemas.ModeratedItemOut)
def report_resource(
    resource_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.report_item(db, user, models.Resource.kind, resource_id)


@router.delete("/{resource_id}")
def delete_resource(
    resource_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    workflow.delete_item(db, user, models.Resource.kind, resource_id)
    return {"message": "Resource deleted successfully"}
