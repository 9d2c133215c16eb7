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

router = APIRouter(prefix="/api/forum", tags=["forum"])


def _visible_post(db: Session, user: models.User, post_id: UUID) -> models.ForumPost:
    post = db.get(models.ForumPost, post_id)
    if post is None or not can_view(user, post):
        raise NotFound("Forum post not found")
    return post


@router.get("/posts", response_model=list[schemas.ForumPostOut])
def list_posts(
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.ForumPost).filter(
        models.ForumPost.approval == models.APPROVAL_APPROVED,
        models.ForumPost.visibility == models.VISIBILITY_VISIBLE,
    )
    if category:
        query = query.filter(models.ForumPost.category == category)
    return (
        query.order_by(models.ForumPost.is_pinned.desc(), models.ForumPost.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


@router.post("/posts", response_model=schemas.ForumPostOut, status_code=201)
def create_post(
    payload: schemas.ForumPostCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.create_item(db, user, models.ForumPost.kind, payload)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.get("/posts/{post_id}", response_model=schemas.ForumPostOut)
def get_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _visible_post(db, user, post_id)


@router.put("/posts/{post_id}", response_model=schemas.ForumPostOut)
def update_post(
    post_id: UUID,
    payload: schemas.ForumPostUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.update_item(db, user, models.ForumPost.kind, post_id, payload)
    return result.item


@router.get("/posts/{post_id}/replies", response_model=list[schemas.ForumReplyOut])
def list_replies(
    post_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _visible_post(db, user, post_id).replies


@router.post("/posts/{post_id}/replies", response_model=schemas.ForumReplyOut, status_code=201)
def create_reply(
    post_id: UUID,
    payload: schemas.ForumReplyCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.reply_to_post(db, user, post_id, payload)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.post("/posts/{post_id}/like", response_model=schemas.ToggleOut)
def toggle_like(
    post_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.toggle_like(db, user, post_id)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return schemas.ToggleOut(
        active=result.active,
        message="Post liked" if result.active else "Post unliked",
    )


@router.post("/posts/{post_id}/report", response_model=schemas.ModeratedItemOut)
def report_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.report_item(db, user, models.ForumPost.kind, post_id)


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    workflow.delete_item(db, user, models.ForumPost.kind, post_id)
    return {"message": "Post deleted successfully"}


@router.delete("/posts/{post_id}/replies/{reply_id}")
def delete_reply(
    post_id: UUID,
    reply_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    workflow.delete_reply(db, user, post_id, reply_id)
    return {"message": "Reply deleted successfully"}


@router.put("/posts/{post_id}/pin", response_model=schemas.ForumPostOut)
def pin_post(
    post_id: UUID,
    payload: schemas.FlagRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Pin or unpin a post (administrators)"""
    return workflow.set_pinned(db, user, post_id, payload.value)


@router.put("/posts/{post_id}/lock", response_model=schemas.ForumPostOut)
def lock_post(
    post_id: UUID,
    payload: schemas.FlagRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Lock or unlock a post (administrators)"""
    return workflow.set_locked(db, user, post_id, payload.value)
