from uuid import UUID
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import Forbidden, NotFound
from ..ratelimit import rate_limit
from ..services import participation, workflow
from ..services.scope import can_view, ensure_owner_or_admin
from .. import models, schemas, pubsub

router = APIRouter(prefix="/api/events", tags=["events"])


def _visible_event(db: Session, user: models.User, event_id: UUID) -> models.Event:
    event = db.get(models.Event, event_id)
    if event is None or not can_view(user, event):
        raise NotFound("Event not found")
    return event


@router.get("", response_model=list[schemas.EventOut])
def list_events(
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    mine: bool = Query(False, description="Only events organised by the caller"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = db.query(models.Event)
    if mine:
        query = query.filter(models.Event.organizer_id == user.id)
    else:
        query = query.filter(
            models.Event.approval == models.APPROVAL_APPROVED,
            models.Event.visibility == models.VISIBILITY_VISIBLE,
        )
    if category:
        query = query.filter(models.Event.category == category)
    if status:
        query = query.filter(models.Event.status == status)
    return (
        query.order_by(models.Event.date.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


@router.post("", response_model=schemas.EventOut, status_code=201)
def create_event(
    payload: schemas.EventCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.create_item(db, user, models.Event.kind, payload)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.get("/{event_id}", response_model=schemas.EventOut)
def get_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _visible_event(db, user, event_id)


@router.put("/{event_id}", response_model=schemas.EventOut)
def update_event(
    event_id: UUID,
    payload: schemas.EventUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.update_item(db, user, models.Event.kind, event_id, payload)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.patch("/{event_id}/status", response_model=schemas.EventOut)
def update_event_status(
    event_id: UUID,
    payload: schemas.EventStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.set_event_status(db, user, event_id, payload.status)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return result.item


@router.delete("/{event_id}")
def delete_event(
    event_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    result = workflow.delete_event(db, user, event_id)
    pubsub.schedule_notifications(background_tasks, result.notifications)
    return {"message": "Event deleted successfully"}


@router.post("/{event_id}/join", response_model=schemas.ParticipantOut, status_code=201)
@rate_limit("30/minute")
def join_event(
    request: Request,
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.join_event(db, user, event_id)


@router.post("/{event_id}/leave")
def leave_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    workflow.leave_event(db, user, event_id)
    return {"message": "Successfully left the event"}


@router.get("/{event_id}/participants", response_model=list[schemas.ParticipantOut])
def list_participants(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    event = _visible_event(db, user, event_id)
    try:
        ensure_owner_or_admin(user, event)
    except Forbidden:
        raise Forbidden("Only the organizer can view participants") from None
    return (
        db.query(models.EventParticipant)
        .filter(models.EventParticipant.event_id == event.id)
        .order_by(models.EventParticipant.joined_at.asc())
        .all()
    )


@router.get("/{event_id}/participants/count")
def participant_count(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    event = _visible_event(db, user, event_id)
    return {
        "participant_count": participation.count(db, event.id),
        "capacity": event.capacity,
        "spots_remaining": event.spots_remaining,
    }


@router.post("/{event_id}/report", response_model=schemas.ModeratedItemOut)
def report_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return workflow.report_item(db, user, models.Event.kind, event_id)
