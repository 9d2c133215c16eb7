"""Capacity-bounded, idempotent event participation."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import (
    ALREADY_JOINED,
    EVENT_FULL,
    NOT_APPROVED,
    NOT_PARTICIPANT,
    NOT_UPCOMING,
    Conflict,
    NotFound,
    ValidationFailed,
)

# purpose: enforce one participant row per (event, user) and never more rows than capacity
# inputs: session inside an open transaction held under the event's item lock
# outputs: participant rows and the event's participant_count moved together; the caller commits
# status: active

logger = structlog.get_logger()


def _load_event(db: Session, event_id: UUID) -> models.Event:
    event = db.get(models.Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


def _check_joinable(event: models.Event) -> None:
    if not event.is_approved:
        raise ValidationFailed("Cannot join unapproved event", code=NOT_APPROVED)
    if event.status != models.EVENT_UPCOMING:
        raise Conflict("Cannot join this event", code=NOT_UPCOMING)


def join(db: Session, *, event_id: UUID, user_id: UUID) -> models.EventParticipant:
    """Insert a participant row for ``user_id``.

    Checks run in order and the first failure wins: the event exists and is
    approved, it is upcoming, the user has not joined yet, a seat is left.
    The seat is claimed with a conditional increment on the event row and the
    participant insert happens in the same transaction, so a full event or a
    duplicate join is rejected even when several callers race.
    """

    event = _load_event(db, event_id)
    _check_joinable(event)

    existing = (
        db.query(models.EventParticipant.id)
        .filter_by(event_id=event_id, user_id=user_id)
        .first()
    )
    if existing is not None:
        raise Conflict("Already joined this event", code=ALREADY_JOINED)

    claimed = (
        db.query(models.Event)
        .filter(
            models.Event.id == event_id,
            models.Event.approval == models.APPROVAL_APPROVED,
            models.Event.status == models.EVENT_UPCOMING,
            models.Event.participant_count < models.Event.capacity,
        )
        .update(
            {"participant_count": models.Event.participant_count + 1},
            synchronize_session=False,
        )
    )
    if not claimed:
        db.refresh(event)
        _check_joinable(event)
        raise Conflict("Event is full", code=EVENT_FULL)

    participant = models.EventParticipant(
        event_id=event_id,
        user_id=user_id,
        joined_at=datetime.now(timezone.utc),
    )
    db.add(participant)
    try:
        db.flush()
    except IntegrityError:
        # the caller's transaction rolls back the claimed seat with it
        raise Conflict("Already joined this event", code=ALREADY_JOINED) from None
    return participant


def leave(db: Session, *, event_id: UUID, user_id: UUID) -> None:
    """Remove the participant row and release its seat."""

    _load_event(db, event_id)
    removed = (
        db.query(models.EventParticipant)
        .filter_by(event_id=event_id, user_id=user_id)
        .delete(synchronize_session=False)
    )
    if not removed:
        raise NotFound("You are not a participant of this event", code=NOT_PARTICIPANT)
    (
        db.query(models.Event)
        .filter(models.Event.id == event_id, models.Event.participant_count > 0)
        .update(
            {"participant_count": models.Event.participant_count - 1},
            synchronize_session=False,
        )
    )


def participant_ids(db: Session, event_id: UUID) -> list[UUID]:
    rows = (
        db.query(models.EventParticipant.user_id)
        .filter(models.EventParticipant.event_id == event_id)
        .order_by(models.EventParticipant.joined_at.asc())
        .all()
    )
    return [row[0] for row in rows]


def count(db: Session, event_id: UUID) -> int:
    return db.query(models.EventParticipant).filter_by(event_id=event_id).count()


def sync_joined_events(db: Session, user_ids: list[UUID], event_id: UUID, *, joined: bool) -> bool:
    """Refresh the users' cached joined-event lists in a separate transaction.

    The cache is secondary state: a failure is logged and never undoes the
    participant change that already committed.
    """

    marker = str(event_id)
    try:
        users = db.query(models.User).filter(models.User.id.in_(user_ids)).all()
        for user in users:
            current = [value for value in (user.joined_event_ids or []) if value != marker]
            if joined:
                current.append(marker)
            user.joined_event_ids = current
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "joined_events_cache_update_failed",
            event_id=marker,
            user_ids=[str(user_id) for user_id in user_ids],
            error=str(exc),
        )
        return False
    return True
