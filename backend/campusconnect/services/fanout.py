"""Notification fan-out: one logical notice becomes one row per recipient."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import Unavailable, ValidationFailed
from ..metrics import NOTIFICATIONS_CREATED

# purpose: turn workflow transitions and announcements into addressed notification rows
# inputs: recipient ids (or ALL_ACTIVE_USERS), notification type, copy, related entity
# outputs: FanoutResult with the inserted rows and the recipients that did not resolve
# status: active
#
# No deduplication happens across calls: two calls for the same logical event produce
# two notifications per recipient.

logger = structlog.get_logger()

TITLE_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 500


class _AllActiveUsers:
    def __repr__(self) -> str:
        return "ALL_ACTIVE_USERS"


ALL_ACTIVE_USERS = _AllActiveUsers()


@dataclass(frozen=True)
class RelatedEntity:
    kind: str
    id: UUID | None = None

    @classmethod
    def of(cls, item: models.ModeratableMixin) -> "RelatedEntity":
        return cls(kind=item.kind, id=item.id)


@dataclass
class FanoutResult:
    notifications: list[models.Notification] = field(default_factory=list)
    rejected: list[UUID] = field(default_factory=list)

    @property
    def recipient_count(self) -> int:
        return len(self.notifications)


def _validate(notification_type: str, title: str, message: str, priority: str) -> tuple[str, str]:
    if notification_type not in models.NOTIFICATION_TYPES:
        raise ValidationFailed(f"Unknown notification type '{notification_type}'")
    if priority not in models.NOTIFICATION_PRIORITIES:
        raise ValidationFailed(f"Unknown notification priority '{priority}'")
    title = (title or "").strip()
    message = (message or "").strip()
    if not title or not message:
        raise ValidationFailed("Title and message are required")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationFailed(f"Title cannot be more than {TITLE_MAX_LENGTH} characters")
    if len(message) > MESSAGE_MAX_LENGTH:
        raise ValidationFailed(f"Message cannot be more than {MESSAGE_MAX_LENGTH} characters")
    return title, message


def _normalise_recipients(recipients: Iterable[UUID | str | models.User]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered: list[UUID] = []
    for recipient in recipients:
        raw = getattr(recipient, "id", recipient)
        try:
            recipient_id = raw if isinstance(raw, UUID) else UUID(str(raw))
        except ValueError:
            logger.warning("notification_recipient_malformed", recipient=str(raw))
            continue
        # a recipient listed twice in one call still gets a single row
        if recipient_id not in seen:
            seen.add(recipient_id)
            ordered.append(recipient_id)
    return ordered


def _resolve(db: Session, recipients) -> tuple[list[UUID], list[UUID]]:
    if recipients is ALL_ACTIVE_USERS:
        rows = (
            db.query(models.User.id)
            .filter(models.User.visibility == models.VISIBILITY_VISIBLE)
            .order_by(models.User.created_at.asc())
            .all()
        )
        return [row[0] for row in rows], []
    requested = _normalise_recipients(recipients)
    if not requested:
        return [], []
    known = {
        row[0]
        for row in db.query(models.User.id).filter(models.User.id.in_(requested)).all()
    }
    valid = [recipient_id for recipient_id in requested if recipient_id in known]
    rejected = [recipient_id for recipient_id in requested if recipient_id not in known]
    return valid, rejected


def notify(
    db: Session,
    recipients,
    *,
    notification_type: str,
    title: str,
    message: str,
    related: RelatedEntity | None = None,
    sender_id: UUID | None = None,
    priority: str = "medium",
) -> FanoutResult:
    """Insert one notification per resolved recipient in a single batch and commit it.

    ``recipients`` is an iterable of user ids (or users) or ``ALL_ACTIVE_USERS``.
    Unknown recipients are reported on the result and skipped; the rest are
    still delivered.
    """

    title, message = _validate(notification_type, title, message, priority)
    try:
        valid, rejected = _resolve(db, recipients)
        now = datetime.now(timezone.utc)
        rows = [
            models.Notification(
                recipient_id=recipient_id,
                sender_id=sender_id,
                type=notification_type,
                title=title,
                message=message,
                related_kind=related.kind if related else None,
                related_id=related.id if related else None,
                priority=priority,
                created_at=now,
            )
            for recipient_id in valid
        ]
        if rows:
            db.add_all(rows)
            db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise Unavailable("notification store unavailable") from exc

    if rejected:
        logger.warning(
            "notification_recipients_rejected",
            notification_type=notification_type,
            rejected=[str(recipient_id) for recipient_id in rejected],
        )
    if rows:
        NOTIFICATIONS_CREATED.labels(notification_type).inc(len(rows))
    return FanoutResult(notifications=rows, rejected=rejected)
