"""Per-recipient notification inbox."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from .. import models
from ..errors import Forbidden, NotFound
from ..settings import NOTIFICATION_PAGE_SIZE
from .scope import require_admin

# purpose: read and housekeeping operations over a user's own notifications
# status: active


def list_for(
    db: Session,
    user: models.User,
    *,
    page: int = 1,
    limit: int = NOTIFICATION_PAGE_SIZE,
    unread_only: bool = False,
    notification_type: str | None = None,
) -> dict:
    """Return one page of the user's notifications, newest first."""

    page = max(page, 1)
    limit = max(limit, 1)
    query = db.query(models.Notification).filter(models.Notification.recipient_id == user.id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(models.Notification.type == notification_type)

    total = query.count()
    rows = (
        query.order_by(models.Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "notifications": rows,
        "total": total,
        "unread_count": unread_count(db, user),
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


def unread_count(db: Session, user: models.User) -> int:
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.recipient_id == user.id,
            models.Notification.is_read.is_(False),
        )
        .count()
    )


def _owned(db: Session, user: models.User, notification_id: UUID) -> models.Notification:
    notification = db.get(models.Notification, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.recipient_id != user.id:
        raise Forbidden("Not authorized to access this notification")
    return notification


def mark_read(db: Session, user: models.User, notification_id: UUID) -> models.Notification:
    notification = _owned(db, user, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: models.User) -> int:
    updated = (
        db.query(models.Notification)
        .filter(
            models.Notification.recipient_id == user.id,
            models.Notification.is_read.is_(False),
        )
        .update(
            {"is_read": True, "read_at": datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    return updated


def delete(db: Session, user: models.User, notification_id: UUID) -> None:
    notification = _owned(db, user, notification_id)
    db.delete(notification)
    db.commit()


def clear_all(db: Session, user: models.User) -> int:
    removed = (
        db.query(models.Notification)
        .filter(models.Notification.recipient_id == user.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return removed


def stats(db: Session, principal: models.User) -> dict:
    """Counts by notification type across all recipients. Administrators only."""

    require_admin(principal)
    unread = func.sum(case((models.Notification.is_read.is_(False), 1), else_=0))
    rows = (
        db.query(models.Notification.type, func.count(models.Notification.id), unread)
        .group_by(models.Notification.type)
        .order_by(models.Notification.type.asc())
        .all()
    )
    by_type = [
        {"type": kind, "count": int(total), "unread_count": int(pending or 0)}
        for kind, total, pending in rows
    ]
    return {
        "stats": by_type,
        "summary": {
            "total": sum(row["count"] for row in by_type),
            "unread": sum(row["unread_count"] for row in by_type),
        },
    }
