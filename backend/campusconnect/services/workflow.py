"""Workflow orchestrator: the only entry point the HTTP layer calls for lifecycle changes."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping
from uuid import UUID

import structlog
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import audit, locks, models, schemas
from ..errors import Forbidden, NotFound, Unavailable, ValidationFailed, WorkflowError
from ..metrics import WORKFLOW_TRANSITIONS
from ..settings import EVENT_REMINDER_WINDOW_HOURS, MODERATION_QUEUE_LIMIT
from . import content, fanout, moderation, participation
from .scope import (
    AdminScope,
    admins_covering,
    authorize,
    ensure_authorized,
    ensure_owner_or_admin,
    filter_by_scope,
    require_admin,
    resolve_scope,
)

# purpose: compose scope resolution, moderation, participation and fan-out behind the public operations
# inputs: SQLAlchemy session, explicit authenticated principal, operation arguments
# outputs: committed state plus the notifications fanned out after the commit
# status: active
#
# Every operation follows the same order: resolve scope, authorize, mutate under the
# item lock inside one transaction, commit, then notify. Notification failures are
# logged and never undo a committed change.

logger = structlog.get_logger()

MESSAGE_LIMIT = fanout.MESSAGE_MAX_LENGTH


@dataclass
class WorkflowResult:
    """Outcome of a lifecycle operation and the notifications it produced."""

    item: Any = None
    notifications: list[models.Notification] = field(default_factory=list)


@dataclass
class ToggleResult:
    active: bool
    notifications: list[models.Notification] = field(default_factory=list)


@contextmanager
def _transaction(db: Session) -> Iterator[None]:
    """Commit on success; roll back on any failure and surface store errors as Unavailable."""

    try:
        yield
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("entity_store_unavailable", error=str(exc))
        raise Unavailable("entity store unavailable") from exc


def _dispatch(
    db: Session,
    recipients: Callable[[], Iterable[UUID]],
    **notice: Any,
) -> list[models.Notification]:
    """Best-effort fan-out after a committed change."""

    try:
        result = fanout.notify(db, list(recipients()), **notice)
    except (WorkflowError, SQLAlchemyError) as exc:
        db.rollback()
        logger.warning(
            "notification_dispatch_failed",
            notification_type=notice.get("notification_type"),
            error=str(exc),
        )
        return []
    return result.notifications


def _clip(text: str, limit: int = MESSAGE_LIMIT) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _title_case(label: str) -> str:
    return " ".join(part.capitalize() for part in label.split())


def _load(db: Session, model: type[models.ModeratableMixin], item_id: UUID) -> models.ModeratableMixin:
    item = db.get(model, item_id)
    if item is None:
        raise NotFound(f"{model.label.capitalize()} not found")
    return item


def _record(action: str, kind: str, item_id: UUID, actor: models.User, **extra: Any) -> None:
    WORKFLOW_TRANSITIONS.labels(kind, action).inc()
    logger.info(
        "workflow_transition",
        action=action,
        kind=kind,
        item_id=str(item_id),
        actor_id=str(actor.id),
        **extra,
    )


def _sync_joined(db: Session, user_ids: list[UUID], event_id: UUID, *, joined: bool) -> None:
    for user_id in user_ids:
        with locks.hold(models.User.kind, user_id):
            participation.sync_joined_events(db, [user_id], event_id, joined=joined)


# creation and owner edits


def create_item(
    db: Session,
    principal: models.User,
    kind: str,
    fields: Mapping[str, Any],
) -> WorkflowResult:
    """Create an item, pending unless the principal is an administrator."""

    with _transaction(db):
        item = content.build_item(kind, fields, owner=principal)
        db.add(item)
        db.flush()
        audit.log_action(db, principal.id, "create", item.kind, item.id, {"approval": item.approval})
    _record("create", item.kind, item.id, principal, approval=item.approval)

    notifications: list[models.Notification] = []
    if item.is_pending:
        label = item.label
        notifications = _dispatch(
            db,
            lambda: [admin.id for admin in admins_covering(db, item) if admin.id != principal.id],
            notification_type="item_created",
            title=f"New {_title_case(label)} Pending Approval",
            message=_clip(f"{principal.display_name} created a new {label}: {item.display_title}"),
            related=fanout.RelatedEntity.of(item),
            sender_id=principal.id,
        )
    return WorkflowResult(item=item, notifications=notifications)


def update_item(
    db: Session,
    principal: models.User,
    kind: str,
    item_id: UUID,
    fields: Mapping[str, Any],
) -> WorkflowResult:
    """Apply owner (or scoped admin) edits; event participants hear about them."""

    model = content.spec_for(kind).model
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        ensure_owner_or_admin(principal, item)
        changes = content.apply_update(item, fields)
        if changes:
            audit.log_action(db, principal.id, "update", kind, item.id, {"fields": sorted(changes)})
    if not changes:
        return WorkflowResult(item=item)
    _record("update", kind, item.id, principal, fields=sorted(changes))

    notifications: list[models.Notification] = []
    if isinstance(item, models.Event):
        notifications = _dispatch(
            db,
            lambda: participation.participant_ids(db, item.id),
            notification_type="item_updated",
            title="Event Updated",
            message=_clip(f'Event "{item.title}" has been updated'),
            related=fanout.RelatedEntity.of(item),
            sender_id=principal.id,
        )
    return WorkflowResult(item=item, notifications=notifications)


def set_event_status(
    db: Session,
    principal: models.User,
    event_id: UUID,
    status: str,
) -> WorkflowResult:
    """Move an event between lifecycle phases; cancelling notifies participants."""

    if status not in models.EVENT_STATUSES:
        raise ValidationFailed(f"Invalid event status '{status}'")
    with locks.hold(models.Event.kind, event_id), _transaction(db):
        event = _load(db, models.Event, event_id)
        ensure_owner_or_admin(principal, event)
        previous = event.status
        event.status = status
        audit.log_action(db, principal.id, "status", event.kind, event.id, {"from": previous, "to": status})
    _record("status", event.kind, event.id, principal, previous=previous, status=status)

    notifications: list[models.Notification] = []
    if status == "cancelled" and previous != "cancelled":
        notifications = _dispatch(
            db,
            lambda: participation.participant_ids(db, event.id),
            notification_type="item_cancelled",
            title="Event Cancelled",
            message=_clip(f'Event "{event.title}" has been cancelled'),
            related=fanout.RelatedEntity.of(event),
            sender_id=principal.id,
        )
    return WorkflowResult(item=event, notifications=notifications)


def delete_event(db: Session, principal: models.User, event_id: UUID) -> WorkflowResult:
    """Delete an event; participant rows cascade and participants are told it is cancelled."""

    with locks.hold(models.Event.kind, event_id), _transaction(db):
        event = _load(db, models.Event, event_id)
        ensure_owner_or_admin(principal, event)
        attendees = participation.participant_ids(db, event.id)
        title = event.title
        db.delete(event)
        audit.log_action(db, principal.id, "delete", models.Event.kind, event_id, {"title": title})
    _record("delete", models.Event.kind, event_id, principal, participants=len(attendees))

    notifications: list[models.Notification] = []
    if attendees:
        notifications = _dispatch(
            db,
            lambda: attendees,
            notification_type="item_cancelled",
            title="Event Cancelled",
            message=_clip(f'Event "{title}" has been cancelled'),
            related=fanout.RelatedEntity(kind=models.Event.kind, id=None),
            sender_id=principal.id,
        )
        _sync_joined(db, attendees, event_id, joined=False)
    return WorkflowResult(item=None, notifications=notifications)


def delete_item(db: Session, principal: models.User, kind: str, item_id: UUID) -> WorkflowResult:
    """Delete an owned item. Replies, likes and bookmarks go with it through ON DELETE CASCADE."""

    if kind == models.Event.kind:
        return delete_event(db, principal, item_id)
    model = content.spec_for(kind).model
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        ensure_owner_or_admin(principal, item)
        title = item.display_title
        db.delete(item)
        audit.log_action(db, principal.id, "delete", kind, item_id, {"title": title})
    _record("delete", kind, item_id, principal)
    return WorkflowResult(item=None)


def delete_reply(db: Session, principal: models.User, post_id: UUID, reply_id: UUID) -> None:
    with locks.hold(models.ForumPost.kind, post_id), _transaction(db):
        post = _load(db, models.ForumPost, post_id)
        reply = db.get(models.ForumReply, reply_id)
        if reply is None or reply.post_id != post.id:
            raise NotFound("Reply not found")
        if reply.author_id != principal.id and not (
            principal.is_admin and authorize(resolve_scope(principal), post)
        ):
            raise Forbidden("Not authorized to delete this reply")
        db.delete(reply)
        audit.log_action(db, principal.id, "delete-reply", post.kind, post.id, {"reply_id": str(reply_id)})
    _record("delete-reply", models.ForumPost.kind, post_id, principal)


# approval axis


def approve_item(db: Session, principal: models.User, kind: str, item_id: UUID) -> WorkflowResult:
    scope = require_admin(principal)
    model = content.model_for(kind)
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        moderation.approve(db, scope, item, actor=principal)
    _record("approve", kind, item_id, principal, scope=scope.describe())

    label = item.label
    notifications = _dispatch(
        db,
        lambda: [item.owner_id],
        notification_type="item_approved",
        title=f"{_title_case(label)} Approved",
        message=_clip(f'Your {label} "{item.display_title}" has been approved by {principal.display_name}'),
        related=fanout.RelatedEntity.of(item),
        sender_id=principal.id,
    )
    return WorkflowResult(item=item, notifications=notifications)


def reject_item(
    db: Session,
    principal: models.User,
    kind: str,
    item_id: UUID,
    reason: str | None = None,
) -> WorkflowResult:
    """Reject a pending item. The item is purged, not retained in a rejected state."""

    scope = require_admin(principal)
    model = content.model_for(kind)
    reason = (reason or "").strip() or None
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        rejected = moderation.reject(db, scope, item, actor=principal, reason=reason)
    _record("reject", kind, item_id, principal, scope=scope.describe(), reason=reason)

    message = f'Your {rejected.label} "{rejected.title}" has been rejected by {principal.display_name}.'
    if reason:
        message = f"{message} Reason: {reason}"
    notifications = _dispatch(
        db,
        lambda: [rejected.owner_id],
        notification_type="item_rejected",
        title=f"{_title_case(rejected.label)} Rejected",
        message=_clip(message),
        related=fanout.RelatedEntity(kind=rejected.kind, id=None),
        sender_id=principal.id,
    )
    return WorkflowResult(item=rejected, notifications=notifications)


# visibility axis and reports


def moderate(
    db: Session,
    principal: models.User,
    kind: str,
    item_id: UUID,
    action: str,
    reason: str | None = None,
) -> models.ModeratableMixin:
    """Apply hide, unhide or clear-reports to any moderatable kind."""

    scope = require_admin(principal)
    model = content.model_for(kind)
    apply_action = moderation.moderation_action(action)
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        apply_action(db, scope, item, actor=principal, reason=reason)
    _record(action, kind, item_id, principal, scope=scope.describe(), reason=reason or "No reason provided")
    return item


def report_item(db: Session, principal: models.User, kind: str, item_id: UUID) -> models.ModeratableMixin:
    model = content.model_for(kind)
    with locks.hold(kind, item_id), _transaction(db):
        item = _load(db, model, item_id)
        moderation.report(db, item, reporter=principal)
    _record("report", kind, item_id, principal)
    return item


def list_pending(
    db: Session,
    principal: models.User,
    kind: str,
    *,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[models.ModeratableMixin], int, AdminScope]:
    scope = require_admin(principal)
    model = content.spec_for(kind).model
    page = max(page, 1)
    items, total = moderation.pending_items(db, scope, model, limit=limit, offset=(page - 1) * limit)
    return items, total, scope


def moderation_queue(
    db: Session,
    principal: models.User,
    kind: str | None = None,
    *,
    limit: int = MODERATION_QUEUE_LIMIT,
):
    scope = require_admin(principal)
    kinds = {kind: content.model_for(kind)} if kind else dict(models.CONTENT_MODELS)
    content_by_kind, totals = moderation.moderation_queue(db, scope, kinds, limit=limit)
    return content_by_kind, totals, scope


def list_users(
    db: Session,
    principal: models.User,
    *,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    role: str | None = None,
    search: str | None = None,
) -> tuple[list[models.User], int, AdminScope]:
    scope = require_admin(principal)
    query = filter_by_scope(db.query(models.User), models.User, scope)
    if status == "active":
        query = query.filter(models.User.visibility == models.VISIBILITY_VISIBLE)
    elif status == "inactive":
        query = query.filter(models.User.visibility == models.VISIBILITY_HIDDEN)
    if role == "admin":
        query = query.filter(models.User.is_admin.is_(True))
    elif role == "student":
        query = query.filter(models.User.is_admin.is_(False))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(models.User.full_name.ilike(pattern), models.User.email.ilike(pattern))
        )
    total = query.count()
    page = max(page, 1)
    users = (
        query.order_by(models.User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total, scope


def dashboard_stats(db: Session, principal: models.User) -> tuple[dict[str, dict[str, int]], AdminScope]:
    """Per-kind counts over the rows the administrator's scope covers."""

    scope = require_admin(principal)
    stats: dict[str, dict[str, int]] = {}

    def _flag(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    users = filter_by_scope(db.query(models.User), models.User, scope)
    total, active, admins = users.with_entities(
        func.count(models.User.id),
        _flag(models.User.visibility == models.VISIBILITY_VISIBLE),
        _flag(models.User.is_admin.is_(True)),
    ).one()
    stats[models.User.kind] = {"total": total, "active": active, "admins": admins}

    for kind, model in models.CONTENT_MODELS.items():
        if model is models.User:
            continue
        query = filter_by_scope(db.query(model), model, scope)
        total, pending, hidden, reported = query.with_entities(
            func.count(model.id),
            _flag(model.approval == models.APPROVAL_PENDING),
            _flag(model.visibility == models.VISIBILITY_HIDDEN),
            _flag(model.report_count > 0),
        ).one()
        stats[kind] = {
            "total": total,
            "pending": pending,
            "approved": total - pending,
            "hidden": hidden,
            "reported": reported,
        }

    stats[models.Event.kind]["upcoming"] = (
        filter_by_scope(db.query(models.Event), models.Event, scope)
        .filter(
            models.Event.approval == models.APPROVAL_APPROVED,
            models.Event.status == models.EVENT_UPCOMING,
            models.Event.date >= datetime.now(timezone.utc),
        )
        .count()
    )
    return stats, scope


# participation


def join_event(db: Session, principal: models.User, event_id: UUID) -> models.EventParticipant:
    with locks.hold(models.Event.kind, event_id), _transaction(db):
        participant = participation.join(db, event_id=event_id, user_id=principal.id)
    _record("join", models.Event.kind, event_id, principal)
    _sync_joined(db, [principal.id], event_id, joined=True)
    return participant


def leave_event(db: Session, principal: models.User, event_id: UUID) -> None:
    with locks.hold(models.Event.kind, event_id), _transaction(db):
        participation.leave(db, event_id=event_id, user_id=principal.id)
    _record("leave", models.Event.kind, event_id, principal)
    _sync_joined(db, [principal.id], event_id, joined=False)


# forum and resource interactions


def _load_public(db: Session, model, item_id: UUID):
    item = _load(db, model, item_id)
    if not item.is_approved or item.is_hidden:
        raise NotFound(f"{model.label.capitalize()} not found")
    return item


def reply_to_post(
    db: Session,
    principal: models.User,
    post_id: UUID,
    fields: Mapping[str, Any],
) -> WorkflowResult:
    payload = content.parse_fields(schemas.ForumReplyCreate, fields)
    with locks.hold(models.ForumPost.kind, post_id), _transaction(db):
        post = _load(db, models.ForumPost, post_id)
        if not post.is_approved:
            raise ValidationFailed("Cannot reply to unapproved post")
        if post.is_hidden:
            raise NotFound("Forum post not found")
        if post.is_locked:
            raise ValidationFailed("Cannot reply to locked post")
        reply = models.ForumReply(post_id=post.id, author_id=principal.id, content=payload.content)
        db.add(reply)
        db.flush()
    _record("reply", post.kind, post.id, principal)

    notifications: list[models.Notification] = []
    if post.author_id != principal.id:
        notifications = _dispatch(
            db,
            lambda: [post.author_id],
            notification_type="reply",
            title="New Reply to Your Post",
            message=_clip(f"{principal.display_name} replied to your post: {post.title}"),
            related=fanout.RelatedEntity.of(post),
            sender_id=principal.id,
        )
    return WorkflowResult(item=reply, notifications=notifications)


def toggle_like(db: Session, principal: models.User, post_id: UUID) -> ToggleResult:
    with locks.hold(models.ForumPost.kind, post_id), _transaction(db):
        post = _load_public(db, models.ForumPost, post_id)
        existing = db.get(models.PostLike, (post.id, principal.id))
        if existing is not None:
            db.delete(existing)
            liked = False
        else:
            db.add(models.PostLike(post_id=post.id, user_id=principal.id))
            liked = True
    _record("like" if liked else "unlike", post.kind, post.id, principal)

    notifications: list[models.Notification] = []
    if liked and post.author_id != principal.id:
        notifications = _dispatch(
            db,
            lambda: [post.author_id],
            notification_type="like",
            title="Someone Liked Your Post",
            message=_clip(f"{principal.display_name} liked your post: {post.title}"),
            related=fanout.RelatedEntity.of(post),
            sender_id=principal.id,
        )
    return ToggleResult(active=liked, notifications=notifications)


def toggle_bookmark(db: Session, principal: models.User, resource_id: UUID) -> ToggleResult:
    with locks.hold(models.Resource.kind, resource_id), _transaction(db):
        resource = _load_public(db, models.Resource, resource_id)
        existing = db.get(models.ResourceBookmark, (resource.id, principal.id))
        if existing is not None:
            db.delete(existing)
            bookmarked = False
        else:
            db.add(models.ResourceBookmark(resource_id=resource.id, user_id=principal.id))
            bookmarked = True
    _record("bookmark" if bookmarked else "unbookmark", resource.kind, resource.id, principal)
    return ToggleResult(active=bookmarked)


def _set_post_flag(
    db: Session,
    principal: models.User,
    post_id: UUID,
    flag: str,
    value: bool,
    action: str,
) -> models.ForumPost:
    scope = require_admin(principal)
    with locks.hold(models.ForumPost.kind, post_id), _transaction(db):
        post = _load(db, models.ForumPost, post_id)
        ensure_authorized(scope, post)
        setattr(post, flag, value)
        audit.log_action(db, principal.id, action, post.kind, post.id, {"scope": scope.describe()})
    _record(action, models.ForumPost.kind, post_id, principal, scope=scope.describe())
    return post


def set_pinned(db: Session, principal: models.User, post_id: UUID, pinned: bool) -> models.ForumPost:
    """Pinned posts sort ahead of the rest of the forum listing."""

    return _set_post_flag(db, principal, post_id, "is_pinned", pinned, "pin" if pinned else "unpin")


def set_locked(db: Session, principal: models.User, post_id: UUID, locked: bool) -> models.ForumPost:
    """Locked posts stay readable but take no new replies."""

    return _set_post_flag(db, principal, post_id, "is_locked", locked, "lock" if locked else "unlock")


# announcements


def broadcast(
    db: Session,
    principal: models.User,
    title: str,
    message: str,
    priority: str = "medium",
) -> fanout.FanoutResult:
    """Send a system announcement to every active user."""

    require_admin(principal)
    result = fanout.notify(
        db,
        fanout.ALL_ACTIVE_USERS,
        notification_type="system_announcement",
        title=title,
        message=message,
        sender_id=principal.id,
        priority=priority,
    )
    logger.info(
        "broadcast_sent",
        actor_id=str(principal.id),
        recipient_count=result.recipient_count,
    )
    return result


def send_event_reminders(
    db: Session,
    *,
    now: datetime | None = None,
    window_hours: int = EVENT_REMINDER_WINDOW_HOURS,
) -> int:
    """Remind participants of approved, upcoming events starting inside the window.

    Each event is reminded once: the claim on ``reminder_sent_at`` commits with
    the reminder rows, so overlapping runs skip events already handled.
    """

    start = now or datetime.now(timezone.utc)
    end = start + timedelta(hours=window_hours)
    events = (
        db.query(models.Event)
        .filter(
            models.Event.approval == models.APPROVAL_APPROVED,
            models.Event.visibility == models.VISIBILITY_VISIBLE,
            models.Event.status == models.EVENT_UPCOMING,
            models.Event.reminder_sent_at.is_(None),
            models.Event.date >= start,
            models.Event.date < end,
        )
        .order_by(models.Event.date.asc())
        .all()
    )
    delivered = 0
    for event in events:
        attendees = participation.participant_ids(db, event.id)
        if not attendees:
            continue
        with locks.hold(models.Event.kind, event.id):
            claimed = (
                db.query(models.Event)
                .filter(models.Event.id == event.id, models.Event.reminder_sent_at.is_(None))
                .update({"reminder_sent_at": start}, synchronize_session=False)
            )
            if not claimed:
                db.rollback()
                continue
            sent = _dispatch(
                db,
                lambda: attendees,
                notification_type="event_reminder",
                title="Event Reminder",
                message=_clip(f'"{event.title}" starts on {event.date:%Y-%m-%d} at {event.time} in {event.location}'),
                related=fanout.RelatedEntity.of(event),
            )
            db.commit()
        delivered += len(sent)
        if sent:
            logger.info("event_reminders_sent", event_id=str(event.id), recipients=len(sent))
    return delivered
