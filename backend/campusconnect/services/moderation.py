"""Approval and visibility state machine shared by every moderatable content kind."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import audit, models
from ..errors import Conflict, NotFound, ValidationFailed, NOT_PENDING
from ..settings import MODERATION_QUEUE_LIMIT
from .scope import AdminScope, ensure_authorized, filter_by_scope

# purpose: apply approve/reject/hide/unhide/clear-reports transitions through conditional
#   statements so a concurrent administrator can never act on a stale row
# inputs: session inside an open transaction, admin scope, loaded item, acting admin
# outputs: mutated (or purged) rows plus audit entries; the caller commits
# status: active
#
# Approval axis:   pending --approve--> approved ; pending --reject--> [deleted]
# Visibility axis: visible <--hide/unhide--> hidden ; clear-reports zeroes report_count


@dataclass(frozen=True)
class RejectedItem:
    """Snapshot of an item taken before it was purged by a rejection."""

    kind: str
    label: str
    id: UUID
    title: str
    owner_id: UUID
    owner_department: str | None
    reason: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _label(item: models.ModeratableMixin) -> str:
    return item.label[:1].upper() + item.label[1:]


def _raise_lost_race(db: Session, model: type[models.ModeratableMixin], item_id: UUID) -> None:
    """Explain why a conditional statement touched no row."""

    approval = db.query(model.approval).filter(model.id == item_id).scalar()
    if approval is None:
        raise NotFound(f"{model.label.capitalize()} not found")
    raise Conflict(f"{model.label.capitalize()} is no longer pending", code=NOT_PENDING)


def approve(
    db: Session,
    scope: AdminScope,
    item: models.ModeratableMixin,
    *,
    actor: models.User,
) -> models.ModeratableMixin:
    """Move a pending item to approved. Approving twice is a conflict, not a no-op."""

    ensure_authorized(scope, item)
    if not item.is_pending:
        raise Conflict(f"{_label(item)} is already approved", code=NOT_PENDING)

    model = type(item)
    now = _utcnow()
    updated = (
        db.query(model)
        .filter(model.id == item.id, model.approval == models.APPROVAL_PENDING)
        .update(
            {
                "approval": models.APPROVAL_APPROVED,
                "approved_by_id": actor.id,
                "approved_at": now,
                "moderated_by_id": actor.id,
                "moderated_at": now,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        _raise_lost_race(db, model, item.id)
    audit.log_action(db, actor.id, "approve", item.kind, item.id, {"scope": scope.describe()})
    return item


def reject(
    db: Session,
    scope: AdminScope,
    item: models.ModeratableMixin,
    *,
    actor: models.User,
    reason: str | None = None,
) -> RejectedItem:
    """Purge a pending item. Dependent rows go with it through ON DELETE CASCADE."""

    ensure_authorized(scope, item)
    if not item.is_pending:
        raise Conflict(f"Cannot reject an approved {item.label}", code=NOT_PENDING)

    snapshot = RejectedItem(
        kind=item.kind,
        label=item.label,
        id=item.id,
        title=item.display_title,
        owner_id=item.owner_id,
        owner_department=item.owner_department,
        reason=reason,
    )
    model = type(item)
    deleted = (
        db.query(model)
        .filter(model.id == item.id, model.approval == models.APPROVAL_PENDING)
        .delete(synchronize_session=False)
    )
    if not deleted:
        _raise_lost_race(db, model, item.id)
    db.expunge(item)
    audit.log_action(
        db,
        actor.id,
        "reject",
        snapshot.kind,
        snapshot.id,
        {"scope": scope.describe(), "reason": reason, "title": snapshot.title},
    )
    return snapshot


def _apply(
    db: Session,
    scope: AdminScope,
    item: models.ModeratableMixin,
    values: dict,
    *,
    actor: models.User,
    action: str,
    reason: str | None,
) -> models.ModeratableMixin:
    ensure_authorized(scope, item)
    # the visibility axis only exists once an item is published
    if not item.is_approved:
        raise Conflict(f"{_label(item)} is still pending approval", code=NOT_PENDING)
    model = type(item)
    values = {**values, "moderated_by_id": actor.id, "moderated_at": _utcnow()}
    updated = (
        db.query(model)
        .filter(model.id == item.id, model.approval == models.APPROVAL_APPROVED)
        .update(values, synchronize_session=False)
    )
    if not updated:
        raise NotFound(f"{_label(item)} not found")
    audit.log_action(
        db,
        actor.id,
        action,
        item.kind,
        item.id,
        {"scope": scope.describe(), "reason": reason},
    )
    return item


def hide(db, scope, item, *, actor, reason=None):
    return _apply(db, scope, item, {"visibility": models.VISIBILITY_HIDDEN}, actor=actor, action="hide", reason=reason)


def unhide(db, scope, item, *, actor, reason=None):
    return _apply(db, scope, item, {"visibility": models.VISIBILITY_VISIBLE}, actor=actor, action="unhide", reason=reason)


def clear_reports(db, scope, item, *, actor, reason=None):
    return _apply(db, scope, item, {"report_count": 0}, actor=actor, action="clear-reports", reason=reason)


MODERATION_ACTIONS: dict[str, Callable[..., models.ModeratableMixin]] = {
    "hide": hide,
    "unhide": unhide,
    "clear-reports": clear_reports,
}


def moderation_action(action: str) -> Callable[..., models.ModeratableMixin]:
    try:
        return MODERATION_ACTIONS[action]
    except KeyError:
        raise ValidationFailed(f"Invalid moderation action '{action}'") from None


def report(db: Session, item: models.ModeratableMixin, *, reporter: models.User) -> None:
    """Increment the report counter. Reports never change visibility on their own."""

    if not item.is_approved or item.is_hidden:
        raise NotFound(f"{_label(item)} not found")
    model = type(item)
    updated = (
        db.query(model)
        .filter(model.id == item.id)
        .update({"report_count": model.report_count + 1}, synchronize_session=False)
    )
    if not updated:
        raise NotFound(f"{_label(item)} not found")
    audit.log_action(db, reporter.id, "report", item.kind, item.id)


def pending_items(
    db: Session,
    scope: AdminScope,
    model: type[models.ModeratableMixin],
    *,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[models.ModeratableMixin], int]:
    """Return pending items of one kind the scope may act on, newest first."""

    query = filter_by_scope(db.query(model), model, scope).filter(
        model.approval == models.APPROVAL_PENDING
    )
    total = query.count()
    query = query.order_by(model.created_at.desc()).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all(), total


def moderation_queue(
    db: Session,
    scope: AdminScope,
    models_by_kind: dict[str, type[models.ModeratableMixin]],
    *,
    limit: int = MODERATION_QUEUE_LIMIT,
) -> tuple[dict[str, list[models.ModeratableMixin]], dict[str, int]]:
    """Return reported or hidden items per kind along with per-kind report totals."""

    content: dict[str, list[models.ModeratableMixin]] = {}
    totals: dict[str, int] = {}
    for kind, model in models_by_kind.items():
        scoped = filter_by_scope(db.query(model), model, scope)
        content[kind] = (
            scoped.filter(
                sa.or_(model.report_count > 0, model.visibility == models.VISIBILITY_HIDDEN)
            )
            .order_by(model.report_count.desc(), model.created_at.desc())
            .limit(limit)
            .all()
        )
        totals[kind] = scoped.filter(model.report_count > 0).count()
    return content, totals
