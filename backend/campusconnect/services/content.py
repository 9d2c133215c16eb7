"""Field validation and construction for creatable content kinds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from .. import models, schemas
from ..errors import ValidationFailed

# purpose: validate raw fields per kind and build items in the right initial approval state
# status: active


@dataclass(frozen=True)
class ContentSpec:
    model: type[models.ModeratableMixin]
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    owner_field: str


CREATABLE: dict[str, ContentSpec] = {
    models.Event.kind: ContentSpec(models.Event, schemas.EventCreate, schemas.EventUpdate, "organizer_id"),
    models.ForumPost.kind: ContentSpec(models.ForumPost, schemas.ForumPostCreate, schemas.ForumPostUpdate, "author_id"),
    models.Resource.kind: ContentSpec(models.Resource, schemas.ResourceCreate, schemas.ResourceUpdate, "uploader_id"),
}


def spec_for(kind: str) -> ContentSpec:
    try:
        return CREATABLE[kind]
    except KeyError:
        raise ValidationFailed(f"Invalid content type '{kind}'") from None


def model_for(kind: str) -> type[models.ModeratableMixin]:
    """Return the model for any moderatable kind, including user accounts."""

    try:
        return models.CONTENT_MODELS[kind]
    except KeyError:
        raise ValidationFailed(f"Invalid content type '{kind}'") from None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ensure_future(value: datetime | None) -> None:
    if value is not None and _as_utc(value) <= datetime.now(timezone.utc):
        raise ValidationFailed("Event date must be in the future")


def parse_fields(schema: type[BaseModel], fields: Mapping[str, Any] | BaseModel) -> BaseModel:
    if isinstance(fields, schema):
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(dict(fields))
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailed(f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid input")) from exc


def build_item(kind: str, fields: Mapping[str, Any] | BaseModel, *, owner: models.User) -> models.ModeratableMixin:
    """Build an unsaved item owned by ``owner``.

    Items start pending unless the owner is an administrator. The owner's
    department is copied onto the item for scope checks.
    """

    spec = spec_for(kind)
    payload = parse_fields(spec.create_schema, fields)
    values = payload.model_dump()
    if kind == models.Event.kind:
        _ensure_future(values["date"])
        values["date"] = _as_utc(values["date"])
    item = spec.model(**values)
    setattr(item, spec.owner_field, owner.id)
    item.owner_department = owner.department or None
    item.approval = models.APPROVAL_APPROVED if owner.is_admin else models.APPROVAL_PENDING
    item.visibility = models.VISIBILITY_VISIBLE
    item.report_count = 0
    if owner.is_admin:
        item.approved_by_id = owner.id
        item.approved_at = datetime.now(timezone.utc)
    return item


def apply_update(item: models.ModeratableMixin, fields: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    """Apply validated partial fields and return what changed."""

    spec = spec_for(item.kind)
    payload = parse_fields(spec.update_schema, fields)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "date" in changes:
        _ensure_future(changes["date"])
        changes["date"] = _as_utc(changes["date"])
        item.reminder_sent_at = None
    if "capacity" in changes and changes["capacity"] < item.participant_count:
        raise ValidationFailed("Capacity cannot be lower than the current participant count")
    for name, value in changes.items():
        setattr(item, name, value)
    return changes
