import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr, relationship, synonym
from datetime import datetime, timezone

from .database import Base
from .settings import DEFAULT_EVENT_CAPACITY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"

VISIBILITY_VISIBLE = "visible"
VISIBILITY_HIDDEN = "hidden"

EVENT_UPCOMING = "upcoming"
EVENT_STATUSES = ("upcoming", "ongoing", "completed", "cancelled")

NOTIFICATION_TYPES = (
    "item_created",
    "item_approved",
    "item_rejected",
    "item_updated",
    "item_cancelled",
    "event_reminder",
    "like",
    "reply",
    "system_announcement",
)
NOTIFICATION_PRIORITIES = ("low", "medium", "high")


class ModeratableMixin:
    """Approval, visibility and report state shared by every moderatable kind."""

    # purpose: expose one uniform moderation surface (approval, visibility, report_count,
    #   owner_id, owner_department) so services never branch on the content kind
    # status: active
    kind = ""
    label = ""

    approval = Column(String, default=APPROVAL_PENDING, nullable=False, index=True)
    visibility = Column(String, default=VISIBILITY_VISIBLE, nullable=False)
    report_count = Column(Integer, default=0, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    moderated_at = Column(DateTime, nullable=True)

    @declared_attr
    def approved_by_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def moderated_by_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.approval == APPROVAL_PENDING

    @property
    def is_approved(self) -> bool:
        return self.approval == APPROVAL_APPROVED

    @property
    def is_hidden(self) -> bool:
        return self.visibility == VISIBILITY_HIDDEN

    @property
    def display_title(self) -> str:
        return getattr(self, "title", None) or str(self.id)


class User(ModeratableMixin, Base):
    __tablename__ = "users"
    kind = "user"
    label = "account"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String)
    is_admin = Column(Boolean, default=False, nullable=False)
    department = Column(String, nullable=True)
    course = Column(String, nullable=True)
    # cache of joined events; EventParticipant rows are authoritative
    joined_event_ids = Column(JSON, default=list, nullable=False)
    last_digest = Column(DateTime, default=_utcnow)
    created_at = Column(DateTime, default=_utcnow)

    # accounts exist approved; the visibility axis is the active flag
    approval = Column(String, default=APPROVAL_APPROVED, nullable=False)

    owner_id = synonym("id")
    owner_department = synonym("department")

    @property
    def is_active(self) -> bool:
        return self.visibility == VISIBILITY_VISIBLE

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @property
    def display_title(self) -> str:
        return self.display_name


class Event(ModeratableMixin, Base):
    __tablename__ = "events"
    __table_args__ = (
        sa.CheckConstraint("participant_count >= 0", name="ck_events_participant_count_positive"),
        sa.CheckConstraint("participant_count <= capacity", name="ck_events_participant_count_capacity"),
    )
    kind = "event"
    label = "event"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    date = Column(DateTime, nullable=False)
    time = Column(String, nullable=False)
    location = Column(String, nullable=False)
    capacity = Column(Integer, default=DEFAULT_EVENT_CAPACITY, nullable=False)
    participant_count = Column(Integer, default=0, nullable=False)
    status = Column(String, default=EVENT_UPCOMING, nullable=False)
    # set once participants have been reminded; cleared when the date moves
    reminder_sent_at = Column(DateTime, nullable=True)
    organizer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_department = Column(String, nullable=True, index=True)
    image_url = Column(String, default="")
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner_id = synonym("organizer_id")

    organizer = relationship("User", foreign_keys=[organizer_id])
    participants = relationship(
        "EventParticipant",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventParticipant.joined_at",
    )

    @property
    def spots_remaining(self) -> int:
        return max(self.capacity - self.participant_count, 0)


class EventParticipant(Base):
    __tablename__ = "event_participants"
    __table_args__ = (
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_participants_event_user"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime, default=_utcnow, nullable=False)

    event = relationship("Event", back_populates="participants")
    user = relationship("User")


class ForumPost(ModeratableMixin, Base):
    __tablename__ = "forum_posts"
    kind = "post"
    label = "forum post"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    tags = Column(JSON, default=list)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_department = Column(String, nullable=True, index=True)
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner_id = synonym("author_id")

    author = relationship("User", foreign_keys=[author_id])
    replies = relationship(
        "ForumReply",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ForumReply.created_at",
    )
    likes = relationship("PostLike", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def reply_count(self) -> int:
        return len(self.replies)


class ForumReply(Base):
    __tablename__ = "forum_replies"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    post_id = Column(UUID(as_uuid=True), ForeignKey("forum_posts.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    post = relationship("ForumPost", back_populates="replies")


class PostLike(Base):
    __tablename__ = "post_likes"
    post_id = Column(UUID(as_uuid=True), ForeignKey("forum_posts.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=_utcnow)


class Resource(ModeratableMixin, Base):
    __tablename__ = "resources"
    kind = "resource"
    label = "resource"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    # academic department the material belongs to, not the authorization scope
    department = Column(String, nullable=False)
    semester = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    uploader_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_department = Column(String, nullable=True, index=True)
    file_url = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner_id = synonym("uploader_id")

    uploader = relationship("User", foreign_keys=[uploader_id])
    bookmarks = relationship("ResourceBookmark", cascade="all, delete-orphan", passive_deletes=True)


class ResourceBookmark(Base):
    __tablename__ = "resource_bookmarks"
    resource_id = Column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=_utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        sa.Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    # no foreign key: the referenced item may already be purged
    related_kind = Column(String, nullable=True)
    related_id = Column(UUID(as_uuid=True), nullable=True)
    priority = Column(String, default="medium", nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    is_email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, index=True)

    @property
    def related_entity(self) -> dict | None:
        if not self.related_kind:
            return None
        return {"kind": self.related_kind, "id": self.related_id}


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)
    target_type = Column(String, nullable=True)
    target_id = Column(UUID(as_uuid=True), nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)


CONTENT_MODELS: dict[str, type[ModeratableMixin]] = {
    Event.kind: Event,
    ForumPost.kind: ForumPost,
    Resource.kind: Resource,
    User.kind: User,
}
