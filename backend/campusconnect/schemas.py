from datetime import datetime
from typing import Optional, Any, Dict, Literal, List
from pydantic import AliasChoices, BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID

from .settings import DEFAULT_EVENT_CAPACITY

EventCategory = Literal["academic", "sports", "cultural", "technical", "social", "workshop", "seminar", "other"]
EventStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]
PostCategory = Literal["general", "academics", "tech", "sports", "cultural", "help", "announcements"]
ResourceCategory = Literal["notes", "assignments", "past-papers", "books", "presentations", "videos", "other"]
Priority = Literal["low", "medium", "high"]


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    department: Optional[str] = None
    is_admin: bool = False
    visibility: str
    report_count: int = 0
    model_config = ConfigDict(from_attributes=True)


class EventCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    category: EventCategory
    date: datetime
    time: str = Field(min_length=1)
    location: str = Field(min_length=1)
    capacity: int = Field(DEFAULT_EVENT_CAPACITY, ge=1)
    tags: List[str] = Field(default_factory=list)
    model_config = ConfigDict(str_strip_whitespace=True)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    category: Optional[EventCategory] = None
    date: Optional[datetime] = None
    time: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, min_length=1)
    capacity: Optional[int] = Field(None, ge=1)
    tags: Optional[List[str]] = None
    model_config = ConfigDict(str_strip_whitespace=True)


class EventStatusUpdate(BaseModel):
    status: EventStatus


class EventOut(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    date: datetime
    time: str
    location: str
    capacity: int
    participant_count: int
    spots_remaining: int
    status: str
    organizer_id: UUID
    owner_department: Optional[str] = None
    approval: str
    visibility: str
    report_count: int = 0
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ParticipantOut(BaseModel):
    id: UUID
    event_id: UUID
    user_id: UUID
    joined_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ForumPostCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    content: str = Field(min_length=10, max_length=5000)
    category: PostCategory
    tags: List[str] = Field(default_factory=list)
    model_config = ConfigDict(str_strip_whitespace=True)


class ForumPostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    content: Optional[str] = Field(None, min_length=10, max_length=5000)
    category: Optional[PostCategory] = None
    tags: Optional[List[str]] = None
    model_config = ConfigDict(str_strip_whitespace=True)


class ForumPostOut(BaseModel):
    id: UUID
    title: str
    content: str
    category: str
    tags: List[str] = Field(default_factory=list)
    author_id: UUID
    owner_department: Optional[str] = None
    approval: str
    visibility: str
    report_count: int = 0
    is_pinned: bool = False
    is_locked: bool = False
    like_count: int = 0
    reply_count: int = 0
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ForumReplyCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    model_config = ConfigDict(str_strip_whitespace=True)


class ForumReplyOut(BaseModel):
    id: UUID
    post_id: UUID
    author_id: UUID
    content: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ResourceCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=10, max_length=1000)
    category: ResourceCategory
    subject: str = Field(min_length=1)
    department: str = Field(min_length=1)
    semester: Optional[int] = Field(None, ge=1, le=8)
    year: Optional[int] = Field(None, ge=1, le=4)
    file_url: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_type: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    tags: List[str] = Field(default_factory=list)
    model_config = ConfigDict(str_strip_whitespace=True)


class ResourceUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    category: Optional[ResourceCategory] = None
    subject: Optional[str] = Field(None, min_length=1)
    semester: Optional[int] = Field(None, ge=1, le=8)
    year: Optional[int] = Field(None, ge=1, le=4)
    tags: Optional[List[str]] = None
    model_config = ConfigDict(str_strip_whitespace=True)


class ResourceOut(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    subject: str
    department: str
    semester: Optional[int] = None
    year: Optional[int] = None
    uploader_id: UUID
    owner_department: Optional[str] = None
    file_url: str
    file_name: str
    file_type: str
    file_size: int
    approval: str
    visibility: str
    report_count: int = 0
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ToggleOut(BaseModel):
    active: bool
    message: str


class FlagRequest(BaseModel):
    value: bool


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RejectOut(BaseModel):
    message: str
    reason: Optional[str] = None


class ModerationRequest(BaseModel):
    action: str
    reason: Optional[str] = Field(None, max_length=500)


class ModeratedItemOut(BaseModel):
    kind: str
    id: UUID
    title: str = Field(validation_alias=AliasChoices("display_title", "title"))
    owner_id: UUID
    owner_department: Optional[str] = None
    approval: str
    visibility: str
    report_count: int = 0
    model_config = ConfigDict(from_attributes=True)


class UserPageOut(BaseModel):
    users: List[UserOut]
    total: int
    page: int
    pages: int
    admin_department: Optional[str] = None


class AdminStatsOut(BaseModel):
    stats: Dict[str, Dict[str, int]]
    admin_department: Optional[str] = None


class PendingPageOut(BaseModel):
    items: List[ModeratedItemOut]
    total: int
    page: int
    limit: int
    admin_department: Optional[str] = None


class ModerationQueueOut(BaseModel):
    content: Dict[str, List[ModeratedItemOut]]
    total_reports: Dict[str, int]
    admin_department: Optional[str] = None


class RelatedEntityOut(BaseModel):
    kind: str
    id: Optional[UUID] = None


class NotificationOut(BaseModel):
    id: UUID
    recipient_id: UUID
    sender_id: Optional[UUID] = None
    type: str
    title: str
    message: str
    related_entity: Optional[RelatedEntityOut] = None
    priority: str = "medium"
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationPage(BaseModel):
    notifications: List[NotificationOut]
    total: int
    unread_count: int
    page: int
    pages: int


class NotificationTypeStat(BaseModel):
    type: str
    count: int
    unread_count: int


class NotificationStatsOut(BaseModel):
    stats: List[NotificationTypeStat]
    summary: Dict[str, int]


class BroadcastRequest(BaseModel):
    title: str
    message: str
    priority: Priority = "medium"


class BroadcastOut(BaseModel):
    message: str
    recipient_count: int


class AuditReportRow(BaseModel):
    action: str
    count: int


class SettingsOut(BaseModel):
    settings: Dict[str, Any]
    admin: UserOut
