"""
Models for the watcher and change detection functionality.

This module defines Pydantic models for:
- Resource keys and snapshots
- Credentials and directory records
- Domain events emitted on new content
- Tick results and watcher configuration
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# A snapshot is the ordered collection of raw items last fetched for one key
Snapshot = List[Dict[str, Any]]


class ResourceType(str, Enum):
    """Remote resources watched for new content."""
    ANNOUNCEMENTS = "announcements"
    GRADES = "grades"
    INBOX_MESSAGES = "inbox_messages"


class EventType(str, Enum):
    """Domain events produced by the watchers."""
    ANNOUNCEMENT = "announcement"
    GRADE = "grade"
    INBOX_MESSAGE = "inbox_message"


KEY_SEPARATOR = "/"


class ResourceKey(BaseModel):
    """Composite identifier scoping one cached collection."""
    resource_type: ResourceType = Field(..., description="Type of the cached resource")
    scope_id: str = Field(..., description="Course id or user id")
    sub_scope_id: Optional[str] = Field(default=None, description="User id or forum id")

    @validator('scope_id', 'sub_scope_id')
    def validate_component(cls, v):
        """Key components become path segments, so they must be plain names."""
        if v is None:
            return v
        if not v or KEY_SEPARATOR in v or v in ('.', '..') or '\\' in v:
            raise ValueError(f'invalid key component: {v!r}')
        return v

    class Config:
        """Pydantic configuration."""
        frozen = True

    @property
    def path(self) -> str:
        """Opaque string form, unique within a resource type."""
        if self.sub_scope_id is None:
            return self.scope_id
        return f"{self.scope_id}{KEY_SEPARATOR}{self.sub_scope_id}"

    @classmethod
    def from_path(cls, resource_type: ResourceType, path: str) -> 'ResourceKey':
        parts = path.split(KEY_SEPARATOR)
        if len(parts) == 1:
            return cls(resource_type=resource_type, scope_id=parts[0])
        if len(parts) == 2:
            return cls(resource_type=resource_type, scope_id=parts[0], sub_scope_id=parts[1])
        raise ValueError(f'invalid snapshot key path: {path!r}')

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.path}"


class Credential(BaseModel):
    """Resolved Halo session cookie for one user."""
    user_id: str = Field(..., description="Owning user id")
    authorization_token: str = Field(default="", description="Halo user token")
    context_token: str = Field(default="", description="Halo context token")


def is_valid_credential(credential: Optional[Credential]) -> bool:
    """A credential is usable when both tokens are present."""
    if credential is None:
        return False
    return bool(credential.authorization_token.strip()) and bool(credential.context_token.strip())


class CourseInfo(BaseModel):
    """Directory record for one active course."""
    course_id: str = Field(..., description="Halo course class id")
    course_code: str = Field(..., description="Readable course code")
    slug_id: str = Field(..., description="Course class slug id")
    stage: Optional[str] = Field(default=None, description="Course stage")


class InboxForum(BaseModel):
    """One inbox forum with its remote unread counter."""
    forum_id: str
    unread_count: int = Field(default=0, ge=0)


class GradeOverview(BaseModel):
    """All grades for a user in one course plus the running final grade."""
    grades: List[Dict[str, Any]] = Field(default_factory=list)
    final_grade: Optional[Dict[str, Any]] = Field(default=None)


class DomainEvent(BaseModel):
    """Event emitted once per newly detected item."""
    event_type: EventType = Field(..., description="Kind of new content")
    item: Dict[str, Any] = Field(..., description="Full item body with injected metadata")
    user_id: Optional[str] = Field(default=None, description="Target user for user-scoped events")
    course_id: Optional[str] = Field(default=None, description="Course the item belongs to")
    course_code: Optional[str] = Field(default=None)
    detected_at: datetime = Field(default_factory=utcnow)

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }

    @property
    def item_id(self) -> Any:
        return self.item.get("id")


class TickResult(BaseModel):
    """Result of one watcher tick."""
    watcher: ResourceType
    started_at: datetime = Field(default_factory=utcnow)
    targets_processed: int = Field(default=0)
    targets_skipped: int = Field(default=0)
    fetches: int = Field(default=0)
    unauthorized: int = Field(default=0)
    failures: int = Field(default=0)
    events_emitted: int = Field(default=0)
    duration_seconds: float = Field(default=0.0)

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }


class WatcherConfig(BaseModel):
    """Configuration for the polling watchers."""
    # Scheduling
    poll_interval_seconds: int = Field(default=20, ge=1, le=3600, description="Fixed tick period")
    max_overlapping_ticks: int = Field(default=3, ge=1, le=10, description="Concurrent runs allowed per watcher")
    timezone: str = Field(default="UTC", description="Timezone for scheduling")

    # Watchers
    enable_announcements: bool = Field(default=True)
    enable_grades: bool = Field(default=True)
    enable_inbox_messages: bool = Field(default=True)

    # Filters
    announcement_recency_hours: int = Field(default=48, ge=1, description="Announcement freshness window")

    # Health
    heartbeat_stale_seconds: int = Field(default=120, ge=1)
