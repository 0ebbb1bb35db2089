"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from watcher.event_bus import EventBus
from watcher.models import CourseInfo, Credential, DomainEvent, GradeOverview, InboxForum, ResourceType
from watcher.snapshot_store import SnapshotStore


class MemorySnapshotStorage:
    """In-memory durable storage that records every write."""

    def __init__(self, initial: Optional[Dict[str, list]] = None, fail_writes: bool = False):
        self.data: Dict[str, list] = dict(initial or {})
        self.writes: List[str] = []
        self.fail_writes = fail_writes

    def write(self, key, snapshot):
        if self.fail_writes:
            raise OSError("disk full")
        self.writes.append(key)
        self.data[key] = list(snapshot)

    def read_all(self):
        return dict(self.data)


class FakeDirectory:
    """Directory with fixed courses and enrollments."""

    def __init__(self, courses=None, enrollments=None, users=None, fail_on=None):
        self.courses: Dict[str, CourseInfo] = courses or {}
        self.enrollments: Dict[str, List[str]] = enrollments or {}
        self.users: List[str] = users or []
        self.fail_on = fail_on

    def _check(self, operation):
        if self.fail_on == operation:
            raise ConnectionError("mongo unreachable")

    async def active_courses(self):
        self._check("active_courses")
        return dict(self.courses)

    async def active_users_in_course(self, course_id):
        self._check("active_users_in_course")
        return list(self.enrollments.get(course_id, []))

    async def all_active_users(self):
        self._check("all_active_users")
        return list(self.users)


class FakeCredentials:
    """Credential resolver over a fixed map."""

    def __init__(self, credentials: Optional[Dict[str, Credential]] = None):
        self.credentials = credentials or {}
        self.lookups: List[str] = []

    async def cookie_for(self, user_id):
        self.lookups.append(user_id)
        return self.credentials.get(user_id)


class RecordingInvalidationSink:
    def __init__(self, fail: bool = False):
        self.reports: List[tuple] = []
        self.fail = fail

    async def report(self, user_id, reason):
        self.reports.append((user_id, reason))
        if self.fail:
            raise RuntimeError("cookie store down")


class RecordingEventSink:
    def __init__(self):
        self.events: List[DomainEvent] = []

    async def deliver(self, event):
        self.events.append(event)


class ScriptedFetcher:
    """
    Fetcher whose responses are keyed by target.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self):
        self.announcements: Dict[tuple, Any] = {}
        self.grades: Dict[tuple, Any] = {}
        self.feedback: Dict[Any, Any] = {}
        self.forums: Dict[str, Any] = {}
        self.posts: Dict[tuple, Any] = {}
        self.calls: List[tuple] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, BaseException):
            raise value
        return value

    async def fetch_announcements(self, credential, course_id, metadata):
        self.calls.append(("announcements", credential.user_id, course_id))
        return self._answer(self.announcements.get((credential.user_id, course_id), []))

    async def fetch_grades(self, credential, slug_id, metadata):
        self.calls.append(("grades", credential.user_id, slug_id))
        return self._answer(self.grades.get((credential.user_id, slug_id), GradeOverview()))

    async def fetch_grade_feedback(self, credential, grade, metadata):
        self.calls.append(("feedback", credential.user_id, grade.get("id")))
        value = self._answer(self.feedback.get(grade.get("id"), {"id": grade.get("id")}))
        return {**value, "metadata": dict(metadata)}

    async def fetch_inbox_forums(self, credential):
        self.calls.append(("forums", credential.user_id))
        return self._answer(self.forums.get(credential.user_id, []))

    async def fetch_forum_posts(self, credential, forum_id):
        self.calls.append(("posts", credential.user_id, forum_id))
        return self._answer(self.posts.get((credential.user_id, forum_id), []))


def make_credential(user_id: str) -> Credential:
    return Credential(user_id=user_id, authorization_token=f"auth-{user_id}", context_token=f"ctx-{user_id}")


def iso_hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


@pytest.fixture
def course():
    """Create a sample active course."""
    return CourseInfo(course_id="C1", course_code="CST-101", slug_id="cst-101-o500", stage="CURRENT")


@pytest.fixture
def credentials():
    return FakeCredentials({user: make_credential(user) for user in ("u1", "u2", "u3")})


@pytest.fixture
def invalidation_sink():
    return RecordingInvalidationSink()


@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def event_bus(event_sink):
    return EventBus([event_sink])


@pytest.fixture
def fetcher():
    return ScriptedFetcher()


@pytest.fixture
def make_store():
    """Factory for a snapshot store over in-memory storage."""
    def _make(resource_type: ResourceType, initial=None, fail_writes=False):
        storage = MemorySnapshotStorage(initial, fail_writes=fail_writes)
        return SnapshotStore(resource_type, storage), storage
    return _make


@pytest.fixture
def sample_forum():
    return InboxForum(forum_id="F1", unread_count=1)
