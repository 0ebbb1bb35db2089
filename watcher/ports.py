"""Ports (interfaces) used by the watchers.

Ports define the minimal contracts for the directory, credential store, Halo
fetchers, event sinks and durable snapshot storage so the watchers can run
against MongoDB and Halo in production and against fakes in tests.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol

from watcher.models import Credential, CourseInfo, DomainEvent, GradeOverview, InboxForum, Snapshot


class Directory(Protocol):
    """Enumerates the targets of a tick."""

    async def active_courses(self) -> Dict[str, CourseInfo]:
        ...

    async def active_users_in_course(self, course_id: str) -> List[str]:
        ...

    async def all_active_users(self) -> List[str]:
        ...


class CredentialResolver(Protocol):
    """Resolves a user's Halo cookie; None means skip the target silently."""

    async def cookie_for(self, user_id: str) -> Optional[Credential]:
        ...


class CredentialInvalidationSink(Protocol):
    """Receives credentials Halo rejected with a 401."""

    async def report(self, user_id: str, reason: str) -> None:
        ...


class AnnouncementFetcher(Protocol):

    async def fetch_announcements(
        self, credential: Credential, course_id: str, metadata: Mapping[str, Any]
    ) -> Snapshot:
        ...


class GradeFetcher(Protocol):

    async def fetch_grades(
        self, credential: Credential, slug_id: str, metadata: Mapping[str, Any]
    ) -> GradeOverview:
        ...

    async def fetch_grade_feedback(
        self, credential: Credential, grade: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> Dict[str, Any]:
        ...


class InboxFetcher(Protocol):

    async def fetch_inbox_forums(self, credential: Credential) -> List[InboxForum]:
        ...

    async def fetch_forum_posts(self, credential: Credential, forum_id: str) -> Snapshot:
        ...


class EventSink(Protocol):
    """Delivery collaborator fed by the event bus."""

    async def deliver(self, event: DomainEvent) -> None:
        ...


class SnapshotStorage(Protocol):
    """Durable keyed blob store for snapshots."""

    def write(self, key: str, snapshot: Snapshot) -> None:
        ...

    def read_all(self) -> Dict[str, Snapshot]:
        ...
