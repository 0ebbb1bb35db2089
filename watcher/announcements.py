"""
Announcement watcher.

Announcements are course-scoped, so one representative credential per course
is enough: users are tried in directory order until one fetch succeeds.
"""

from typing import List, Optional

from watcher.base import BaseWatcher
from watcher.errors import Unauthorized
from watcher.models import CourseInfo, EventType, ResourceKey, ResourceType, Snapshot, TickResult
from watcher.ports import AnnouncementFetcher


class AnnouncementWatcher(BaseWatcher):
    """Emits an `announcement` event for each newly published course announcement."""

    resource_type = ResourceType.ANNOUNCEMENTS
    event_type = EventType.ANNOUNCEMENT

    def __init__(self, fetcher: AnnouncementFetcher, **kwargs):
        super().__init__(**kwargs)
        self.fetcher = fetcher

    async def _run(self, result: TickResult) -> None:
        courses = await self._enumerate("active_courses", self.directory.active_courses)
        self.wlog.log_tick_start(len(courses))

        for course_id, course in courses.items():
            users = await self._enumerate(
                "active_users_in_course", self.directory.active_users_in_course, course_id
            )
            if not users:
                result.targets_skipped += 1
                continue

            try:
                await self._process_course(course, users, result)
            except Exception as e:
                result.failures += 1
                self.wlog.log_fetch_failure(
                    f"unexpected error: {e}", course_id=course_id, course_code=course.course_code
                )

    async def _process_course(self, course: CourseInfo, users: List[str], result: TickResult) -> None:
        announcements = await self._fetch_with_representative(course, users, result)
        if announcements is None:
            # No user yielded a result; the previous snapshot stays as it is
            result.targets_skipped += 1
            return

        result.targets_processed += 1
        key = ResourceKey(resource_type=self.resource_type, scope_id=course.course_id)
        for announcement in await self._reconcile(key, announcements):
            self._emit(
                result,
                announcement,
                course_id=course.course_id,
                course_code=course.course_code
            )

    async def _fetch_with_representative(
        self, course: CourseInfo, users: List[str], result: TickResult
    ) -> Optional[Snapshot]:
        """Fetch with the first user whose credential resolves and is accepted."""
        metadata = {"courseCode": course.course_code, "slugId": course.slug_id}

        for user_id in users:
            credential = await self._resolve_credential(user_id)
            if credential is None:
                continue

            result.fetches += 1
            try:
                announcements = await self.fetcher.fetch_announcements(
                    credential, course.course_id, metadata
                )
            except Unauthorized as e:
                await self._report_unauthorized(
                    user_id,
                    f"Received 401 while fetching announcements for course {course.course_code}: {e}",
                    result
                )
                continue
            except Exception as e:
                result.failures += 1
                self.wlog.log_fetch_failure(
                    str(e), user_id=user_id, course_id=course.course_id, course_code=course.course_code
                )
                continue

            if announcements is not None:
                return announcements

        return None
