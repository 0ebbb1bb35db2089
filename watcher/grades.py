"""
Grade watcher.

Grades are user-scoped: every active user of every active course is fetched
with their own credential. Only published grades are cached, and each new grade
is enriched with its full feedback before the event goes out.
"""

from typing import Any, Dict, Mapping, Optional

from watcher.base import BaseWatcher
from watcher.errors import EnrichmentFailure, Unauthorized
from watcher.models import CourseInfo, Credential, EventType, ResourceKey, ResourceType, TickResult
from watcher.ports import GradeFetcher

PUBLISHED = "PUBLISHED"


class GradeWatcher(BaseWatcher):
    """Emits a `grade` event for each newly published grade the user has not seen."""

    resource_type = ResourceType.GRADES
    event_type = EventType.GRADE

    def __init__(self, fetcher: GradeFetcher, **kwargs):
        super().__init__(**kwargs)
        self.fetcher = fetcher

    async def _run(self, result: TickResult) -> None:
        courses = await self._enumerate("active_courses", self.directory.active_courses)
        self.wlog.log_tick_start(len(courses))

        for course_id, course in courses.items():
            users = await self._enumerate(
                "active_users_in_course", self.directory.active_users_in_course, course_id
            )
            for user_id in users:
                try:
                    await self._process_user(course, user_id, result)
                except Exception as e:
                    result.failures += 1
                    self.wlog.log_fetch_failure(
                        f"unexpected error: {e}", user_id=user_id, course_code=course.course_code
                    )

    async def _process_user(self, course: CourseInfo, user_id: str, result: TickResult) -> None:
        credential = await self._resolve_credential(user_id)
        if credential is None:
            result.targets_skipped += 1
            return

        result.fetches += 1
        try:
            overview = await self.fetcher.fetch_grades(
                credential, course.slug_id, {"courseCode": course.course_code}
            )
        except Unauthorized as e:
            await self._report_unauthorized(
                user_id,
                f"Received 401 while fetching {user_id} grades for course {course.course_code}: {e}",
                result
            )
            return
        except Exception as e:
            result.failures += 1
            self.wlog.log_fetch_failure(str(e), user_id=user_id, course_code=course.course_code)
            return

        result.targets_processed += 1
        published = [grade for grade in overview.grades if grade.get("status") == PUBLISHED]
        key = ResourceKey(
            resource_type=self.resource_type, scope_id=course.course_id, sub_scope_id=user_id
        )

        for grade in await self._reconcile(key, published):
            try:
                feedback = await self._enrich(credential, grade, course, user_id, overview.final_grade)
            except Unauthorized as e:
                # The remaining grades would be fetched with the same rejected credential
                await self._report_unauthorized(
                    user_id,
                    f"Received 401 while fetching {user_id} feedback for course {course.course_code}: {e}",
                    result
                )
                return
            except EnrichmentFailure as e:
                result.failures += 1
                self.wlog.log_fetch_failure(str(e), user_id=user_id, course_code=course.course_code)
                continue

            self._emit(
                result,
                feedback,
                user_id=user_id,
                course_id=course.course_id,
                course_code=course.course_code
            )

    async def _enrich(
        self,
        credential: Credential,
        grade: Mapping[str, Any],
        course: CourseInfo,
        user_id: str,
        final_grade: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Fetch the full feedback for one grade."""
        metadata = {
            "courseCode": course.course_code,
            "finalGrade": final_grade,
            "uid": user_id,
            "slugId": course.slug_id,
        }
        try:
            return await self.fetcher.fetch_grade_feedback(credential, grade, metadata)
        except Unauthorized:
            raise
        except Exception as e:
            raise EnrichmentFailure(grade.get("id"), str(e)) from e
