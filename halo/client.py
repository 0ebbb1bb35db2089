"""
Async client for the Halo GraphQL gateway.

Implements the announcement, grade and inbox fetchers used by the watchers.
Every failure is classified as Unauthorized (credential rejected) or Transient
(anything else); nothing is retried here, the next tick retries implicitly.
"""

from typing import Any, Dict, List, Mapping, Optional

import httpx
import structlog
from asyncio_throttle import Throttler

from halo import queries
from watcher.errors import Transient, Unauthorized
from watcher.models import Credential, GradeOverview, InboxForum, Snapshot

logger = structlog.get_logger(__name__)

PUBLISHED = "PUBLISHED"


class HaloClient:
    """
    GraphQL client for Halo with request throttling.
    """

    def __init__(
        self,
        gateway_url: str,
        validate_url: str,
        timeout: float = 30,
        rate_limit_per_second: float = 5.0,
        inbox_page_size: int = 10,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            gateway_url: GraphQL gateway endpoint
            validate_url: Token validation endpoint, used to resolve the Halo user id
            timeout: Per-request timeout in seconds
            rate_limit_per_second: Upper bound on outgoing requests
            inbox_page_size: Number of posts fetched per inbox forum
            headers: Default headers sent with every request
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.gateway_url = gateway_url
        self.validate_url = validate_url
        self.inbox_page_size = inbox_page_size
        self.throttler = Throttler(rate_limit=rate_limit_per_second)
        self.logger = logger.bind(component="halo_client")

        # HTTP client configuration
        self.client_config = {
            "timeout": timeout,
            "headers": headers or {},
            "follow_redirects": True,
            "limits": httpx.Limits(max_keepalive_connections=20, max_connections=100)
        }
        if transport is not None:
            self.client_config["transport"] = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> 'HaloClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(**self.client_config)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _auth_headers(credential: Credential) -> Dict[str, str]:
        return {
            "authorization": f"Bearer {credential.authorization_token}",
            "contexttoken": f"Bearer {credential.context_token}",
        }

    async def _post(self, url: str, credential: Credential, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded body, classifying failures."""
        async with self.throttler:
            try:
                response = await self.client.post(url, json=payload, headers=self._auth_headers(credential))
            except httpx.HTTPError as e:
                raise Transient(f"Request to {url} failed: {e}") from e

        if response.status_code == 401:
            raise Unauthorized("Halo responded with HTTP 401", user_id=credential.user_id)

        try:
            body = response.json()
        except ValueError as e:
            raise Transient(f"Invalid JSON from {url} (HTTP {response.status_code})") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            message = str((errors[0] or {}).get("message", "")) if isinstance(errors[0], dict) else str(errors[0])
            if "401" in message:
                raise Unauthorized(message, user_id=credential.user_id)
            raise Transient(f"GraphQL error: {message}")

        if response.is_error:
            raise Transient(f"Halo responded with HTTP {response.status_code}")

        if not isinstance(body, dict):
            raise Transient(f"Unexpected response body from {url}")
        return body

    async def _graphql(
        self,
        credential: Credential,
        operation_name: str,
        query: str,
        variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"operationName": operation_name, "query": query}
        if variables is not None:
            payload["variables"] = variables

        body = await self._post(self.gateway_url, credential, payload)
        data = body.get("data")
        if not isinstance(data, dict):
            raise Transient(f"{operation_name} returned no data")
        return data

    async def fetch_announcements(
        self, credential: Credential, course_id: str, metadata: Mapping[str, Any]
    ) -> Snapshot:
        """
        Get all published announcements for a course.

        Each post is annotated with `courseClassId` and `metadata`.
        """
        data = await self._graphql(
            credential, "GetAnnouncementsStudent", queries.ANNOUNCEMENTS, {"courseClassId": course_id}
        )
        try:
            announcements = data["announcements"]
            forums = announcements if isinstance(announcements, list) else [announcements]
            posts = [post for forum in forums if forum for post in (forum.get("posts") or [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise Transient(f"Malformed announcements payload: {e}") from e

        return [
            {**post, "courseClassId": course_id, "metadata": dict(metadata)}
            for post in posts
            if post.get("postStatus") == PUBLISHED
        ]

    async def fetch_grades(
        self, credential: Credential, slug_id: str, metadata: Mapping[str, Any]
    ) -> GradeOverview:
        """Get all grades of the credential's user for one course."""
        data = await self._graphql(
            credential,
            "GradeOverview",
            queries.GRADE_OVERVIEW,
            {"courseClassSlugId": slug_id, "courseClassUserIds": ""}
        )
        try:
            overview = data["gradeOverview"]
            if not overview:
                return GradeOverview()
            entry = overview[0]
            grades = [{**grade, "metadata": dict(metadata)} for grade in entry.get("grades") or []]
            return GradeOverview(grades=grades, final_grade=entry.get("finalGrade"))
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise Transient(f"Malformed grade overview payload: {e}") from e

    async def get_user_id(self, credential: Credential) -> str:
        """Resolve the Halo user id behind a credential."""
        body = await self._post(
            self.validate_url,
            credential,
            {"userToken": credential.authorization_token, "contextToken": credential.context_token}
        )
        try:
            return body["payload"]["userid"]
        except (KeyError, TypeError) as e:
            raise Transient(f"Malformed token validation payload: {e}") from e

    async def fetch_grade_feedback(
        self, credential: Credential, grade: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Get the full feedback for one grade, annotated with `metadata`."""
        try:
            assessment_id = grade["assessment"]["id"]
        except (KeyError, TypeError) as e:
            raise Transient(f"Grade {grade.get('id')} has no assessment id") from e

        halo_user_id = await self.get_user_id(credential)
        data = await self._graphql(
            credential,
            "AssessmentFeedback",
            queries.ASSESSMENT_FEEDBACK,
            {"assessmentId": assessment_id, "userId": halo_user_id}
        )
        feedback = data.get("assessmentFeedback")
        if not isinstance(feedback, dict):
            raise Transient(f"No feedback returned for assessment {assessment_id}")
        return {**feedback, "metadata": dict(metadata)}

    async def fetch_inbox_forums(self, credential: Credential) -> List[InboxForum]:
        """List the user's inbox forums with their unread counts."""
        data = await self._graphql(credential, "GetInboxLeftPanelNotification", queries.INBOX_FORUMS)
        try:
            panels = data["getInboxLeftPanelNotification"] or []
            return [
                InboxForum(forum_id=forum["forumId"], unread_count=forum.get("unreadCount") or 0)
                for panel in panels
                for forum in (panel.get("inboxForumCount") or [])
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise Transient(f"Malformed inbox payload: {e}") from e

    async def fetch_forum_posts(self, credential: Credential, forum_id: str) -> Snapshot:
        """Get the posts of one inbox forum."""
        data = await self._graphql(
            credential,
            "getPostsByInboxForumId",
            queries.INBOX_FORUM_POSTS,
            {"forumId": forum_id, "pgNum": 1, "pgSize": self.inbox_page_size}
        )
        posts = data.get("getPostsForInboxForum")
        if not isinstance(posts, list):
            raise Transient(f"Malformed posts payload for forum {forum_id}")
        return posts
