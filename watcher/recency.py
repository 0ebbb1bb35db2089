"""
Per-item admission filters applied after diffing and before emission.

- Announcements must have been published or started within the recency window,
  so a restart does not replay a backlog of old announcements.
- Grades the user already opened in Halo are not re-notified.
- Inbox messages already read are not re-notified.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from watcher.models import ResourceType

DEFAULT_ANNOUNCEMENT_WINDOW_HOURS = 48

ItemFilter = Callable[[Mapping[str, Any]], bool]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from Halo; naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_recent_announcement(
    item: Mapping[str, Any],
    now: Optional[datetime] = None,
    window_hours: int = DEFAULT_ANNOUNCEMENT_WINDOW_HOURS,
) -> bool:
    """True if `publishDate` or `startDate` falls inside the window."""
    now = now or datetime.now(timezone.utc)
    threshold = now - timedelta(hours=window_hours)

    for field in ("publishDate", "startDate"):
        timestamp = parse_timestamp(item.get(field))
        if timestamp is not None and timestamp > threshold:
            return True
    return False


def is_unseen_grade(item: Mapping[str, Any]) -> bool:
    return not item.get("userLastSeenDate")


def is_unread_inbox_message(item: Mapping[str, Any]) -> bool:
    return not item.get("isRead")


def recency_filter_for(
    resource_type: ResourceType,
    window_hours: int = DEFAULT_ANNOUNCEMENT_WINDOW_HOURS,
) -> ItemFilter:
    """Return the admission predicate for a resource type."""
    if resource_type == ResourceType.ANNOUNCEMENTS:
        return lambda item: is_recent_announcement(item, window_hours=window_hours)
    if resource_type == ResourceType.GRADES:
        return is_unseen_grade
    if resource_type == ResourceType.INBOX_MESSAGES:
        return is_unread_inbox_message
    raise ValueError(f"No recency filter for {resource_type}")
