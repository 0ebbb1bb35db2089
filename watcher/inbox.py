"""
Inbox message watcher.

Inbox forums are listed per user together with their unread counters, and the
posts of a forum are only fetched when the counter says something changed.
"""

from typing import Optional

from watcher.base import BaseWatcher
from watcher.errors import Unauthorized
from watcher.models import EventType, ResourceKey, ResourceType, Snapshot, TickResult
from watcher.ports import InboxFetcher


def cached_unread_count(snapshot: Optional[Snapshot]) -> int:
    return sum(1 for post in snapshot or [] if not post.get("isRead"))


def should_fetch_posts(old_posts: Optional[Snapshot], unread_count: int) -> bool:
    """
    Decide whether a forum's posts need fetching.

    A forum with a snapshot is skipped when it has no unread posts, or when the
    unread count matches the cached unread posts (already notified, not yet read).
    """
    if old_posts is None:
        return True
    if not unread_count:
        return False
    return unread_count != cached_unread_count(old_posts)


class InboxMessageWatcher(BaseWatcher):
    """Emits an `inbox_message` event for each new unread inbox post."""

    resource_type = ResourceType.INBOX_MESSAGES
    event_type = EventType.INBOX_MESSAGE

    def __init__(self, fetcher: InboxFetcher, **kwargs):
        super().__init__(**kwargs)
        self.fetcher = fetcher

    async def _run(self, result: TickResult) -> None:
        users = await self._enumerate("all_active_users", self.directory.all_active_users)
        self.wlog.log_tick_start(len(users))

        for user_id in users:
            try:
                await self._process_user(user_id, result)
            except Exception as e:
                result.failures += 1
                self.wlog.log_fetch_failure(f"unexpected error: {e}", user_id=user_id)

    async def _process_user(self, user_id: str, result: TickResult) -> None:
        credential = await self._resolve_credential(user_id)
        if credential is None:
            result.targets_skipped += 1
            return

        result.fetches += 1
        try:
            forums = await self.fetcher.fetch_inbox_forums(credential)
        except Unauthorized as e:
            await self._report_unauthorized(
                user_id, f"Received 401 while fetching {user_id} inbox notifications: {e}", result
            )
            return
        except Exception as e:
            result.failures += 1
            self.wlog.log_fetch_failure(str(e), user_id=user_id)
            return

        for forum in forums:
            key = ResourceKey(
                resource_type=self.resource_type, scope_id=user_id, sub_scope_id=forum.forum_id
            )
            if not should_fetch_posts(self.store.get(key), forum.unread_count):
                result.targets_skipped += 1
                continue

            result.fetches += 1
            try:
                posts = await self.fetcher.fetch_forum_posts(credential, forum.forum_id)
            except Unauthorized as e:
                # The credential is bad for every remaining forum as well
                await self._report_unauthorized(
                    user_id, f"Received 401 while fetching inbox forum {forum.forum_id}: {e}", result
                )
                return
            except Exception as e:
                result.failures += 1
                self.wlog.log_fetch_failure(str(e), user_id=user_id, forum_id=forum.forum_id)
                continue

            result.targets_processed += 1
            for post in await self._reconcile(key, posts):
                self._emit(result, {**post, "metadata": {"uid": user_id}}, user_id=user_id)
