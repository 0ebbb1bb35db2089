"""
Shared machinery for the Halo watchers.

A watcher tick enumerates targets, fetches each one with a resolved credential,
reconciles the result against the snapshot store and emits an event for every
new item that passes the resource's admission filter.
"""

import time
from typing import Any, Awaitable, Callable, List, Mapping, Optional, TypeVar

from utilities.logger import WatcherLogger
from watcher.diff import diff_new_items
from watcher.errors import DirectoryFailure
from watcher.event_bus import EventBus
from watcher.models import (
    Credential, DomainEvent, EventType, ResourceKey, ResourceType, Snapshot,
    TickResult, is_valid_credential
)
from watcher.ports import CredentialInvalidationSink, CredentialResolver, Directory
from watcher.recency import DEFAULT_ANNOUNCEMENT_WINDOW_HOURS, ItemFilter, recency_filter_for
from watcher.snapshot_store import SnapshotStore

T = TypeVar("T")


class BaseWatcher:
    """Common tick lifecycle, credential handling and snapshot reconciliation."""

    resource_type: ResourceType
    event_type: EventType

    def __init__(
        self,
        directory: Directory,
        credentials: CredentialResolver,
        invalidation_sink: CredentialInvalidationSink,
        store: SnapshotStore,
        event_bus: EventBus,
        admits: Optional[ItemFilter] = None,
        window_hours: int = DEFAULT_ANNOUNCEMENT_WINDOW_HOURS,
    ):
        """
        Initialize watcher.

        Args:
            directory: Enumerates courses and users for each tick
            credentials: Resolves a user's Halo cookie
            invalidation_sink: Receives credentials rejected by Halo
            store: Snapshot store for this watcher's resource type
            event_bus: Destination for emitted events
            admits: Override for the per-item admission filter
            window_hours: Announcement recency window
        """
        if store.resource_type != self.resource_type:
            raise ValueError(
                f"{type(self).__name__} needs a {self.resource_type.value} store, "
                f"got {store.resource_type.value}"
            )
        self.directory = directory
        self.credentials = credentials
        self.invalidation_sink = invalidation_sink
        self.store = store
        self.event_bus = event_bus
        self.admits = admits or recency_filter_for(self.resource_type, window_hours)
        self.wlog = WatcherLogger(type(self).__module__, self.resource_type.value)

    @property
    def name(self) -> str:
        return self.resource_type.value

    async def tick(self) -> TickResult:
        """
        Run one full enumerate-fetch-diff-emit cycle.

        Raises:
            DirectoryFailure: target enumeration failed; nothing was written
        """
        result = TickResult(watcher=self.resource_type)
        started = time.monotonic()

        await self._run(result)

        result.duration_seconds = time.monotonic() - started
        self.wlog.log_tick_complete(result)
        return result

    async def _run(self, result: TickResult) -> None:
        raise NotImplementedError

    async def _enumerate(self, operation: str, call: Callable[..., Awaitable[T]], *args: Any) -> T:
        try:
            return await call(*args)
        except Exception as e:
            raise DirectoryFailure(operation, str(e)) from e

    async def _resolve_credential(self, user_id: str) -> Optional[Credential]:
        """Return a usable credential for `user_id`, or None to skip the user."""
        try:
            credential = await self.credentials.cookie_for(user_id)
        except Exception as e:
            self.wlog.log_fetch_failure(f"credential lookup failed: {e}", user_id=user_id)
            return None
        if not is_valid_credential(credential):
            return None
        return credential

    async def _report_unauthorized(self, user_id: str, reason: str, result: TickResult) -> None:
        result.unauthorized += 1
        self.wlog.log_unauthorized(user_id, reason)
        try:
            await self.invalidation_sink.report(user_id, reason)
        except Exception as e:
            self.wlog.log_fetch_failure(f"credential invalidation report failed: {e}", user_id=user_id)

    async def _reconcile(self, key: ResourceKey, new_items: Snapshot) -> List[Mapping[str, Any]]:
        """
        Replace the snapshot for `key` and select the items to notify about.

        A first fetch only seeds the store. An unchanged collection size means
        nothing is reported or persisted, even if membership changed.
        """
        old_items = self.store.get(key)
        self.store.set(key, new_items)

        if old_items is None:
            await self.store.persist(key, new_items)
            return []

        if len(new_items) == len(old_items):
            return []

        self.wlog.log_change(key.path, len(old_items), len(new_items))
        await self.store.persist(key, new_items)

        return [item for item in diff_new_items(new_items, old_items) if self.admits(item)]

    def _emit(self, result: TickResult, item: Mapping[str, Any], **routing: Any) -> None:
        event = DomainEvent(event_type=self.event_type, item=dict(item), **routing)
        self.event_bus.emit(event)
        result.events_emitted += 1
        self.wlog.log_event_emitted(
            self.event_type.value,
            event.item_id,
            user_id=routing.get("user_id"),
            course_id=routing.get("course_id")
        )
