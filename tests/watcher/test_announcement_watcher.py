"""
Test cases for the announcement watcher.
"""

import pytest

from conftest import FakeCredentials, FakeDirectory, iso_hours_ago, make_credential
from watcher.announcements import AnnouncementWatcher
from watcher.errors import DirectoryFailure, Transient, Unauthorized
from watcher.models import Credential, EventType, ResourceKey, ResourceType

KEY = ResourceKey(resource_type=ResourceType.ANNOUNCEMENTS, scope_id="C1")


def announcement(item_id, hours_ago=1.0):
    return {"id": item_id, "title": f"Post {item_id}", "publishDate": iso_hours_ago(hours_ago)}


@pytest.fixture
def directory(course):
    return FakeDirectory(courses={"C1": course}, enrollments={"C1": ["u1", "u2"]})


@pytest.fixture
def store_and_storage(make_store):
    return make_store(ResourceType.ANNOUNCEMENTS)


@pytest.fixture
def watcher(fetcher, directory, credentials, invalidation_sink, store_and_storage, event_bus):
    store, _ = store_and_storage
    return AnnouncementWatcher(
        fetcher,
        directory=directory,
        credentials=credentials,
        invalidation_sink=invalidation_sink,
        store=store,
        event_bus=event_bus
    )


class TestAnnouncementWatcher:
    """Test cases for AnnouncementWatcher."""

    def test_rejects_store_of_other_type(self, fetcher, directory, credentials, invalidation_sink,
                                         make_store, event_bus):
        """Test that a watcher refuses a store for another resource type."""
        store, _ = make_store(ResourceType.GRADES)

        with pytest.raises(ValueError):
            AnnouncementWatcher(
                fetcher, directory=directory, credentials=credentials,
                invalidation_sink=invalidation_sink, store=store, event_bus=event_bus
            )

    @pytest.mark.asyncio
    async def test_first_fetch_seeds_without_events(self, watcher, fetcher, store_and_storage,
                                                    event_bus, event_sink):
        """Test that a first observation persists the snapshot and emits nothing."""
        store, storage = store_and_storage
        fetcher.announcements[("u1", "C1")] = [announcement("a1"), announcement("a2")]

        result = await watcher.tick()
        await event_bus.drain()

        assert event_sink.events == []
        assert [item["id"] for item in store.get(KEY)] == ["a1", "a2"]
        assert storage.writes == ["C1"]
        assert result.events_emitted == 0
        assert result.targets_processed == 1

    @pytest.mark.asyncio
    async def test_new_recent_announcement_emits(self, watcher, fetcher, store_and_storage,
                                                 event_bus, event_sink):
        """Test that a grown collection emits one event per new recent item."""
        store, storage = store_and_storage
        store.set(KEY, [{"id": "a1"}])
        fetcher.announcements[("u1", "C1")] = [{"id": "a1"}, announcement("a2")]

        result = await watcher.tick()
        await event_bus.drain()

        assert [event.item_id for event in event_sink.events] == ["a2"]
        event = event_sink.events[0]
        assert event.event_type == EventType.ANNOUNCEMENT
        assert event.course_id == "C1"
        assert event.course_code == "CST-101"
        assert event.user_id is None
        assert storage.writes == ["C1"]
        assert result.events_emitted == 1

    @pytest.mark.asyncio
    async def test_old_announcement_is_filtered(self, watcher, fetcher, store_and_storage,
                                                event_bus, event_sink):
        """Test that a new but stale announcement is stored but not emitted."""
        store, storage = store_and_storage
        store.set(KEY, [{"id": "a1"}])
        fetcher.announcements[("u1", "C1")] = [{"id": "a1"}, announcement("a2", hours_ago=72)]

        await watcher.tick()
        await event_bus.drain()

        assert event_sink.events == []
        assert len(store.get(KEY)) == 2
        assert storage.writes == ["C1"]

    @pytest.mark.asyncio
    async def test_same_size_change_goes_unnoticed(self, watcher, fetcher, store_and_storage,
                                                   event_bus, event_sink):
        """Test that a membership swap with equal size emits nothing and is not persisted."""
        store, storage = store_and_storage
        store.set(KEY, [{"id": "a1"}])
        fetcher.announcements[("u1", "C1")] = [announcement("a2")]

        await watcher.tick()
        await event_bus.drain()

        assert event_sink.events == []
        assert storage.writes == []
        assert store.get(KEY)[0]["id"] == "a2"

    @pytest.mark.asyncio
    async def test_shrink_persists_without_events(self, watcher, fetcher, store_and_storage,
                                                  event_bus, event_sink):
        """Test that a removal is persisted but not reported."""
        store, storage = store_and_storage
        store.set(KEY, [{"id": "a1"}, {"id": "a2"}])
        fetcher.announcements[("u1", "C1")] = [{"id": "a1"}]

        await watcher.tick()
        await event_bus.drain()

        assert event_sink.events == []
        assert storage.writes == ["C1"]

    @pytest.mark.asyncio
    async def test_unauthorized_falls_through_to_next_user(self, watcher, fetcher, store_and_storage,
                                                           invalidation_sink, event_bus, event_sink):
        """Test that a rejected credential is reported and the next user is tried."""
        store, _ = store_and_storage
        store.set(KEY, [])
        fetcher.announcements[("u1", "C1")] = Unauthorized("401", user_id="u1")
        fetcher.announcements[("u2", "C1")] = [announcement("a1")]

        result = await watcher.tick()
        await event_bus.drain()

        assert [report[0] for report in invalidation_sink.reports] == ["u1"]
        assert [event.item_id for event in event_sink.events] == ["a1"]
        assert result.unauthorized == 1
        assert result.fetches == 2

    @pytest.mark.asyncio
    async def test_no_user_succeeds_leaves_snapshot(self, watcher, fetcher, store_and_storage,
                                                    event_bus, event_sink):
        """Test that a course where every fetch fails keeps its previous snapshot."""
        store, storage = store_and_storage
        store.set(KEY, [{"id": "a1"}])
        fetcher.announcements[("u1", "C1")] = Transient("boom")
        fetcher.announcements[("u2", "C1")] = Transient("boom")

        result = await watcher.tick()
        await event_bus.drain()

        assert store.get(KEY) == [{"id": "a1"}]
        assert storage.writes == []
        assert event_sink.events == []
        assert result.failures == 2
        assert result.targets_skipped == 1

    @pytest.mark.asyncio
    async def test_users_without_credentials_are_skipped(self, fetcher, course, invalidation_sink,
                                                         make_store, event_bus):
        """Test that users without a usable credential are passed over silently."""

        directory = FakeDirectory(courses={"C1": course}, enrollments={"C1": ["u0", "ux", "u2"]})
        credentials = FakeCredentials({
            "ux": Credential(user_id="ux", authorization_token="", context_token="c"),
            "u2": make_credential("u2"),
        })
        store, _ = make_store(ResourceType.ANNOUNCEMENTS)
        watcher = AnnouncementWatcher(
            fetcher, directory=directory, credentials=credentials,
            invalidation_sink=invalidation_sink, store=store, event_bus=event_bus
        )

        await watcher.tick()

        assert fetcher.calls == [("announcements", "u2", "C1")]
        assert invalidation_sink.reports == []

    @pytest.mark.asyncio
    async def test_course_without_users_is_skipped(self, watcher, fetcher, directory):
        """Test that a course with no active users is not fetched."""
        directory.enrollments["C1"] = []

        result = await watcher.tick()

        assert fetcher.calls == []
        assert result.targets_skipped == 1

    @pytest.mark.asyncio
    async def test_directory_failure_aborts_tick(self, watcher, directory, store_and_storage):
        """Test that an enumeration failure raises DirectoryFailure and writes nothing."""
        _, storage = store_and_storage
        directory.fail_on = "active_courses"

        with pytest.raises(DirectoryFailure):
            await watcher.tick()

        assert storage.writes == []

    @pytest.mark.asyncio
    async def test_only_user_unauthorized_leaves_snapshot(self, fetcher, course, invalidation_sink,
                                                          make_store, event_bus, event_sink):
        """Test that a 401 for the only usable user reports it and changes nothing else."""
        directory = FakeDirectory(courses={"C1": course}, enrollments={"C1": ["u1", "nocookie"]})
        credentials = FakeCredentials({"u1": make_credential("u1")})
        store, storage = make_store(ResourceType.ANNOUNCEMENTS)
        previous = [{"id": "a1"}]
        store.set(KEY, previous)
        fetcher.announcements[("u1", "C1")] = Unauthorized("401", user_id="u1")
        watcher = AnnouncementWatcher(
            fetcher, directory=directory, credentials=credentials,
            invalidation_sink=invalidation_sink, store=store, event_bus=event_bus
        )

        result = await watcher.tick()
        await event_bus.drain()

        assert store.get(KEY) is previous
        assert store.get(KEY) == [{"id": "a1"}]
        assert [report[0] for report in invalidation_sink.reports] == ["u1"]
        assert event_sink.events == []
        assert storage.writes == []
        assert result.unauthorized == 1
        assert result.targets_skipped == 1
