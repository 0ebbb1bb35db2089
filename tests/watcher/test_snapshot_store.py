"""
Test cases for the snapshot store and its JSON file mirror.
"""

import asyncio
import json

import pytest

from watcher.models import ResourceKey, ResourceType
from watcher.snapshot_store import JsonFileSnapshotStorage, SnapshotStore, build_snapshot_stores


def grades_key(course_id="C1", user_id="u1"):
    return ResourceKey(resource_type=ResourceType.GRADES, scope_id=course_id, sub_scope_id=user_id)


class TestJsonFileSnapshotStorage:
    """Test cases for JsonFileSnapshotStorage."""

    def test_write_creates_nested_file(self, tmp_path):
        """Test that a two-part key becomes a nested JSON file."""
        storage = JsonFileSnapshotStorage(tmp_path)

        storage.write("C1/u1", [{"id": "g1"}])

        path = tmp_path / "C1" / "u1.json"
        assert json.loads(path.read_text()) == [{"id": "g1"}]
        assert list((tmp_path / "C1").glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_concurrent_writes_to_one_key(self, tmp_path):
        """Test that overlapping writes of the same key each land whole and leave no temp files."""
        storage = JsonFileSnapshotStorage(tmp_path)
        snapshots = [[{"id": f"item-{n}"}] * n for n in range(1, 21)]

        await asyncio.gather(*(asyncio.to_thread(storage.write, "C1/u1", s) for s in snapshots))

        assert storage.read_all()["C1/u1"] in snapshots
        assert list((tmp_path / "C1").glob("*.tmp")) == []

    def test_read_all(self, tmp_path):
        """Test reading every stored snapshot back by key."""
        storage = JsonFileSnapshotStorage(tmp_path)
        storage.write("C1", [{"id": "a"}])
        storage.write("C2/u9", [])

        assert storage.read_all() == {"C1": [{"id": "a"}], "C2/u9": []}

    def test_missing_root(self, tmp_path):
        """Test that a missing directory reads as empty."""
        assert JsonFileSnapshotStorage(tmp_path / "absent").read_all() == {}

    def test_skips_corrupt_files(self, tmp_path):
        """Test that unreadable or non-list files are skipped."""
        (tmp_path / "bad.json").write_text("{not json")
        (tmp_path / "object.json").write_text('{"id": 1}')
        (tmp_path / "good.json").write_text('[{"id": 1}]')

        assert JsonFileSnapshotStorage(tmp_path).read_all() == {"good": [{"id": 1}]}


class TestSnapshotStore:
    """Test cases for SnapshotStore."""

    def test_get_absent_key(self, make_store):
        """Test that a never-populated key reads as None, not empty."""
        store, _ = make_store(ResourceType.GRADES)

        assert store.get(grades_key()) is None

    def test_set_then_get(self, make_store):
        """Test in-memory replacement."""
        store, storage = make_store(ResourceType.GRADES)

        store.set(grades_key(), [{"id": "g1"}])

        assert store.get(grades_key()) == [{"id": "g1"}]
        assert storage.writes == []

    def test_empty_snapshot_is_distinct_from_absent(self, make_store):
        """Test that an empty collection is a populated snapshot."""
        store, _ = make_store(ResourceType.GRADES)
        store.set(grades_key(), [])

        assert store.get(grades_key()) == []
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_persist_writes_key_path(self, make_store):
        """Test that persistence uses the key path."""
        store, storage = make_store(ResourceType.GRADES)

        assert await store.persist(grades_key(), [{"id": "g1"}]) is True
        assert storage.data == {"C1/u1": [{"id": "g1"}]}

    @pytest.mark.asyncio
    async def test_persist_failure_is_swallowed(self, make_store):
        """Test that a failing write keeps the in-memory value and reports False."""
        store, _ = make_store(ResourceType.GRADES, fail_writes=True)
        store.set(grades_key(), [{"id": "g1"}])

        assert await store.persist(grades_key(), [{"id": "g1"}]) is False
        assert store.get(grades_key()) == [{"id": "g1"}]

    @pytest.mark.asyncio
    async def test_load(self, make_store):
        """Test eager loading from durable storage."""
        store, _ = make_store(
            ResourceType.GRADES,
            initial={"C1/u1": [{"id": "g1"}], "C2/u2": []}
        )

        assert await store.load() == 2
        assert store.get(grades_key()) == [{"id": "g1"}]
        assert store.get(grades_key("C2", "u2")) == []

    @pytest.mark.asyncio
    async def test_load_ignores_invalid_keys(self, make_store):
        """Test that keys with too many segments are ignored."""
        store, _ = make_store(ResourceType.INBOX_MESSAGES, initial={"a/b/c": [], "u1/F1": []})

        assert await store.load() == 1

    @pytest.mark.asyncio
    async def test_round_trip_through_files(self, tmp_path):
        """Test that persisted snapshots survive a restart."""
        stores = build_snapshot_stores(tmp_path)
        key = ResourceKey(resource_type=ResourceType.INBOX_MESSAGES, scope_id="u1", sub_scope_id="F1")
        await stores[ResourceType.INBOX_MESSAGES].persist(key, [{"id": "p1", "isRead": False}])

        restarted = build_snapshot_stores(tmp_path)
        await restarted[ResourceType.INBOX_MESSAGES].load()

        assert restarted[ResourceType.INBOX_MESSAGES].get(key) == [{"id": "p1", "isRead": False}]
        assert (tmp_path / "inbox_messages" / "u1" / "F1.json").exists()
        assert len(restarted[ResourceType.GRADES]) == 0
