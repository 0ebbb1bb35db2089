"""
Snapshot store for last-known remote state.

This module provides:
- An in-memory map from resource key to the last fetched collection
- A JSON file mirror, one file per key, loaded eagerly at startup
- Best-effort persistence that never fails the in-memory update
"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Dict, Optional

import structlog

from watcher.models import ResourceKey, ResourceType, Snapshot
from watcher.ports import SnapshotStorage

logger = structlog.get_logger(__name__)


class JsonFileSnapshotStorage:
    """Stores each snapshot as `<root>/<key path>.json`."""

    def __init__(self, root: Path):
        """
        Initialize file storage.

        Args:
            root: Directory holding the snapshot files of one resource type
        """
        self.root = Path(root)

    def _file_for(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def write(self, key: str, snapshot: Snapshot) -> None:
        """Write one snapshot, replacing the previous file atomically."""
        path = self._file_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Unique temp name per write; overlapping ticks may persist the same key
        with tempfile.NamedTemporaryFile(
            'w', encoding='utf-8', dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp", delete=False
        ) as f:
            tmp_path = Path(f.name)
            try:
                json.dump(snapshot, f, default=str)
            except Exception:
                f.close()
                tmp_path.unlink(missing_ok=True)
                raise
        tmp_path.replace(path)

    def read_all(self) -> Dict[str, Snapshot]:
        """Read every snapshot under the root; a missing root yields nothing."""
        snapshots: Dict[str, Snapshot] = {}
        if not self.root.exists():
            return snapshots

        for path in sorted(self.root.rglob("*.json")):
            key = path.relative_to(self.root).with_suffix("").as_posix()
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable snapshot file", path=str(path), error=str(e))
                continue
            if not isinstance(data, list):
                logger.warning("Skipping snapshot file without a collection", path=str(path))
                continue
            snapshots[key] = data

        return snapshots


class SnapshotStore:
    """Last-known state per resource key for one resource type."""

    def __init__(self, resource_type: ResourceType, storage: SnapshotStorage):
        """
        Initialize snapshot store.

        Args:
            resource_type: Resource type whose keys this store holds
            storage: Durable mirror for the in-memory snapshots
        """
        self.resource_type = resource_type
        self.storage = storage
        self._snapshots: Dict[ResourceKey, Snapshot] = {}
        self.logger = logger.bind(component="snapshot_store", resource_type=resource_type.value)

    def __len__(self) -> int:
        return len(self._snapshots)

    async def load(self) -> int:
        """
        Read all durable snapshots into memory.

        Returns:
            Number of snapshots loaded
        """
        stored = await asyncio.to_thread(self.storage.read_all)
        loaded = 0
        for path, snapshot in stored.items():
            try:
                key = ResourceKey.from_path(self.resource_type, path)
            except ValueError as e:
                self.logger.warning("Ignoring snapshot with invalid key", path=path, error=str(e))
                continue
            self._snapshots[key] = snapshot
            loaded += 1

        self.logger.info("Loaded snapshots", count=loaded)
        return loaded

    def get(self, key: ResourceKey) -> Optional[Snapshot]:
        """Return the snapshot for `key`, or None if it was never populated."""
        return self._snapshots.get(key)

    def set(self, key: ResourceKey, snapshot: Snapshot) -> None:
        self._snapshots[key] = snapshot

    async def persist(self, key: ResourceKey, snapshot: Snapshot) -> bool:
        """
        Write a snapshot to durable storage.

        Failures are logged and swallowed; the in-memory value is kept.

        Returns:
            True if the write succeeded
        """
        try:
            await asyncio.to_thread(self.storage.write, key.path, snapshot)
            self.logger.debug("Persisted snapshot", key=key.path, items=len(snapshot))
            return True
        except Exception as e:
            self.logger.error(
                "Failed to persist snapshot",
                key=key.path,
                error=str(e)
            )
            return False


def build_snapshot_stores(root: Path) -> Dict[ResourceType, SnapshotStore]:
    """Create one file-backed store per resource type under `root`."""
    return {
        resource_type: SnapshotStore(
            resource_type, JsonFileSnapshotStorage(Path(root) / resource_type.value)
        )
        for resource_type in ResourceType
    }
