"""
Heartbeat registry for the watchers.

Each watcher type records a heartbeat after every successful tick; the health
API reports a watcher as stale once its last heartbeat is older than the
configured threshold.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)


class HealthManager:
    """Tracks the last successful tick per watcher."""

    def __init__(self, watchers: Iterable[str] = (), stale_after_seconds: int = 120):
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self._heartbeats: Dict[str, Optional[datetime]] = {name: None for name in watchers}

    def register(self, name: str) -> None:
        self._heartbeats.setdefault(name, None)

    def record(self, name: str, at: Optional[datetime] = None) -> None:
        self._heartbeats[name] = at or datetime.now(timezone.utc)
        logger.debug("Heartbeat recorded", watcher=name)

    def last_heartbeat(self, name: str) -> Optional[datetime]:
        return self._heartbeats.get(name)

    def is_alive(self, name: str, now: Optional[datetime] = None) -> bool:
        last = self._heartbeats.get(name)
        if last is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - last <= self.stale_after

    def status(self, now: Optional[datetime] = None) -> Dict[str, Dict]:
        """Heartbeat and liveness for every registered watcher."""
        now = now or datetime.now(timezone.utc)
        return {
            name: {
                "last_heartbeat": last,
                "alive": self.is_alive(name, now),
            }
            for name, last in self._heartbeats.items()
        }

    def all_alive(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return bool(self._heartbeats) and all(self.is_alive(name, now) for name in self._heartbeats)
