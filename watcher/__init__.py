"""
Watcher package: change detection for Halo course resources.

This package contains:
- Fixed-interval watcher scheduling
- Snapshot store with durable JSON mirror
- Additions-only diffing and recency filters
- Announcement, grade and inbox message watchers
- Event fan-out and heartbeat tracking
"""

__version__ = "1.0.0"
