"""
FastAPI liveness API for the Halo watcher.

This module provides:
- Per-watcher heartbeat reporting
- Snapshot cache counts
"""
