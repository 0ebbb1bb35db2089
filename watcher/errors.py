"""
Error taxonomy for the watchers.

Unauthorized and Transient are raised by resource fetchers, EnrichmentFailure by
the grade watcher's secondary fetch, DirectoryFailure when target enumeration
fails and the whole tick has to be abandoned.
"""

from typing import Any, Optional


class WatcherError(Exception):
    """Base class for watcher errors."""


class Unauthorized(WatcherError):
    """The supplied credential is no longer accepted by Halo."""

    def __init__(self, message: str = "Unauthorized", user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class Transient(WatcherError):
    """Any other fetch failure: network, remote 5xx, GraphQL or parse errors."""


class EnrichmentFailure(WatcherError):
    """Secondary fetch for a single diffed item failed."""

    def __init__(self, item_id: Any, message: str):
        super().__init__(f"Enrichment failed for item {item_id}: {message}")
        self.item_id = item_id


class DirectoryFailure(WatcherError):
    """Target enumeration failed; the tick is aborted."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"Directory operation '{operation}' failed: {message}")
        self.operation = operation
