"""
Main entry point for the Halo watcher.

Starts the announcement, grade and inbox watchers, either as a daemon polling
on a fixed interval or for a single pass with `--once`.
"""

import asyncio
import sys
from typing import Dict, List, Optional

import structlog
import uvicorn

from api.main import create_app
from directory.credentials import CookieStore
from directory.database import DirectoryManager
from halo.client import HaloClient
from utilities.config import WatcherSettings, config
from utilities.logger import setup_logging
from watcher.announcements import AnnouncementWatcher
from watcher.base import BaseWatcher
from watcher.event_bus import EventBus, LogEventSink
from watcher.grades import GradeWatcher
from watcher.health import HealthManager
from watcher.inbox import InboxMessageWatcher
from watcher.models import ResourceType, WatcherConfig
from watcher.scheduler_service import WatcherService
from watcher.snapshot_store import SnapshotStore, build_snapshot_stores

USAGE = "Usage: python watcher_main.py [--once|--daemon]"


def build_watcher_config(settings: WatcherSettings) -> WatcherConfig:
    """Extract the scheduling and filter parameters from the settings."""
    return WatcherConfig(
        poll_interval_seconds=settings.poll_interval_seconds,
        max_overlapping_ticks=settings.max_overlapping_ticks,
        timezone=settings.timezone,
        enable_announcements=settings.enable_announcements,
        enable_grades=settings.enable_grades,
        enable_inbox_messages=settings.enable_inbox_messages,
        announcement_recency_hours=settings.announcement_recency_hours,
        heartbeat_stale_seconds=settings.heartbeat_stale_seconds
    )


def build_watchers(
    watcher_config: WatcherConfig,
    client: HaloClient,
    directory: DirectoryManager,
    cookies: CookieStore,
    stores: Dict[ResourceType, SnapshotStore],
    event_bus: EventBus
) -> List[BaseWatcher]:
    """Create the enabled watchers around shared collaborators."""
    shared = dict(
        directory=directory,
        credentials=cookies,
        invalidation_sink=cookies,
        event_bus=event_bus,
        window_hours=watcher_config.announcement_recency_hours
    )

    watchers: List[BaseWatcher] = []
    if watcher_config.enable_announcements:
        watchers.append(AnnouncementWatcher(client, store=stores[ResourceType.ANNOUNCEMENTS], **shared))
    if watcher_config.enable_grades:
        watchers.append(GradeWatcher(client, store=stores[ResourceType.GRADES], **shared))
    if watcher_config.enable_inbox_messages:
        watchers.append(InboxMessageWatcher(client, store=stores[ResourceType.INBOX_MESSAGES], **shared))
    return watchers


def parse_args(argv: List[str]) -> Optional[bool]:
    """Return True for run-once mode, False for daemon mode, None if unrecognized."""
    if len(argv) <= 1 or argv[1] == '--daemon':
        return False
    if argv[1] == '--once':
        return True
    return None


async def main():
    """Main function to start the watcher service."""
    run_once = parse_args(sys.argv)
    if run_once is None:
        print(f"Unknown argument: {sys.argv[1]}")
        print(USAGE)
        sys.exit(1)

    # Setup logging
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger = structlog.get_logger(__name__)
    logger.info("Starting Halo watcher", mode="once" if run_once else "daemon")

    directory = DirectoryManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database
    )
    server_task: Optional[asyncio.Task] = None
    server: Optional[uvicorn.Server] = None

    async with HaloClient(
        gateway_url=config.halo_gateway_url,
        validate_url=config.halo_validate_url,
        timeout=config.request_timeout,
        rate_limit_per_second=config.rate_limit_per_second,
        inbox_page_size=config.inbox_page_size,
        headers=config.get_headers()
    ) as client:
        try:
            await directory.connect()
            logger.info("Directory statistics", **await directory.get_statistics())

            cookies = CookieStore(directory.database, cache_ttl_seconds=config.cookie_cache_ttl_seconds)
            stores = build_snapshot_stores(config.get_snapshot_dir_path())
            for store in stores.values():
                await store.load()

            watcher_config = build_watcher_config(config)
            event_bus = EventBus([LogEventSink()])
            health = HealthManager(stale_after_seconds=watcher_config.heartbeat_stale_seconds)
            watchers = build_watchers(watcher_config, client, directory, cookies, stores, event_bus)
            service = WatcherService(watcher_config, watchers, health, event_bus)

            logger.info(
                "Watcher service configured",
                watchers=[watcher.name for watcher in watchers],
                poll_interval_seconds=watcher_config.poll_interval_seconds,
                snapshot_dir=str(config.get_snapshot_dir_path()),
                health_api_enabled=config.health_api_enabled and not run_once
            )

            if config.health_api_enabled and not run_once:
                server = uvicorn.Server(uvicorn.Config(
                    create_app(health, stores, debug=config.debug),
                    host=config.health_api_host,
                    port=config.health_api_port,
                    log_level=config.log_level.lower(),
                    access_log=False
                ))
                server_task = asyncio.create_task(server.serve())
                # Stopping the API stops the watchers as well
                server_task.add_done_callback(lambda _: service.request_stop())

            await service.start(run_once=run_once)

        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, shutting down...")
        except Exception as e:
            logger.error("Failed to run watcher service", error=str(e))
            sys.exit(1)
        finally:
            if server is not None:
                server.should_exit = True
            if server_task is not None:
                await server_task
            await directory.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
