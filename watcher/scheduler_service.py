"""
Scheduler service for the Halo watchers.

This module provides:
- Fixed-interval polling of every watcher with APScheduler
- Heartbeat recording after each successful tick
- Run-once mode for manual checks
- Graceful shutdown that drains in-flight event deliveries
"""

import asyncio
import signal
import time
from typing import Dict, List

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES

from watcher.base import BaseWatcher
from watcher.errors import DirectoryFailure
from watcher.event_bus import EventBus
from watcher.health import HealthManager
from watcher.models import WatcherConfig

logger = structlog.get_logger(__name__)


class WatcherService:
    """Runs each watcher on its own fixed-period timer."""

    def __init__(
        self,
        config: WatcherConfig,
        watchers: List[BaseWatcher],
        health: HealthManager,
        event_bus: EventBus
    ):
        """
        Initialize watcher service.

        Args:
            config: Watcher configuration
            watchers: Watchers to schedule, one job each
            health: Heartbeat registry updated after successful ticks
            event_bus: Event bus drained on shutdown
        """
        self.config = config
        self.watchers = watchers
        self.health = health
        self.event_bus = event_bus
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.logger = logger.bind(component="watcher_service")
        self._stop_event = asyncio.Event()

        for watcher in watchers:
            self.health.register(watcher.name)

        self._setup_scheduler_listeners()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            retval = event.retval if isinstance(event.retval, dict) else {}
            self.logger.debug(
                "Job executed",
                job_id=event.job_id,
                success=retval.get('success'),
                duration=retval.get('duration', 0)
            )

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        def job_max_instances_listener(event):
            self.logger.warning(
                "Tick skipped, too many overlapping runs",
                job_id=event.job_id,
                max_instances=self.config.max_overlapping_ticks
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_max_instances_listener, EVENT_JOB_MAX_INSTANCES)

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                pass

    def request_stop(self) -> None:
        self.logger.info("Stop requested, shutting down gracefully...")
        self._stop_event.set()

    async def start(self, run_once: bool = False) -> None:
        """Start the watcher service."""
        try:
            if run_once:
                self.logger.info("Starting watcher service in RUN ONCE MODE")
                await self.run_once()
                return

            self.logger.info("Starting watcher service")
            self._setup_signal_handlers()
            self._add_watcher_jobs()
            self.scheduler.start()

            self.logger.info(
                "Watcher service started",
                timezone=self.config.timezone,
                poll_interval_seconds=self.config.poll_interval_seconds,
                jobs=self.get_scheduler_status()['jobs']
            )

            # Keep the service running
            try:
                while not self._stop_event.is_set():
                    await asyncio.sleep(1)
            except KeyboardInterrupt:
                self.logger.info("Received keyboard interrupt, shutting down...")

            self.stop()
            await self.event_bus.drain()

        except Exception as e:
            self.logger.error(
                "Failed to start watcher service",
                error=str(e)
            )
            raise

    def stop(self) -> None:
        """Stop the scheduler."""
        try:
            self.logger.info("Stopping watcher service")

            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)

            self.logger.info("Watcher service stopped")

        except Exception as e:
            self.logger.error(
                "Error stopping watcher service",
                error=str(e)
            )

    def _add_watcher_jobs(self) -> None:
        """Add one interval job per watcher."""
        for watcher in self.watchers:
            # Overlap is allowed: a slow tick does not delay the next one
            self.scheduler.add_job(
                func=self._run_watcher_job,
                trigger='interval',
                seconds=self.config.poll_interval_seconds,
                args=[watcher],
                id=f'watch_{watcher.name}',
                name=f'Watch {watcher.name} ({self.config.poll_interval_seconds}s)',
                max_instances=self.config.max_overlapping_ticks,
                coalesce=False,
                misfire_grace_time=self.config.poll_interval_seconds,
                replace_existing=True
            )
            self.logger.info(
                "Added watcher job",
                watcher=watcher.name,
                interval_seconds=self.config.poll_interval_seconds
            )

    async def _run_watcher_job(self, watcher: BaseWatcher) -> Dict:
        """Run one tick and record a heartbeat if it completes."""
        start_time = time.monotonic()

        try:
            result = await watcher.tick()
        except DirectoryFailure as e:
            self.logger.error(
                "Watcher tick aborted, target enumeration failed",
                watcher=watcher.name,
                error=str(e)
            )
            return {
                'watcher': watcher.name,
                'success': False,
                'error': str(e),
                'duration': time.monotonic() - start_time
            }
        except Exception as e:
            self.logger.error(
                "Watcher tick failed",
                watcher=watcher.name,
                error=str(e)
            )
            return {
                'watcher': watcher.name,
                'success': False,
                'error': str(e),
                'duration': time.monotonic() - start_time
            }

        self.health.record(watcher.name)

        return {
            'watcher': watcher.name,
            'success': True,
            'targets_processed': result.targets_processed,
            'targets_skipped': result.targets_skipped,
            'fetches': result.fetches,
            'unauthorized': result.unauthorized,
            'failures': result.failures,
            'events_emitted': result.events_emitted,
            'duration': result.duration_seconds
        }

    async def run_once(self) -> Dict[str, Dict]:
        """Run every watcher once, concurrently, and wait for deliveries."""
        results = await asyncio.gather(
            *(self._run_watcher_job(watcher) for watcher in self.watchers)
        )
        await self.event_bus.drain()

        summary = {result['watcher']: result for result in results}
        self.logger.info("Run once mode completed", results=summary)
        return summary

    def get_scheduler_status(self) -> Dict:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': job.next_run_time.isoformat() if getattr(job, 'next_run_time', None) else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'jobs': jobs,
            'job_count': len(jobs)
        }
