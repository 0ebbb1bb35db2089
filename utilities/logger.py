"""
Structured logging setup using structlog.
Provides configurable output formats plus a context-carrying watcher logger.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Enable debug mode for callsite information
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Set up file logging if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class WatcherLogger:
    """
    Specialized logger for watcher ticks, tagging every entry with the watcher name.
    """

    def __init__(self, name: str, watcher: str):
        self.logger = structlog.get_logger(name)
        self.context = {"watcher": watcher}

    def log_tick_start(self, targets: int) -> None:
        self.logger.debug("Watcher tick started", targets=targets, **self.context)

    def log_tick_complete(self, result: Any) -> None:
        """Log tick completion from a TickResult."""
        self.logger.info(
            "Watcher tick completed",
            targets_processed=result.targets_processed,
            targets_skipped=result.targets_skipped,
            fetches=result.fetches,
            unauthorized=result.unauthorized,
            failures=result.failures,
            events_emitted=result.events_emitted,
            duration_seconds=result.duration_seconds,
            **self.context
        )

    def log_change(self, key: str, old_count: int, new_count: int) -> None:
        self.logger.debug(
            "Snapshot size changed",
            key=key,
            old_count=old_count,
            new_count=new_count,
            **self.context
        )

    def log_unauthorized(self, user_id: str, error: str, **extra: Any) -> None:
        self.logger.warning(
            "Credential rejected by Halo",
            user_id=user_id,
            error=error,
            **extra,
            **self.context
        )

    def log_fetch_failure(self, error: str, user_id: Optional[str] = None, **extra: Any) -> None:
        """Log a non-credential fetch failure for one target."""
        self.logger.error(
            "Fetch failed",
            user_id=user_id,
            error=error,
            **extra,
            **self.context
        )

    def log_event_emitted(self, event_type: str, item_id: Any, **extra: Any) -> None:
        self.logger.info(
            "Event emitted",
            event_type=event_type,
            item_id=item_id,
            **extra,
            **self.context
        )
