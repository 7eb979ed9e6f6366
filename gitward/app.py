"""Bootstrap: logging setup and service wiring."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

from gitward.core.config import GitwardConfig
from gitward.core.events import EventBus
from gitward.core.serializer import RepoLockRegistry
from gitward.git.runner import GitRunner
from gitward.git.service import GitService

logger = structlog.get_logger()


def _file_handler(config: GitwardConfig, log_dir: Path) -> logging.Handler:
    """JSON lines, rotated by size, one object per structlog event."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / "gitward.log",
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer())
    )
    return handler


def configure_logging(config: GitwardConfig, *, log_dir: Path | None = None) -> None:
    """Route structlog through stdlib: stderr console plus an optional JSON file.

    Command results go to stdout, so log output stays on stderr.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        )
    )
    root_logger.addHandler(console)

    log_dir = log_dir if log_dir is not None else config.log_dir
    if log_dir is not None:
        root_logger.addHandler(_file_handler(config, log_dir))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_service(
    config: GitwardConfig | None = None,
    *,
    event_bus: EventBus | None = None,
    setup_logging: bool = True,
) -> GitService:
    if config is None:
        config = GitwardConfig()

    if setup_logging:
        configure_logging(config)

    runner = GitRunner(config.git_binary, timeout=config.command_timeout_seconds)
    service = GitService(
        config,
        runner=runner,
        locks=RepoLockRegistry(),
        event_bus=event_bus or EventBus(),
    )
    logger.info(
        "service_built",
        git_binary=config.git_binary,
        command_timeout=config.command_timeout_seconds,
        network_timeout=config.network_timeout_seconds,
        default_remote=config.default_remote,
        log_level=config.log_level,
    )
    return service
