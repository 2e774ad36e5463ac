"""
Structured logging with structlog.

Configures structlog to render either console lines or JSON lines.
Backward-compatible with stdlib logging — module-level logger.info() calls
get enriched with the structlog processors, including any context bound
through structlog.contextvars (e.g. the fulfillment a pipeline works on).
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys

import structlog

from omas_vendor.config import settings

SERVICE_NAME = "omas-demo-vendor"


def _inject_service(logger_name: str, method_name: str, event_dict: dict) -> dict:
    """Structlog processor: stamp service name and version on every entry."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = settings.app_version
    return event_dict


def _add_log_level_lower(logger_name: str, method_name: str, event_dict: dict) -> dict:
    """Normalize log level to lowercase for consistency."""
    level = event_dict.get("level")
    if level:
        event_dict["level"] = level.lower()
    return event_dict


def setup_logging(
    log_level: str | int | None = None,
    log_format: str | None = None,
    log_dir: str | None = None,
    log_file: str = "omas-vendor.jsonl",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """Initialize structlog + stdlib logging.

    Call once at startup, before any logging calls. Arguments default to
    the OMAS_LOG_* settings.
    """
    level = log_level if log_level is not None else settings.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    fmt = log_format or settings.log_format
    log_dir = log_dir if log_dir is not None else settings.log_dir

    # ── Shared processors (used by both structlog and stdlib bridge) ──
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _add_log_level_lower,
        structlog.stdlib.add_logger_name,
        _inject_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    file_handler = None
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            # Files are always JSON lines
            file_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
            ))
        except OSError:
            # fall back to stderr only
            file_handler = None

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(console_handler)
    if file_handler:
        root.addHandler(file_handler)

    # Quiet noisy third-party loggers
    for noisy in ("httpcore", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
