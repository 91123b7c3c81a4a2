"""
Structured logging with structlog.

Configures structlog to render JSON lines (or a console view for local
debugging). Backward-compatible with stdlib logging: the core's
logging.getLogger(__name__) calls are routed through the same processors
and enriched with the conversation and turn being dispatched.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar
from typing import Optional

import structlog

from dealdesk import __version__

# ── Context vars for correlation ──────────────────────────────────────
conversation_id_var: ContextVar[str | None] = ContextVar("conversation_id", default=None)
turn_id_var: ContextVar[str | None] = ContextVar("turn_id", default=None)

SERVICE_NAME = "dealdesk-tools"


def _inject_context(logger_name: str, method_name: str, event_dict: dict) -> dict:
    """Structlog processor: inject correlation context from contextvars."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__

    cid = conversation_id_var.get(None)
    if cid:
        event_dict["conversation_id"] = cid

    tid = turn_id_var.get(None)
    if tid:
        event_dict["turn_id"] = tid

    return event_dict


def _lowercase_level(logger_name: str, method_name: str, event_dict: dict) -> dict:
    level = event_dict.get("level")
    if level:
        event_dict["level"] = level.lower()
    return event_dict


def setup_logging(
    log_level: int | str = logging.INFO,
    json_output: bool = True,
    log_dir: Optional[str] = None,
    log_file: str = "dealdesk-tools.jsonl",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """Initialize structlog + stdlib logging.

    Call once at application startup. After this, both structlog.get_logger()
    and logging.getLogger() produce output with correlation context. A
    rotating file handler is added when log_dir is given.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _lowercase_level,
        structlog.stdlib.add_logger_name,
        _inject_context,
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
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
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
            file_handler.setFormatter(formatter)
        except OSError:
            # Unwritable log dir: stderr only
            file_handler = None

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)
    root.addHandler(console_handler)
    if file_handler:
        root.addHandler(file_handler)

    for noisy in ("httpcore", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
