# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for the scanner.

Engine modules log through ``logging.getLogger(__name__)``; this module routes
those records through structlog so a host gets either console output (CLI) or
JSON lines (embedded in a service).  Leaf module with no adscout imports.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def configure(*, json_output: bool = False, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        json_output: True for JSON lines, False for the human-readable console renderer.
        level: Root logger level name (unknown names fall back to INFO).
        stream: Output stream, stderr by default so stdout stays free for reports.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def bind_scan_context(**fields: object) -> None:
    """Attach fields (session id, page URL, ...) to every subsequent log line."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_scan_context() -> None:
    structlog.contextvars.clear_contextvars()
