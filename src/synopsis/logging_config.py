# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging setup for the synopsis CLI and embedding applications.

Module loggers are plain ``logging.getLogger(__name__)`` loggers; this module
routes them through structlog so the same events render either as colored
console lines or as JSON lines.  Leaf module — no synopsis imports.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

LOG_LEVEL_ENV = "SYNOPSIS_LOG_LEVEL"


def _resolve_level(level: str | None) -> int:
    name = level or os.environ.get(LOG_LEVEL_ENV, "") or "INFO"
    value = getattr(logging, name.strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def configure(
    *,
    json_output: bool = False,
    level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Install a single structlog-formatted handler on the root logger.

    Args:
        json_output: Emit JSON lines instead of console-rendered text.
        level: Root level name. Falls back to ``$SYNOPSIS_LOG_LEVEL``, then INFO.
            Unknown names also fall back to INFO.
        stream: Output stream (default ``sys.stderr``).
    """
    pre_chain: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
