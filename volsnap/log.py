# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Structured logging setup for command-line use.

Library code only ever calls structlog.get_logger(); configuring output is
left to the application. The CLI calls configure_logging() once at start.
"""

import logging
import sys
from typing import TextIO

import structlog

LOG_FORMATS = ("console", "json")


def configure_logging(
    level: str = "info",
    fmt: str = "console",
    stream: TextIO | None = None,
) -> None:
    """
    Configure structlog processors and output.

    Args:
        level: Minimum level name ("debug", "info", "warning", "error")
        fmt: "console" for human-readable lines, "json" for one JSON
             object per event
        stream: Output stream (default: stderr, keeping stdout for reports)
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt!r}")

    numeric_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )
