"""Structured logging setup.

Call ``configure_logging`` once at startup, then use structlog normally::

    log = structlog.get_logger(__name__)
    log.info("vote_cast", item_id="a1", vote_count=4)
"""

import logging

import structlog
from structlog.typing import Processor


def _level(name: str) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog processors and the level filter.

    Args:
        level: standard logging level name.
        fmt: 'json' for machine readable output, anything else for the
            console renderer.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == "json":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def short_identity(identity: str) -> str:
    """Truncated identity token for log lines."""
    return (identity or "")[:12]
