"""Structured logging for podreplace.

Events are snake_case names with key/value context naming the dev pod,
workload kind, name and namespace. Output goes to stderr so command output on
stdout stays parseable.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import FilteringBoundLogger, Processor

from podreplace.config.settings import ObservabilitySettings, get_settings


# Loggers of the Kubernetes client stack, kept at WARNING
THIRD_PARTY_LOGGERS = ("kubernetes", "urllib3")


def _render_processors(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    return [
        structlog.dev.set_exc_info,
        structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            pad_event=32,
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging(
    observability: ObservabilitySettings | None = None,
) -> FilteringBoundLogger:
    """Configure structlog and the standard library loggers.

    Args:
        observability: Settings to apply, the current settings when omitted

    Returns:
        FilteringBoundLogger: Configured logger instance
    """
    observability = observability or get_settings().observability
    level = logging.getLevelName(observability.log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        *_render_processors(observability.log_format),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return cast(FilteringBoundLogger, structlog.get_logger("podreplace"))


def get_logger(name: str | None = None, **initial_context: Any) -> FilteringBoundLogger:
    """Get a logger, optionally bound to initial context.

    Example:
        >>> log = get_logger(__name__, component="replacer")
        >>> log.info("replica_set_created", replica_set="api-deploy-devspace")
    """
    logger = structlog.get_logger(name) if name else structlog.get_logger()
    if initial_context:
        logger = logger.bind(**initial_context)
    return cast(FilteringBoundLogger, logger)


configure_logging()


__all__ = ["configure_logging", "get_logger"]
