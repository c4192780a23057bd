"""
Structured logging for CDK synthesis.

Synthesis runs as a short-lived process under the CDK toolkit, so every line
goes to stderr and never mixes with anything the toolkit reads from stdout.

Logging is configured twice at startup: once before the configuration is
resolved, so config errors are still rendered, and once with the resolved
`Config`, which picks JSON or console output and the level, and stamps the
deployment namespace and stage on every line.

Usage:
    from streaming_infra.logging import get_logger

    logger = get_logger(__name__)
    logger.info("msk_cluster_declared", brokers=2)
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from streaming_infra.config import Config


def _shared_processors(json_format: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_format:
        processors.append(structlog.processors.dict_tracebacks)
    return processors


def configure_logging(config: Config | None = None) -> None:
    """
    Route structlog and stdlib records through one stderr handler.

    Args:
        config: Resolved deployment configuration. When None, console output
            at INFO is used and no deployment context is bound.
    """
    json_format = config.log_json if config else False
    level = logging.getLevelName(config.log_level) if config else logging.INFO

    shared = _shared_processors(json_format)
    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    clear_contextvars()
    if config is not None:
        bind_contextvars(namespace=config.namespace, stage=config.stage.value)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically for `__name__` of the calling module."""
    return structlog.get_logger(name)


def bind_contextvars(**kwargs: Any) -> None:
    """Bind key-value pairs that every subsequent log line should carry."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_contextvars() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
