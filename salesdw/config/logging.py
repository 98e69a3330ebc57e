"""
Logging Configuration for the Sales Warehouse Loader

structlog events and stdlib records (SQLAlchemy, Prefect) share one handler,
rendered as JSON lines or console text. Logs go to stderr so stdout stays free
for the loader's run summary.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog

from salesdw.config.settings import get_settings


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog and stdlib logging through a single stream handler.

    Args:
        log_level: Override LOG_LEVEL
        log_format: Override LOG_FORMAT ("json" or "text")
        stream: Output stream, stderr by default
    """
    settings = get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    fmt = log_format or settings.monitoring.log_format
    stream = stream or sys.stderr

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level, logging.INFO))

    # SQL echo goes through the same handler
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    structlog.get_logger(__name__).debug("Logging configured", level=level, format=fmt)


def get_logger(name: str):
    return structlog.get_logger(name)
