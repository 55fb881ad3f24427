"""
Structured logging configuration using structlog.

Logs are JSON lines by default (LOG_FORMAT=console for local reading).
Context bound through structlog.contextvars, such as job_id while the
scheduler runs a step, is merged into every line emitted under it.
"""
import logging
import sys

import structlog

from clanwins.config import settings


# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "arq.worker")


def configure_logging(level: str | None = None, fmt: str | None = None):
    """Configure structlog and the stdlib root logger."""
    log_level = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if (fmt or settings.LOG_FORMAT) == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service=settings.APP_NAME, environment=settings.ENVIRONMENT)


logger = configure_logging()


def get_logger(**context):
    """
    Logger with extra context bound.

        log = get_logger(component="scheduler")
        log.info("scan_job_claimed", job_id=job.id)
    """
    return logger.bind(**context)
