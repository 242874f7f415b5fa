"""Structlog setup shared by the service runner and the CLI.

Every module logs through ``structlog.get_logger(__name__)``; job runs bind
``job_id`` through contextvars so all events of one run can be grouped.
"""

import logging

import structlog
from structlog import contextvars as structlog_contextvars

# Per-request chatter from these libraries drowns out job progress
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite", "apscheduler")


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure stdlib logging and structlog.

    :param log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    :param log_format: ``json`` for machine-readable lines, ``console`` for
        coloured key/value output in a terminal
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog_contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
