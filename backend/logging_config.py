"""Centralized logging configuration."""

import logging

from config import settings

# Third-party loggers that drown out sync output below WARNING
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "ldap3",
    "httpx",
    "httpcore",
    "uvicorn.access",
)


def setup_logging(level: str | None = None) -> None:
    """Configure process logging.

    Sync jobs run on their own worker threads, so the thread name is part
    of every line.

    Args:
        level: Overrides ``settings.LOG_LEVEL`` when given.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, (level or settings.LOG_LEVEL).upper()),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
