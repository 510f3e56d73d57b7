"""Console logging configuration applied at application startup."""

import sys
from logging.config import dictConfig


def setup_logging(level: str = "INFO") -> None:
    """
    Initialize application logging with consistent formatting.

    Call once at application startup (in the lifespan handler).
    """
    log_level = level.upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                },
            },
            "root": {"level": log_level, "handlers": ["console"]},
            "loggers": {
                "noteforge": {
                    "level": log_level,
                    "handlers": ["console"],
                    "propagate": False,
                },
                "sqlalchemy.engine": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )
