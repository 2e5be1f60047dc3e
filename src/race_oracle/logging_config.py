import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "/tmp/race_oracle.log")

HANDLERS = ["console", "file"]

# Logger name -> level. Everything listed writes to HANDLERS only.
LOGGER_LEVELS = {
    "race_oracle": LOG_LEVEL,
    "fastapi": "INFO",
    "uvicorn.access": "WARNING",
    # One line per request otherwise, and we poll the block number a lot
    "httpx": "WARNING",
    "websockets": "WARNING",
}

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
        "file": {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": LOG_FILE,
            "mode": "a",
        },
    },
    "loggers": {
        name: {"level": level, "handlers": HANDLERS, "propagate": False}
        for name, level in LOGGER_LEVELS.items()
    },
    "root": {
        "level": "WARNING",
        "handlers": HANDLERS,
    },
}


def setup_logging():
    """Apply the logging configuration."""
    logging.config.dictConfig(LOGGING_CONFIG)
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
