import logging
import logging.config
from typing import Optional

from app.config import get_settings

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

# Third-party loggers and the level they are held at
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.error": "INFO",
    "uvicorn.access": "INFO",
    "httpx": "WARNING",
    "httpcore": "WARNING",
}


def build_logging_config(debug: bool) -> dict:
    """
    Build the dictConfig document

    Gateway loggers (`app.*`) follow DEBUG; per-token traces and prompt
    previews are only visible at DEBUG level.
    """
    app_level = "DEBUG" if debug else "INFO"

    loggers = {
        name: {"handlers": ["console"], "level": level, "propagate": False}
        for name, level in _LIBRARY_LEVELS.items()
    }
    loggers["app"] = {"handlers": ["console"], "level": app_level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["console"], "level": app_level},
        "loggers": loggers,
    }


def setup_logging(debug: Optional[bool] = None):
    """
    Configure global log format for the gateway, uvicorn and httpx

    Args:
        debug: Override for settings.DEBUG
    """
    if debug is None:
        debug = get_settings().DEBUG
    logging.config.dictConfig(build_logging_config(debug))
