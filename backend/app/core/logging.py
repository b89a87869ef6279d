"""
Logging configuration for the API process
"""

import logging
import logging.config
from typing import Optional

from app.core.config import Settings, settings as default_settings

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "multipart")


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure root logging from settings"""
    config = config or default_settings
    level = config.LOG_LEVEL.upper()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": config.LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
    })

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for warning in config.configuration_warnings():
        logging.getLogger("app.config").warning(warning)
