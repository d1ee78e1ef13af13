"""JSON logging for the pipeline service.

Every record goes to stdout as one JSON object. ``severity`` and ``timestamp``
use the field names log collectors expect, and the ``extra`` context the
pipeline attaches (``knowledge_id``, ``entry_id``, ``reference_id``, ``stage``)
is emitted as top-level keys.
"""

import logging
import logging.config

SERVICE_NAME = "knowledge-pipeline"

# Client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "notion_client", "google_genai", "sqlalchemy.engine")


def build_logging_config(level: str = "INFO") -> dict:
    """Return a ``dictConfig`` mapping with the root logger at ``level``."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "rename_fields": {
                    "asctime": "timestamp",
                    "levelname": "severity",
                    "name": "logger",
                },
                "static_fields": {"service": SERVICE_NAME},
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"level": level.upper(), "handlers": ["stdout"]},
    }


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON handler. Called once from the app lifespan."""
    logging.config.dictConfig(build_logging_config(level))
