# roster_app/utils/logging_config.py

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask.logging import default_handler

_HANDLER_MARKER = "_roster_handler"

# LogRecord attributes that are not user supplied ``extra`` fields
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys() | {"message", "asctime", _HANDLER_MARKER}
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any ``extra`` fields."""

    def __init__(self, app_name="roster", app_version=None):
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }
        if self.app_version:
            payload["version"] = self.app_version
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


TEXT_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _build_formatter(app):
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return JsonFormatter(
            app_name=app.config.get("APP_NAME", "roster"),
            app_version=app.config.get("APP_VERSION"),
        )
    return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _mark(handler):
    setattr(handler, _HANDLER_MARKER, True)
    return handler


def setup_logging(app):
    """
    Configure ``app.logger`` from the monitoring settings.

    Safe to call more than once: handlers installed by an earlier call are
    replaced, which lets tests re-run it after overriding the config.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app)

    logger = app.logger
    logger.removeHandler(default_handler)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = _mark(logging.StreamHandler(sys.stdout))
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = _mark(
                RotatingFileHandler(
                    os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "roster.log")),
                    maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10 * 1024 * 1024)),
                    backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 5)),
                    encoding="utf-8",
                )
            )
        except OSError as exc:
            logger.warning("File logging disabled, could not open %s: %s", log_dir, exc)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.debug("Logging configured (level=%s, format=%s)", level_name, app.config.get("LOG_FORMAT", "text"))
    return logger
