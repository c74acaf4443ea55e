# wicket_sync/utils/logging_config.py

"""
Logging setup for the Flask app: console and rotating file handlers with
JSON or text formatting, driven by the monitoring config.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON including ``extra`` fields"""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(log_format):
    if str(log_format).lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app):
    """Configure app.logger and the wicket_sync package logger from app config"""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app.config.get("LOG_FORMAT", "json"))

    handlers = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, "wicket_sync.log"),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            app.logger.warning(f"File logging disabled, could not open {log_dir}: {str(e)}")

    for logger in (app.logger, logging.getLogger("wicket_sync")):
        for handler in list(logger.handlers):
            if getattr(handler, "_wicket_sync_handler", False):
                logger.removeHandler(handler)
        for handler in handlers:
            handler._wicket_sync_handler = True
            logger.addHandler(handler)
        logger.setLevel(level)

    app.logger.debug("Logging configured", extra={"log_level": level_name, "handlers": len(handlers)})
    return app.logger
