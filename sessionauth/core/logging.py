"""Session Auth Logging Configuration."""

import json
import logging
import re
import sys
from typing import Literal

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Compact JWS: base64url header starting with '{"', payload, signature
TOKEN_PATTERN = re.compile(r"eyJ[\w-]*\.[\w-]+\.[\w-]+")
REDACTED = "[REDACTED]"

QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx", "httpcore")


class TokenRedactionFilter(logging.Filter):
    """Mask signed tokens in log messages before any handler formats them.

    The message is rendered with its args first so a token passed as a
    ``%s`` argument is caught too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = TOKEN_PATTERN.sub(REDACTED, message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with exception text when present."""

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = TOKEN_PATTERN.sub(REDACTED, self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def build_handler(format_type: Literal["structured", "dev"], stream=None) -> logging.Handler:
    """Create the root handler for ``format_type`` with token redaction attached."""
    handler = logging.StreamHandler(stream or sys.stdout)
    if format_type == "structured":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(TokenRedactionFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON lines, 'dev' for readable text
    """
    numeric_level = getattr(logging, level.upper())
    logging.root.handlers = [build_handler(format_type)]
    logging.root.setLevel(numeric_level)

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    # SQL echo can include bound token fingerprints; only at DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if numeric_level == logging.DEBUG else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the sessionauth prefix."""
    return logging.getLogger(f"sessionauth.{name}")
