"""
Logging setup for the request pool.

Pool log records carry entity context (request, landlord, job) as record
attributes. The JSON formatter emits them as top-level fields so log
shippers can filter on them; the human formatter appends them in brackets.

Usage:
    log = pool_logger(__name__, request_id=42)
    log.info("Admitted")                      # ... Admitted [request_id=42]
    log.bind(landlord_id=7).info("Matched")   # ... Matched [request_id=42 landlord_id=7]
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from pathlib import Path

# Context fields, in display order
CONTEXT_FIELDS = ('job', 'request_id', 'landlord_id', 'location')


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """
    JSON lines:
    {"timestamp": "...Z", "level": "INFO", "logger": "request_pool.service",
     "message": "...", "request_id": 42}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """2026-10-19 12:34:56 INFO     request_pool.service: Admitted [request_id=42]"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s %(levelname)-8s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line

        suffix = ' '.join(f"{k}={v}" for k, v in context.items())
        head, sep, rest = line.partition('\n')
        return f"{head} [{suffix}]{sep}{rest}"


class PoolLogAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps pool entity context on every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context) -> 'PoolLogAdapter':
        """Adapter with additional context."""
        return PoolLogAdapter(self.logger, {**self.extra, **context})


def pool_logger(logger: Union[str, logging.Logger], **context) -> PoolLogAdapter:
    """Adapter for a logger (or logger name) with request/landlord/job context."""
    if isinstance(logger, str):
        logger = logging.getLogger(logger)
    return PoolLogAdapter(logger, context)


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    log_file: Optional[Path] = None
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: JSON lines instead of human-readable output
        log_file: Optional log file path
    """
    formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Driver chatter
    for name in ("sqlalchemy", "aiosqlite", "asyncpg", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)


def auto_setup_logging():
    """Configure logging from LOG_LEVEL, LOG_FORMAT (json or human) and LOG_FILE."""
    log_file_path = os.getenv("LOG_FILE")

    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        use_json=os.getenv("LOG_FORMAT", "json").lower() == "json",
        log_file=Path(log_file_path) if log_file_path else None
    )


__all__ = [
    'CONTEXT_FIELDS',
    'PoolLogAdapter',
    'pool_logger',
    'setup_logging',
    'auto_setup_logging',
    'StructuredFormatter',
    'HumanReadableFormatter',
]
