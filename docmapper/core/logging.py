"""
Logging Configuration.

Supports two modes:
- text: Human-readable format for development
- json: Structured JSON format for production

Set LOG_FORMAT environment variable to "json" for production.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
        }

        # Add extra fields if provided
        if hasattr(record, "collection"):
            log_record["collection"] = record.collection

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record)


def setup_logging(log_format: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Setup logging for applications using the mapper.

    Falls back to the LOG_FORMAT / LOG_LEVEL settings:
    - "json": Structured JSON
    - "text" (default): Human-readable for development
    """
    from docmapper.config import settings

    root_logger = logging.getLogger()

    # Avoid adding multiple handlers
    if root_logger.handlers:
        return

    root_logger.setLevel((level or settings.LOG_LEVEL).upper())

    handler = logging.StreamHandler(sys.stdout)

    if (log_format or settings.LOG_FORMAT).lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)

    root_logger.addHandler(handler)

    # Set lower level for noisy libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)
