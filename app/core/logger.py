"""
Centralized logging configuration for Catalog Service.

Provides a structured logging interface with:
- Correlation / trace IDs taken from the request context
- Console (development) and JSON (production) formats
- Optional JSON file output
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from app.core.config import config
from app.middleware.request_context import get_correlation_id, get_trace_id

IS_DEVELOPMENT = config.environment == "development"

SERVICE_NAME = config.service_name
LOG_LEVEL = config.log_level.upper()
LOG_FORMAT = config.log_format
LOG_TO_FILE = config.log_to_file
LOG_TO_CONSOLE = config.log_to_console
LOG_FILE_PATH = config.log_file_path

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
}


class StructuredLogger:
    """
    Logger with structured entries and request correlation.
    """

    def __init__(self):
        self.service_name = SERVICE_NAME
        self.environment = config.environment
        self._logger = logging.getLogger(SERVICE_NAME)
        self._setup_logging()

    def _setup_logging(self):
        """Configure Python logging with handlers"""
        self._logger.handlers.clear()
        self._logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
        self._logger.propagate = False

        if LOG_TO_CONSOLE:
            console_handler = logging.StreamHandler(sys.stdout)
            if LOG_FORMAT == "json":
                console_handler.setFormatter(JSONFormatter())
            else:
                console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

        if LOG_TO_FILE:
            log_dir = os.path.dirname(LOG_FILE_PATH)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.FileHandler(LOG_FILE_PATH)
            file_handler.setFormatter(JSONFormatter())  # Always JSON for files
            self._logger.addHandler(file_handler)

    def _build_log_entry(
        self,
        level: str,
        correlation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Build structured log entry"""
        entry = {
            "level": level.upper(),
            "service": self.service_name,
            "environment": self.environment,
            "correlationId": correlation_id or get_correlation_id() or get_trace_id(),
        }

        if user_id:
            entry["userId"] = user_id

        if metadata:
            entry["metadata"] = metadata

        entry.update(kwargs)
        return entry

    def _log(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Internal logging method"""
        extra = self._build_log_entry(level, correlation_id, user_id, metadata, **kwargs)
        self._logger.log(getattr(logging, level.upper()), message, extra=extra)

    def debug(self, message: str, correlation_id: Optional[str] = None, user_id: Optional[str] = None,
              metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Debug level logging"""
        self._log("DEBUG", message, correlation_id, user_id, metadata, **kwargs)

    def info(self, message: str, correlation_id: Optional[str] = None, user_id: Optional[str] = None,
             metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Info level logging"""
        self._log("INFO", message, correlation_id, user_id, metadata, **kwargs)

    def warning(self, message: str, correlation_id: Optional[str] = None, user_id: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None, **kwargs):
        """Warning level logging"""
        self._log("WARNING", message, correlation_id, user_id, metadata, **kwargs)

    def error(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        error: Optional[Union[str, Exception]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Error level logging"""
        if metadata is None:
            metadata = {}

        if error:
            if isinstance(error, Exception):
                metadata["error"] = {
                    "type": type(error).__name__,
                    "message": str(error),
                }
            else:
                metadata["error"] = {"message": str(error)}

        self._log("ERROR", message, correlation_id, user_id, metadata, **kwargs)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        line = f"{color}[{timestamp}] {record.levelname}{reset} - {record.getMessage()}"

        metadata = getattr(record, "metadata", None)
        if metadata and IS_DEVELOPMENT:
            line = f"{line} {json.dumps(metadata, default=str)}"
        return line


# Create and export the logger instance
logger = StructuredLogger()
