"""
Structured logging implementation for the CHZZK Command Chatbot.

Provides JSON and console logging formats with configurable levels,
file rotation, and redaction of credentials in log context.
"""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

SENSITIVE_KEYS = {
    'token', 'password', 'secret', 'key', 'auth', 'credential',
    'access_token', 'refresh_token', 'private_key', 'api_key'
}


def redact_value(value: Any) -> Any:
    """Mask a sensitive value, keeping only a short prefix and suffix of long strings."""
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "[REDACTED]"


def filter_sensitive_data(context: Dict[str, Any]) -> Dict[str, Any]:
    """Filter sensitive data from log context."""
    filtered = {}
    for key, value in context.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            filtered[key] = redact_value(value)
        else:
            filtered[key] = value
    return filtered


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the context attached to a record, redacted."""
    context = {}
    if hasattr(record, 'extra_data') and record.extra_data:
        context.update(record.extra_data)
    for key, value in record.__dict__.items():
        if key not in _RESERVED_ATTRS and key != 'extra_data':
            context[key] = value
    return filter_sensitive_data(context)


class JsonFormatter(logging.Formatter):
    """Formatter for JSON log output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Formatter for console output with colors and structured data."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'      # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        message = f"{timestamp} {color}{record.levelname:<8}{reset} [{record.name}] {record.getMessage()}"

        context = record_context(record)
        if context:
            message += " | " + ", ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class StructuredLogger:
    """
    Structured logger with support for JSON and console output formats.

    Installing one on the ``chzzkbot`` logger routes every module logger in
    the package through the same handlers.
    """

    def __init__(
        self,
        name: str,
        level: str = "INFO",
        format_type: str = "console",
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        enable_console: bool = True
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            format_type: Output format ('json' or 'console')
            log_file: Path to log file (optional)
            max_file_size: Maximum file size before rotation (bytes)
            backup_count: Number of backup files to keep
            enable_console: Whether to enable console output
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.propagate = False
        self.format_type = format_type

        self.logger.handlers.clear()

        if enable_console:
            console_handler = logging.StreamHandler()
            if format_type == "json":
                console_handler.setFormatter(JsonFormatter())
            else:
                console_handler.setFormatter(ConsoleFormatter())
            self.logger.addHandler(console_handler)

        if log_file:
            self._setup_file_handler(log_file, max_file_size, backup_count)

    def _setup_file_handler(self, log_file: str, max_file_size: int, backup_count: int):
        """Set up rotating file handler."""
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )

        # Always use JSON format for file output
        file_handler.setFormatter(JsonFormatter())
        self.logger.addHandler(file_handler)

    def _log(self, level: str, message: str, **context):
        extra = {'extra_data': context} if context else {}
        self.logger.log(getattr(logging, level), message, extra=extra)

    def debug(self, message: str, **context):
        self._log("DEBUG", message, **context)

    def info(self, message: str, **context):
        self._log("INFO", message, **context)

    def warning(self, message: str, **context):
        self._log("WARNING", message, **context)

    def error(self, message: str, **context):
        self._log("ERROR", message, **context)

    def critical(self, message: str, **context):
        self._log("CRITICAL", message, **context)

    def exception(self, message: str, **context):
        """Log exception with traceback."""
        extra = {'extra_data': context} if context else {}
        self.logger.exception(message, extra=extra)


# Global logger instances
_loggers: Dict[str, StructuredLogger] = {}


def get_logger(
    name: str,
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    log_file: Optional[str] = None
) -> StructuredLogger:
    """
    Get or create a structured logger instance.

    Args:
        name: Logger name
        level: Log level (uses environment variable LOG_LEVEL if not specified)
        format_type: Format type (uses environment variable LOG_FORMAT if not specified)
        log_file: Log file path (uses environment variable LOG_FILE if not specified)

    Returns:
        StructuredLogger instance
    """
    if level is None:
        level = os.getenv('LOG_LEVEL', 'INFO')
    if format_type is None:
        format_type = os.getenv('LOG_FORMAT', 'console')
    if log_file is None:
        log_file = os.getenv('LOG_FILE')

    cache_key = f"{name}:{level}:{format_type}:{log_file}"

    if cache_key in _loggers:
        return _loggers[cache_key]

    logger = StructuredLogger(
        name=name,
        level=level,
        format_type=format_type,
        log_file=log_file
    )

    _loggers[cache_key] = logger
    return logger
