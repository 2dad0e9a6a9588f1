"""
Logging module for the CHZZK Command Chatbot.

This module provides structured logging with JSON and console output
formats, configurable log levels, file rotation and credential redaction.
"""

from .logger import (
    StructuredLogger,
    JsonFormatter,
    ConsoleFormatter,
    get_logger,
    filter_sensitive_data
)

__all__ = [
    'StructuredLogger',
    'JsonFormatter',
    'ConsoleFormatter',
    'get_logger',
    'filter_sensitive_data'
]
