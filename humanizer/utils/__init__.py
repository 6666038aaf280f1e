"""Utility modules for the humanizer service."""

from humanizer.utils.logging import (
    configure_logging,
    get_logger,
    get_log_buffer,
    LogLevel,
    LogEntry,
    AppLogger,
    queue_logger,
    worker_logger,
    humanize_logger,
    auth_logger,
    api_logger,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_log_buffer",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "queue_logger",
    "worker_logger",
    "humanize_logger",
    "auth_logger",
    "api_logger",
]
