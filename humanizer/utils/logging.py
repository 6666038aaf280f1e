"""
Centralized logging for the humanizer service.

Every AppLogger call goes to Python logging and to an in-memory buffer,
so the admin routes can show recent queue and worker activity without
external log aggregation.
"""

import logging
from collections import Counter, deque
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional


LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogEntry:
    """A single log entry."""

    def __init__(
        self,
        level: LogLevel,
        message: str,
        source: str = "system",
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.timestamp = datetime.now(timezone.utc)
        self.level = level
        self.message = message
        self.source = source
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "metadata": self.metadata
        }


class LogBuffer:
    """
    Thread-safe bounded buffer of recent log entries.

    The worker and web process each hold their own buffer; the admin
    routes read the one belonging to the web process. Error and warning
    counters keep running after old entries are evicted.
    """

    def __init__(self, max_size: int = 1000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = Lock()
        self._counts = Counter()

    def add(self, entry: LogEntry):
        with self._lock:
            self._buffer.append(entry)
            self._counts[entry.level] += 1

    def select(
        self,
        levels: Optional[Iterable[LogLevel]] = None,
        source: Optional[str] = None,
        request_id: Optional[Any] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Matching entries as dicts, newest first."""
        wanted = set(levels) if levels else None
        with self._lock:
            matches = [
                e for e in reversed(self._buffer)
                if (wanted is None or e.level in wanted)
                and (source is None or e.source == source)
                and (request_id is None or e.metadata.get("request_id") == request_id)
            ]
        return [e.to_dict() for e in matches[:limit]]

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        request_id: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        return self.select(
            levels=[level] if level else None,
            source=source,
            request_id=request_id,
            limit=limit
        )

    def get_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        return self.select(levels=[LogLevel.ERROR, LogLevel.CRITICAL], limit=limit)

    def get_warnings(self, limit: int = 50) -> List[Dict[str, Any]]:
        return self.select(levels=[LogLevel.WARNING], limit=limit)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self._buffer)
            counts = dict(self._counts)

        return {
            "total": len(entries),
            "by_level": dict(Counter(e.level.value for e in entries)),
            "by_source": dict(Counter(e.source for e in entries)),
            "error_count": counts.get(LogLevel.ERROR, 0) + counts.get(LogLevel.CRITICAL, 0),
            "warning_count": counts.get(LogLevel.WARNING, 0),
        }

    def clear(self):
        with self._lock:
            self._buffer.clear()
            self._counts.clear()


# Global log buffer instance
_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Get the global log buffer instance."""
    return _log_buffer


def configure_logging(level: str = "INFO"):
    """Attach a stream handler to the root logger (entry points only)."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


class AppLogger:
    """
    Application logger that logs to both Python logging and the in-memory buffer.
    """

    def __init__(self, source: str):
        self.source = source
        self._logger = logging.getLogger(f"humanizer.{source}")

    def _log(
        self,
        level: LogLevel,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        _log_buffer.add(LogEntry(level, message, self.source, metadata))

        extra_msg = f" | {metadata}" if metadata else ""
        self._logger.log(getattr(logging, level.value.upper()), f"{message}{extra_msg}")

    def debug(self, message: str, **metadata):
        self._log(LogLevel.DEBUG, message, metadata or None)

    def info(self, message: str, **metadata):
        self._log(LogLevel.INFO, message, metadata or None)

    def warning(self, message: str, **metadata):
        self._log(LogLevel.WARNING, message, metadata or None)

    def error(self, message: str, **metadata):
        self._log(LogLevel.ERROR, message, metadata or None)

    def critical(self, message: str, **metadata):
        self._log(LogLevel.CRITICAL, message, metadata or None)


def get_logger(source: str) -> AppLogger:
    """Get an AppLogger for a specific source/module."""
    return AppLogger(source)


# Pre-configured loggers for common sources
queue_logger = AppLogger("queue")
worker_logger = AppLogger("worker")
humanize_logger = AppLogger("humanize_api")
auth_logger = AppLogger("auth")
api_logger = AppLogger("api")
