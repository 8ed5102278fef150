"""
APIMock Request Logger

Request/response logging for debugging mock traffic.

Emits through the standard ``logging`` module (logger ``apimock.requests``)
and keeps a bounded, filterable in-memory history that the admin API
exposes.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Union


LOG_LEVELS = {
    'NONE': logging.CRITICAL + 10,
    'ERROR': logging.ERROR,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'INFO': logging.INFO,
    'DEBUG': logging.DEBUG,
}


def _parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    return LOG_LEVELS.get(str(level).upper(), logging.INFO)


@dataclass
class LogEntry:
    """One recorded log line."""

    level: str
    message: str
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'level': self.level,
            'message': self.message,
            'data': self.data,
        }


class RequestLogger:
    """
    Logger with history for mock requests.

    Example:
        request_logger = RequestLogger(level='DEBUG', max_history=20)
        request_logger.log_request(context)
        request_logger.log_response(context, response, duration_ms=12)

        errors = request_logger.get_history(level='ERROR')
    """

    def __init__(
        self,
        level: Union[str, int] = 'INFO',
        max_history: int = 100,
        on_log: Optional[Callable[[LogEntry], Any]] = None,
        name: str = 'apimock.requests'
    ):
        self.level = _parse_level(level)
        self.on_log = on_log
        self.logger = logging.getLogger(name)
        self._history: Deque[LogEntry] = deque(maxlen=max_history)
        self._lock = threading.Lock()

    def set_level(self, level: Union[str, int]):
        self.level = _parse_level(level)

    def _log(self, level: int, message: str, data: Any = None):
        if level < self.level:
            return

        entry = LogEntry(level=logging.getLevelName(level), message=message, data=data)
        with self._lock:
            self._history.append(entry)

        if self.on_log:
            self.on_log(entry)

        if data is not None:
            self.logger.log(level, f"{message} {json.dumps(data, default=str)}")
        else:
            self.logger.log(level, message)

    def error(self, message: str, data: Any = None):
        self._log(logging.ERROR, message, data)

    def warning(self, message: str, data: Any = None):
        self._log(logging.WARNING, message, data)

    def info(self, message: str, data: Any = None):
        self._log(logging.INFO, message, data)

    def debug(self, message: str, data: Any = None):
        self._log(logging.DEBUG, message, data)

    def get_history(
        self,
        level: Optional[str] = None,
        since: Optional[datetime] = None,
        contains: Optional[str] = None
    ) -> List[LogEntry]:
        """
        Filter recorded entries.

        Args:
            level: Only entries at this level name (case-insensitive)
            since: Only entries at or after this time
            contains: Substring of the message or of the JSON-encoded data
        """
        with self._lock:
            history = list(self._history)

        if level:
            wanted = logging.getLevelName(_parse_level(level))
            history = [entry for entry in history if entry.level == wanted]
        if since:
            history = [entry for entry in history if entry.timestamp >= since]
        if contains:
            history = [
                entry for entry in history
                if contains in entry.message or contains in json.dumps(entry.data, default=str)
            ]
        return history

    def clear_history(self):
        with self._lock:
            self._history.clear()

    def log_request(self, request: Any):
        self.info(f"--> {request.method} {request.path}", {
            'headers': dict(request.headers),
            'body': request.body,
        })

    def log_response(self, request: Any, response: Any, duration_ms: Optional[float] = None):
        duration = f" ({duration_ms:.0f}ms)" if duration_ms is not None else ''
        self.info(f"<-- {response.status} {request.method} {request.path}{duration}", {
            'headers': dict(response.headers),
            'body': response.body,
        })

    def log_error(self, error: BaseException, request: Any):
        self.error(f"Error handling {request.method} {request.path}", {
            'error': str(error),
            'type': type(error).__name__,
        })
