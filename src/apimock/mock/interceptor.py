"""
APIMock Interceptors

Ordered chain of request interceptors run before the response pipeline.

Each interceptor is ``fn(request, context)`` (sync or async). A returned
mapping is merged into the context; returning None leaves it unchanged.
The first exception stops the chain and is stored under
``interceptor_error``.
"""

import inspect
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .scenario import request_header


INTERCEPTOR_ERROR_KEY = 'interceptor_error'

logger = logging.getLogger('apimock.mock.interceptor')

Interceptor = Callable[[Any, Dict[str, Any]], Any]


class InterceptorChain:
    """
    Example:
        chain = InterceptorChain()
        chain.use(builtin_interceptors.auth())
        chain.use(builtin_interceptors.timestamp())

        context = await chain.execute(request)
        if context.get('authenticated'):
            ...
    """

    def __init__(self):
        self._interceptors: List[Interceptor] = []

    def use(self, interceptor: Interceptor) -> 'InterceptorChain':
        if not callable(interceptor):
            raise ConfigurationError('Interceptor must be callable')
        self._interceptors = self._interceptors + [interceptor]
        return self

    def remove(self, interceptor: Interceptor) -> 'InterceptorChain':
        self._interceptors = [i for i in self._interceptors if i is not interceptor]
        return self

    def clear(self) -> 'InterceptorChain':
        self._interceptors = []
        return self

    @property
    def count(self) -> int:
        return len(self._interceptors)

    async def execute(self, request: Any, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run every interceptor in registration order.

        Args:
            request: The RequestContext being handled
            context: Initial context mapping (copied, never mutated)

        Returns:
            Merged context; contains ``interceptor_error`` if one failed
        """
        merged = dict(context or {})

        for interceptor in self._interceptors:
            try:
                result = interceptor(request, merged)
                if inspect.isawaitable(result):
                    result = await result
                if result is not None:
                    if not isinstance(result, Mapping):
                        raise TypeError(
                            f"Interceptor returned {type(result).__name__}, expected a mapping or None"
                        )
                    merged = {**merged, **result}
            except Exception as e:
                logger.warning(f"Interceptor {getattr(interceptor, '__name__', interceptor)!s} failed: {e}")
                merged[INTERCEPTOR_ERROR_KEY] = e
                break

        return merged


class builtin_interceptors:
    """Factories for commonly needed interceptors."""

    @staticmethod
    def logger(log_fn: Optional[Callable[..., Any]] = None) -> Interceptor:
        log_fn = log_fn or logger.info

        def log_request(request: Any, context: Dict[str, Any]) -> Dict[str, Any]:
            log_fn(f"[APIMock] {request.method} {request.path}", {
                'params': request.params,
                'query': request.query,
            })
            return context

        return log_request

    @staticmethod
    def auth(header: str = 'authorization') -> Interceptor:
        def authenticate(request: Any, context: Dict[str, Any]) -> Dict[str, Any]:
            value = request_header(request, header)
            token = None
            if value:
                token = value[7:] if value.lower().startswith('bearer ') else value
            return {'authenticated': bool(value), 'auth_token': token}

        return authenticate

    @staticmethod
    def timestamp() -> Interceptor:
        def stamp(request: Any, context: Dict[str, Any]) -> Dict[str, Any]:
            now = datetime.now(timezone.utc)
            return {
                'request_timestamp': int(now.timestamp() * 1000),
                'request_date': now.isoformat(),
            }

        return stamp

    @staticmethod
    def rate_limit(max_requests: int = 100, window_ms: int = 60000) -> Interceptor:
        """Sliding-window counter keyed by client address (``extra['ip']``)."""
        lock = threading.Lock()
        windows: Dict[str, List[float]] = {}

        def limit(request: Any, context: Dict[str, Any]) -> Dict[str, Any]:
            extra = getattr(request, 'extra', None) or {}
            key = str(extra.get('ip') or 'default')
            now = time.monotonic()
            window_start = now - window_ms / 1000

            with lock:
                for client in [k for k, v in windows.items() if not v or v[-1] <= window_start]:
                    del windows[client]
                stamps = [t for t in windows.get(key, []) if t > window_start]
                stamps.append(now)
                windows[key] = stamps

            return {
                'rate_limited': len(stamps) > max_requests,
                'rate_limit_remaining': max(0, max_requests - len(stamps)),
            }

        limit.windows = windows
        return limit

    @staticmethod
    def conditional(
        condition: Callable[[Any, Dict[str, Any]], Any],
        modifier: Callable[[Any, Dict[str, Any]], Any]
    ) -> Interceptor:
        def apply(request: Any, context: Dict[str, Any]) -> Any:
            if condition(request, context):
                return modifier(request, context)
            return context

        return apply
