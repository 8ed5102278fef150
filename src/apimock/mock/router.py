"""
APIMock Router

Endpoint registration and path-pattern matching.

Features:
- Path templates with named parameters (``/users/:id/posts/:post_id``)
- Literal segments escaped, parameters match one or more non-'/' chars
- First-registered route wins when patterns overlap
- Copy-on-write route table: matching reads a snapshot, registration swaps
  in a new table under a lock
"""

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .delay import DelaySpec
from .errors import ConfigurationError, ErrorSimulator, SimulatedError, coerce_error
from .validator import check_schema


_PARAM_PATTERN = re.compile(r':([A-Za-z_][A-Za-z0-9_]*)')

_CONFIG_KEYS = {
    'schema', 'body', 'status', 'headers', 'delay', 'error', 'error_rate',
    'error_status', 'error_body', 'repeat', 'validate',
}

# camelCase spellings accepted in definition files
_CONFIG_ALIASES = {
    'errorRate': 'error_rate',
    'errorStatus': 'error_status',
    'errorBody': 'error_body',
    'statusCode': 'status',
}


@dataclass(frozen=True)
class EndpointConfig:
    """
    Everything a registered endpoint needs to produce a response.

    Immutable: change an endpoint by registering it again.
    """

    schema: Any = None
    body: Any = None
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    delay: Optional[DelaySpec] = None
    error: Optional[SimulatedError] = None
    error_rate: float = 0.0
    error_status: Union[int, Sequence[int]] = 500
    error_body: Any = None
    repeat: Optional[int] = None
    validate: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.status, bool) or not isinstance(self.status, int) or not 100 <= self.status <= 599:
            raise ConfigurationError(f"Status must be an HTTP status code, got {self.status!r}")
        if not isinstance(self.headers, Mapping):
            raise ConfigurationError(f"Headers must be a mapping, got {type(self.headers).__name__}")

        object.__setattr__(self, 'headers', {str(k): str(v) for k, v in self.headers.items()})
        object.__setattr__(self, 'delay', DelaySpec.parse(self.delay))
        if self.error is not None:
            object.__setattr__(self, 'error', coerce_error(self.error))
        if self.validate is not None:
            check_schema(self.validate)

        # Fails fast on a bad probability or status list
        object.__setattr__(
            self,
            'error_simulator',
            ErrorSimulator(probability=self.error_rate, status=self.error_status)
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EndpointConfig':
        """
        Create config from a definition-file mapping.

        ``method`` and ``path`` keys are ignored so a whole route entry can be
        passed in; any other unknown key is a configuration error.
        """
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            key = _CONFIG_ALIASES.get(key, key)
            if key in ('method', 'path'):
                continue
            if key not in _CONFIG_KEYS:
                raise ConfigurationError(f"Unknown endpoint option: {key!r}")
            kwargs[key] = value
        return cls(**kwargs)


def compile_path(path: str) -> Tuple[Pattern, Tuple[str, ...]]:
    """
    Compile a path template into an anchored regex plus its parameter names.

    Example:
        pattern, names = compile_path('/users/:id')
        # names == ('id',); pattern matches '/users/42' but not '/users/42/x'
    """
    parts: List[str] = []
    names: List[str] = []
    last = 0

    for match in _PARAM_PATTERN.finditer(path):
        parts.append(re.escape(path[last:match.start()]))
        parts.append('([^/]+)')
        names.append(match.group(1))
        last = match.end()
    parts.append(re.escape(path[last:]))

    return re.compile('^' + ''.join(parts) + '$'), tuple(names)


@dataclass(frozen=True)
class CompiledRoute:
    """A registered route: method + template, compiled matcher and config."""

    method: str
    path: str
    pattern: Pattern
    param_names: Tuple[str, ...]
    config: EndpointConfig

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    def match(self, path: str) -> Optional[Dict[str, str]]:
        """Return bound parameters if the path matches, else None."""
        found = self.pattern.fullmatch(path)
        if not found:
            return None
        return dict(zip(self.param_names, found.groups()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'params': list(self.param_names),
            'status': self.config.status,
        }


@dataclass(frozen=True)
class RouteMatch:
    """Result of a successful Router.match()."""

    route: CompiledRoute
    params: Dict[str, str]

    @property
    def config(self) -> EndpointConfig:
        return self.route.config


class Router:
    """
    Maps (method, path template) to endpoint configuration.

    Example:
        router = Router()
        router.register('GET', '/users/:id', EndpointConfig(schema={'id': 'params.id'}))

        result = router.match('get', '/users/42')
        if result:
            print(result.params)  # {'id': '42'}
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._routes: Dict[Tuple[str, str], CompiledRoute] = {}

    @staticmethod
    def _key(method: str, path: str) -> Tuple[str, str]:
        if not isinstance(method, str) or not method.strip():
            raise ConfigurationError("Route method must be a non-empty string")
        if not isinstance(path, str) or not path:
            raise ConfigurationError("Route path must be a non-empty string")
        return method.strip().upper(), path

    def register(
        self,
        method: str,
        path: str,
        config: Union[EndpointConfig, Mapping[str, Any], None] = None
    ) -> 'Router':
        """
        Register (or replace) an endpoint.

        Re-registering the same method + path replaces the config but keeps
        the route's original position in the match order.

        Args:
            method: HTTP method (case-insensitive)
            path: Path template, ``:name`` marks a parameter
            config: EndpointConfig or a mapping accepted by EndpointConfig.from_dict

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: Invalid method, path or config
        """
        key = self._key(method, path)
        if config is None:
            config = EndpointConfig()
        elif not isinstance(config, EndpointConfig):
            config = EndpointConfig.from_dict(config)

        pattern, names = compile_path(path)
        route = CompiledRoute(method=key[0], path=path, pattern=pattern, param_names=names, config=config)

        with self._lock:
            routes = dict(self._routes)
            routes[key] = route
            self._routes = routes
        return self

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the first registered route matching method and concrete path.

        Returns:
            RouteMatch with bound params, or None when nothing matches
        """
        wanted = method.upper()
        for route in tuple(self._routes.values()):
            if route.method != wanted:
                continue
            params = route.match(path)
            if params is not None:
                return RouteMatch(route=route, params=params)
        return None

    def get(self, method: str, path: str) -> Optional[CompiledRoute]:
        return self._routes.get(self._key(method, path))

    def unregister(self, method: str, path: str) -> bool:
        key = self._key(method, path)
        with self._lock:
            if key not in self._routes:
                return False
            routes = dict(self._routes)
            del routes[key]
            self._routes = routes
        return True

    def clear(self):
        with self._lock:
            self._routes = {}

    def routes(self) -> List[CompiledRoute]:
        """All routes in match order."""
        return list(self._routes.values())

    list = routes

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        method, path = item
        return (str(method).upper(), path) in self._routes
