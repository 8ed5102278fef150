"""
APIMock Scenarios

Named, activatable overrides of an endpoint's normal response.

Features:
- Definitions and activations are kept apart: define once, then activate
  and deactivate per scope as often as needed
- Scopes are the global wildcard ``*`` or an endpoint key (path template,
  optionally method-qualified: ``/users/:id`` or ``GET /users/:id``)
- Evaluation order: global scenarios first, then endpoint-scoped ones, in
  activation order, de-duplicated by name; the first truthy condition wins
- A condition that raises is logged and treated as non-matching
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError, ScenarioNotFoundError


GLOBAL_SCOPE = '*'

logger = logging.getLogger('apimock.mock.scenario')


def _always(request: Any) -> bool:
    return True


def _request_section(request: Any, name: str) -> Mapping[str, Any]:
    if request is None:
        return {}
    if isinstance(request, Mapping):
        section = request.get(name)
    else:
        section = getattr(request, name, None)
    return section if isinstance(section, Mapping) else {}


def request_header(request: Any, name: str) -> Any:
    """Header lookup that works for RequestContext objects and plain mappings."""
    headers = _request_section(request, 'headers')
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return value
    return None


def request_query(request: Any, name: str) -> Any:
    return _request_section(request, 'query').get(name)


@dataclass(frozen=True)
class Scenario:
    """A named conditional override of status, headers and/or body."""

    name: str
    condition: Callable[[Any], Any] = _always
    status: Optional[int] = None
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status,
            'headers': dict(self.headers),
            'has_body': self.body is not None,
        }


class ScenarioManager:
    """
    Registry of scenario definitions plus their activation state.

    Both tables live in one immutable snapshot that mutations replace under
    a lock, so an evaluation in progress always sees a consistent view.

    Example:
        scenarios = ScenarioManager()
        scenarios.define('empty', condition=lambda req: req.query.get('empty') == '1',
                         body=[])
        scenarios.activate('empty', '/users')

        hit = scenarios.evaluate('/users', request)
    """

    def __init__(self):
        self._lock = threading.Lock()
        # (definitions by name, scope -> ordered active names)
        self._tables: Tuple[Dict[str, Scenario], Dict[str, Tuple[str, ...]]] = ({}, {})

    def define(
        self,
        name: str,
        condition: Optional[Callable[[Any], Any]] = None,
        status: Optional[int] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> 'ScenarioManager':
        """
        Register or replace a scenario.

        Args:
            name: Unique scenario name
            condition: Predicate over the RequestContext (defaults to always true)
            status: Status code override
            body: Body override (a schema document, interpreted per request)
            headers: Headers merged over the endpoint's headers

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: Empty name, non-callable condition, bad status
        """
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError('Scenario name must be a non-empty string')
        if condition is not None and not callable(condition):
            raise ConfigurationError(f'Scenario "{name}" condition must be callable')
        if status is not None and (
            isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599
        ):
            raise ConfigurationError(f'Scenario "{name}" status must be an HTTP status code, got {status!r}')
        if headers is not None and not isinstance(headers, Mapping):
            raise ConfigurationError(f'Scenario "{name}" headers must be a mapping')

        scenario = Scenario(
            name=name,
            condition=condition or _always,
            status=status,
            body=body,
            headers={str(k): str(v) for k, v in (headers or {}).items()},
        )

        with self._lock:
            scenarios, active = self._tables
            scenarios = dict(scenarios)
            scenarios[name] = scenario
            self._tables = (scenarios, active)
        return self

    def activate(self, name: str, scope: str = GLOBAL_SCOPE) -> 'ScenarioManager':
        """
        Activate a defined scenario globally or for one endpoint key.

        Raises:
            ScenarioNotFoundError: If the scenario was never defined
        """
        with self._lock:
            scenarios, active = self._tables
            if name not in scenarios:
                raise ScenarioNotFoundError(name)
            names = active.get(scope, ())
            if name not in names:
                active = dict(active)
                active[scope] = names + (name,)
                self._tables = (scenarios, active)
        logger.debug(f'Activated scenario "{name}" for {scope}')
        return self

    def deactivate(self, name: str, scope: str = GLOBAL_SCOPE) -> 'ScenarioManager':
        with self._lock:
            scenarios, active = self._tables
            names = active.get(scope, ())
            if name in names:
                active = dict(active)
                remaining = tuple(n for n in names if n != name)
                if remaining:
                    active[scope] = remaining
                else:
                    del active[scope]
                self._tables = (scenarios, active)
        return self

    def reset(self) -> 'ScenarioManager':
        """Deactivate everything; definitions are kept."""
        with self._lock:
            self._tables = (self._tables[0], {})
        return self

    def remove(self, name: str) -> bool:
        """Forget a definition together with all of its activations."""
        with self._lock:
            scenarios, active = self._tables
            if name not in scenarios:
                return False
            scenarios = dict(scenarios)
            del scenarios[name]
            pruned = {}
            for scope, names in active.items():
                kept = tuple(n for n in names if n != name)
                if kept:
                    pruned[scope] = kept
            self._tables = (scenarios, pruned)
        return True

    def has(self, name: str) -> bool:
        return name in self._tables[0]

    def get(self, name: str) -> Optional[Scenario]:
        return self._tables[0].get(name)

    def list(self) -> List[str]:
        return list(self._tables[0])

    def is_active(self, name: str, scope: str = GLOBAL_SCOPE) -> bool:
        return name in self._tables[1].get(scope, ())

    def activations(self) -> Dict[str, List[str]]:
        """Scope -> active scenario names, for admin views."""
        return {scope: list(names) for scope, names in self._tables[1].items()}

    @staticmethod
    def _collect(
        tables: Tuple[Dict[str, Scenario], Dict[str, Tuple[str, ...]]],
        scopes: Iterable[str]
    ) -> List[Scenario]:
        scenarios, active = tables
        seen = set()
        collected: List[Scenario] = []
        for scope in scopes:
            for name in active.get(scope, ()):
                scenario = scenarios.get(name)
                if scenario is not None and name not in seen:
                    seen.add(name)
                    collected.append(scenario)
        return collected

    def active_scenarios(self, endpoint: str, aliases: Sequence[str] = ()) -> List[Scenario]:
        """
        Scenarios applying to an endpoint: global first, then scoped.

        Args:
            endpoint: Endpoint key
            aliases: Further keys naming the same endpoint (e.g. 'GET /users/:id')
        """
        return self._collect(self._tables, (GLOBAL_SCOPE, endpoint, *aliases))

    def evaluate(self, endpoint: str, request: Any, aliases: Sequence[str] = ()) -> Optional[Scenario]:
        """
        Return the first active scenario whose condition holds for request.

        Args:
            endpoint: Endpoint key
            request: RequestContext (or mapping) handed to each condition
            aliases: Further keys naming the same endpoint

        Returns:
            Matching Scenario or None
        """
        for scenario in self.active_scenarios(endpoint, aliases):
            try:
                if scenario.condition(request):
                    return scenario
            except Exception as e:
                logger.warning(f'Scenario "{scenario.name}" condition raised error: {e}')
        return None


def condition_from_when(when: Optional[Mapping[str, Any]]) -> Callable[[Any], bool]:
    """
    Build a condition from a definition-file ``when`` block.

    Example:
        condition_from_when({'query': {'status': 'empty'},
                             'headers': {'X-Mode': 'test'}})
    """
    if not when:
        return _always
    if not isinstance(when, Mapping):
        raise ConfigurationError(f"Scenario 'when' must be a mapping, got {type(when).__name__}")

    unknown = set(when) - {'query', 'headers'}
    if unknown:
        raise ConfigurationError(f"Unsupported scenario condition keys: {', '.join(sorted(unknown))}")

    query = {str(k): str(v) for k, v in (when.get('query') or {}).items()}
    headers = {str(k): str(v) for k, v in (when.get('headers') or {}).items()}

    def condition(request: Any) -> bool:
        for name, value in query.items():
            if str(request_query(request, name)) != value:
                return False
        for name, value in headers.items():
            if str(request_header(request, name)) != value:
                return False
        return True

    return condition


class ScenarioPresets:
    """
    Ready-made scenario definitions.

    Each preset returns keyword arguments for ScenarioManager.define().

    Example:
        scenarios.define('auth', **ScenarioPresets.unauthorized())
        scenarios.define('limited', **ScenarioPresets.rate_limited(limit=10))
    """

    @staticmethod
    def unauthorized() -> Dict[str, Any]:
        return {
            'condition': lambda request: not request_header(request, 'authorization'),
            'status': 401,
            'body': {'error': 'Unauthorized', 'message': 'Authentication required'},
        }

    @staticmethod
    def rate_limited(limit: int = 100) -> Dict[str, Any]:
        """Matches every request after the first ``limit`` ones it has seen."""
        lock = threading.Lock()
        seen = [0]

        def condition(request: Any) -> bool:
            with lock:
                seen[0] += 1
                return seen[0] > limit

        return {
            'condition': condition,
            'status': 429,
            'body': {'error': 'Too Many Requests', 'message': 'Rate limit exceeded'},
            'headers': {'Retry-After': '60'},
        }

    @staticmethod
    def maintenance() -> Dict[str, Any]:
        return {
            'condition': _always,
            'status': 503,
            'body': {'error': 'Service Unavailable', 'message': 'System under maintenance'},
        }

    @staticmethod
    def query_param(name: str, value: Any) -> Dict[str, Any]:
        return {'condition': lambda request: request_query(request, name) == value}

    @staticmethod
    def header(name: str, value: Any) -> Dict[str, Any]:
        return {'condition': lambda request: request_header(request, name) == value}
