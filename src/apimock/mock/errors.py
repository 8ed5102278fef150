"""
APIMock Errors

Exception hierarchy for the mock pipeline and the simulated-error catalogue.

Two different things live here:
- Exceptions: raised for static misconfiguration (bad delay range, empty
  scenario name, non-callable interceptor) and for explicit delay aborts.
- Simulated errors: first-class pipeline outcomes. They are plain data that
  the response handler turns into a normal (non-2xx) response.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union


class APIMockError(Exception):
    """Base class for all APIMock exceptions."""


class ConfigurationError(APIMockError, ValueError):
    """Raised at registration/definition time for invalid configuration."""


class ScenarioNotFoundError(ConfigurationError):
    """Raised when activating a scenario that was never defined."""

    def __init__(self, name: str):
        super().__init__(f'Scenario "{name}" not found')
        self.name = name


class DelayAbortedError(APIMockError):
    """Raised by a pending delay after DelayController.abort()."""

    def __init__(self, message: str = "DelayController has been aborted"):
        super().__init__(message)


class RequestValidationError(APIMockError):
    """Raised when a request body fails JSON Schema validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class SimulatedError:
    """An error response the pipeline produces instead of a generated body."""

    status: int
    message: str
    code: str = "ERROR"
    details: Optional[Dict[str, Any]] = None

    def to_body(self) -> Dict[str, Any]:
        """Render as a JSON-ready response body."""
        body: Dict[str, Any] = {'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


COMMON_ERRORS: Dict[str, SimulatedError] = {
    'badRequest': SimulatedError(400, 'Bad Request', 'BAD_REQUEST'),
    'unauthorized': SimulatedError(401, 'Unauthorized', 'UNAUTHORIZED'),
    'forbidden': SimulatedError(403, 'Forbidden', 'FORBIDDEN'),
    'notFound': SimulatedError(404, 'Not Found', 'NOT_FOUND'),
    'methodNotAllowed': SimulatedError(405, 'Method Not Allowed', 'METHOD_NOT_ALLOWED'),
    'conflict': SimulatedError(409, 'Conflict', 'CONFLICT'),
    'unprocessableEntity': SimulatedError(422, 'Unprocessable Entity', 'UNPROCESSABLE_ENTITY'),
    'tooManyRequests': SimulatedError(429, 'Too Many Requests', 'TOO_MANY_REQUESTS'),
    'internalServer': SimulatedError(500, 'Internal Server Error', 'INTERNAL_ERROR'),
    'badGateway': SimulatedError(502, 'Bad Gateway', 'BAD_GATEWAY'),
    'serviceUnavailable': SimulatedError(503, 'Service Unavailable', 'SERVICE_UNAVAILABLE'),
    'gatewayTimeout': SimulatedError(504, 'Gateway Timeout', 'GATEWAY_TIMEOUT'),
}

_ERRORS_BY_STATUS: Dict[int, SimulatedError] = {e.status: e for e in COMMON_ERRORS.values()}


def check_status(status: Any) -> int:
    """Reject anything that is not an integer HTTP status in 100..599."""
    if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
        raise ConfigurationError(f"Error status must be an HTTP status code, got {status!r}")
    return status


def get_common_error(name: str) -> Optional[SimulatedError]:
    """Look up a catalogue entry by name (e.g. 'notFound')."""
    return COMMON_ERRORS.get(name)


def create_error(
    status: int,
    message: str,
    code: str = "ERROR",
    details: Optional[Dict[str, Any]] = None
) -> SimulatedError:
    """
    Create a custom simulated error.

    Example:
        error = create_error(400, 'Invalid email format',
                             code='VALIDATION_ERROR',
                             details={'field': 'email'})
    """
    return SimulatedError(status=status, message=message, code=code, details=details)


def error_for_status(status: int) -> SimulatedError:
    """
    Return the catalogue error for a status, or a generic one.

    Args:
        status: HTTP status code

    Returns:
        SimulatedError carrying that status
    """
    known = _ERRORS_BY_STATUS.get(status)
    if known:
        return known
    return SimulatedError(status=status, message=f"Simulated error {status}", code='SIMULATED_ERROR')


def coerce_error(value: Union[int, str, Dict[str, Any], SimulatedError]) -> SimulatedError:
    """
    Turn an error configuration value into a SimulatedError.

    Accepts a status code, a catalogue name, a mapping with
    status/message/code/details, or a SimulatedError.

    Raises:
        ConfigurationError: If the value cannot describe an error
    """
    if isinstance(value, SimulatedError):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid error configuration: {value!r}")
    if isinstance(value, int):
        return error_for_status(check_status(value))
    if isinstance(value, str):
        known = get_common_error(value)
        if known is None:
            raise ConfigurationError(
                f"Unknown error name '{value}'. Known errors: {', '.join(COMMON_ERRORS)}"
            )
        return known
    if isinstance(value, dict):
        status = check_status(value.get('status', 500))
        base = error_for_status(status)
        return SimulatedError(
            status=status,
            message=value.get('message', base.message),
            code=value.get('code', base.code),
            details=value.get('details')
        )
    raise ConfigurationError(f"Invalid error configuration: {value!r}")


@dataclass
class ErrorSimulator:
    """
    Decides, per call, whether to short-circuit with a simulated error.

    Every roll() is an independent Bernoulli draw; the simulator keeps no
    memory of earlier calls.

    Example:
        simulator = ErrorSimulator(probability=0.1, status=[500, 503])
        error = simulator.roll()
        if error:
            return error.to_body()
    """

    probability: float = 0.0
    status: Union[int, Sequence[int]] = 500
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self):
        if isinstance(self.probability, bool) or not isinstance(self.probability, (int, float)):
            raise ConfigurationError(f"Error probability must be a number, got {self.probability!r}")
        if not 0.0 <= self.probability <= 1.0:
            raise ConfigurationError(
                f"Error probability must be between 0 and 1, got {self.probability}"
            )

        statuses = [self.status] if isinstance(self.status, int) else list(self.status)
        if not statuses:
            raise ConfigurationError("Error status list must not be empty")
        for status in statuses:
            check_status(status)
        self._statuses = statuses

    @property
    def statuses(self) -> List[int]:
        return list(self._statuses)

    def should_trigger(self, rng: Optional[random.Random] = None) -> bool:
        """Single Bernoulli draw."""
        if self.probability <= 0.0:
            return False
        if self.probability >= 1.0:
            return True
        return (rng or self.rng).random() < self.probability

    def roll(self, rng: Optional[random.Random] = None) -> Optional[SimulatedError]:
        """
        Draw once and, if triggered, pick the error to return.

        Args:
            rng: Random source for this draw (defaults to the simulator's own)

        Returns:
            SimulatedError, or None when the request should proceed normally
        """
        if not self.should_trigger(rng):
            return None

        rng = rng or self.rng
        status = self._statuses[0] if len(self._statuses) == 1 else rng.choice(self._statuses)
        return error_for_status(status)


def simulate_error(
    probability: float,
    error: Union[int, str, Dict[str, Any], SimulatedError] = 'internalServer',
    rng: Optional[random.Random] = None
) -> Optional[SimulatedError]:
    """
    One-shot error simulation.

    Args:
        probability: Chance of returning an error (0.0 to 1.0)
        error: Error to return (status, catalogue name, mapping or SimulatedError)
        rng: Optional random source

    Returns:
        The error if triggered, otherwise None
    """
    simulator = ErrorSimulator(probability=probability, rng=rng or random.Random())
    if not simulator.should_trigger():
        return None
    return coerce_error(error)
