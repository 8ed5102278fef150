"""
APIMock Response Handler

Turns one request into one GeneratedResponse.

Pipeline (each request walks these states in order):
    MATCHING -> SCENARIO_CHECK -> ERROR_CHECK -> DELAYING -> GENERATING -> DONE

Short cuts:
- MATCHING with no route          -> NOT_FOUND (404 body)
- SCENARIO_CHECK with a hit       -> DONE with the scenario override,
                                     no delay and no error draw
- ERROR_CHECK triggered           -> ERROR_SHORT_CIRCUIT -> DONE

Per-request data problems never raise out of handle_request(); only an
explicit DelayController.abort() does (DelayAbortedError).
"""

import inspect
import logging
import random
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from ..common import deep_clone
from .context import RequestContext
from .delay import DelayController, DelaySpec
from .errors import SimulatedError
from .generators import GeneratorRegistry
from .router import EndpointConfig, RouteMatch, Router
from .scenario import Scenario, ScenarioManager
from .schema import TemplateInterpreter


class ResponseState(Enum):
    MATCHING = 'matching'
    SCENARIO_CHECK = 'scenario_check'
    ERROR_CHECK = 'error_check'
    DELAYING = 'delaying'
    GENERATING = 'generating'
    DONE = 'done'
    ERROR_SHORT_CIRCUIT = 'error_short_circuit'
    NOT_FOUND = 'not_found'


@dataclass
class GeneratedResponse:
    """
    The externally visible result of one request.

    ``outcome`` records which state decided the response: DONE for a
    generated body, SCENARIO_CHECK for a scenario override,
    ERROR_SHORT_CIRCUIT for a simulated error, NOT_FOUND for a routing miss.
    """

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    outcome: ResponseState = ResponseState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status, 'headers': dict(self.headers), 'body': self.body}


def not_found_body(method: str, path: str) -> Dict[str, Any]:
    return {
        'error': 'Not Found',
        'code': 'NOT_FOUND',
        'message': f"No mock registered for {method} {path}",
    }


class ResponseHandler:
    """
    Orchestrates routing, scenarios, error simulation, delay and generation.

    Every collaborator is injectable; defaults share one random source so a
    seeded ``rng`` makes the whole pipeline reproducible.

    Example:
        router = Router().register('GET', '/users/:id', {
            'schema': {'id': 'params.id', 'name': '{{fullName}}'},
        })
        handler = ResponseHandler(router)

        response = await handler.handle_request('GET', '/users/42')
        # response.status == 200, response.body['id'] == '42'
    """

    def __init__(
        self,
        router: Router,
        scenarios: Optional[ScenarioManager] = None,
        interpreter: Optional[TemplateInterpreter] = None,
        delay_controller: Optional[DelayController] = None,
        default_delay: Any = None,
        rng: Optional[random.Random] = None,
        request_logger: Optional[Any] = None
    ):
        """
        Initialize handler.

        Args:
            router: Route table to match against
            scenarios: Scenario registry (a fresh one if None)
            interpreter: Template interpreter (built-in generators if None)
            delay_controller: Abortable delay source
            default_delay: Delay applied when an endpoint has none (any form
                DelaySpec.parse accepts)
            rng: Random source for error draws and delay sampling
            request_logger: Optional RequestLogger receiving before/after events
        """
        self.router = router
        self.rng = rng if rng is not None else random.Random()
        self.scenarios = scenarios if scenarios is not None else ScenarioManager()
        self.interpreter = interpreter or TemplateInterpreter(GeneratorRegistry(rng=self.rng))
        self.delay_controller = delay_controller or DelayController(rng=self.rng)
        self.default_delay: Optional[DelaySpec] = DelaySpec.parse(default_delay)
        self.request_logger = request_logger
        self.logger = logging.getLogger('apimock.mock.handler')

    async def handle_request(
        self,
        method: str,
        path: str,
        context: Union[RequestContext, Mapping[str, Any], None] = None
    ) -> GeneratedResponse:
        """
        Produce the response for one request.

        Args:
            method: HTTP method
            path: Concrete request path (no query string)
            context: RequestContext, or a mapping with query/headers/body/state

        Returns:
            GeneratedResponse

        Raises:
            DelayAbortedError: The delay controller was aborted
        """
        if isinstance(context, RequestContext):
            request = replace(context, method=method, path=path)
        else:
            request = RequestContext.from_mapping(method, path, context)

        started = time.monotonic()
        self._emit('log_request', request)

        response = await self._run(request)

        elapsed_ms = (time.monotonic() - started) * 1000
        self._emit('log_response', request, response, elapsed_ms)
        return response

    async def _run(self, request: RequestContext) -> GeneratedResponse:
        self._trace(request, ResponseState.MATCHING)
        match = self.router.match(request.method, request.path)
        if match is None:
            self._trace(request, ResponseState.NOT_FOUND)
            return GeneratedResponse(
                status=404,
                headers={},
                body=not_found_body(request.method, request.path),
                outcome=ResponseState.NOT_FOUND
            )

        request = request.with_params(match.params)
        config = match.config

        self._trace(request, ResponseState.SCENARIO_CHECK)
        scenario = self.scenarios.evaluate(match.route.path, request, aliases=(match.route.key,))
        if scenario is not None:
            return await self._scenario_response(scenario, match, request)

        self._trace(request, ResponseState.ERROR_CHECK)
        error = config.error or config.error_simulator.roll(self.rng)
        if error is not None:
            self._trace(request, ResponseState.ERROR_SHORT_CIRCUIT)
            return self._error_response(config, error, request)

        self._trace(request, ResponseState.DELAYING)
        await self._apply_delay(config)

        self._trace(request, ResponseState.GENERATING)
        try:
            body = await self._build_body(config, request)
        except Exception as e:
            return self._internal_error(request, e)

        return GeneratedResponse(
            status=config.status,
            headers=dict(config.headers),
            body=body,
            outcome=ResponseState.DONE
        )

    async def _scenario_response(
        self,
        scenario: Scenario,
        match: RouteMatch,
        request: RequestContext
    ) -> GeneratedResponse:
        config = match.config
        self.logger.debug(f'Scenario "{scenario.name}" matched {match.route.key}')

        if scenario.body is not None:
            body = self.interpreter.interpret(scenario.body, request)
        else:
            try:
                body = await self._build_body(config, request)
            except Exception as e:
                return self._internal_error(request, e)

        return GeneratedResponse(
            status=scenario.status if scenario.status is not None else config.status,
            headers={**config.headers, **scenario.headers},
            body=body,
            outcome=ResponseState.SCENARIO_CHECK
        )

    def _error_response(
        self,
        config: EndpointConfig,
        error: SimulatedError,
        request: RequestContext
    ) -> GeneratedResponse:
        self.logger.info(f"Simulated error {error.status} for {request.method} {request.path}")
        if config.error_body is not None:
            body = self.interpreter.interpret(config.error_body, request)
        else:
            body = error.to_body()
        return GeneratedResponse(
            status=error.status,
            headers={},
            body=body,
            outcome=ResponseState.ERROR_SHORT_CIRCUIT
        )

    def _internal_error(self, request: RequestContext, error: Exception) -> GeneratedResponse:
        self.logger.error(f"Body callable failed for {request.method} {request.path}: {error}")
        self._emit('log_error', error, request)
        body = SimulatedError(
            status=500,
            message='Internal Server Error',
            code='INTERNAL_ERROR',
            details={'message': str(error)}
        ).to_body()
        return GeneratedResponse(status=500, headers={}, body=body, outcome=ResponseState.ERROR_SHORT_CIRCUIT)

    async def _apply_delay(self, config: EndpointConfig):
        spec = config.delay or self.default_delay
        if spec is not None:
            ms = spec.sample(self.rng)
        else:
            ms = self.delay_controller.get_delay()
        if ms:
            await self.delay_controller.wait(ms)

    async def _build_body(self, config: EndpointConfig, request: RequestContext) -> Any:
        if config.schema is not None:
            if config.repeat is not None:
                return self.interpreter.expand(config.schema, config.repeat, request)
            return self.interpreter.interpret(config.schema, request)

        if callable(config.body):
            result = config.body(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        return deep_clone(config.body)

    def _trace(self, request: RequestContext, state: ResponseState):
        self.logger.debug(f"{request.method} {request.path}: {state.name}")

    def _emit(self, event: str, *args: Any):
        if self.request_logger is None:
            return
        try:
            getattr(self.request_logger, event)(*args)
        except Exception as e:
            self.logger.debug(f"Request logger {event} failed: {e}")
