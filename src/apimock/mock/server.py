"""
APIMock Mock Server

Facade over the response pipeline plus a FastAPI (ASGI) adapter.

Features:
- Route registration from code or YAML/JSON definition files
- Schema-driven response generation with path/query/body references
- Scenarios, delays and error simulation per endpoint
- Interceptor chain and JSON Schema request validation in front of the pipeline
- Admin API for runtime inspection and scenario switching
- Metrics and request history

The adapter builds an application object only; serving it is up to the
caller (an ASGI server, or ``fastapi.testclient.TestClient`` in tests).
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..common import DefinitionLoader, URLParser, safe_json_parse
from .context import RequestContext
from .delay import DelayController
from .errors import ConfigurationError, DelayAbortedError, ScenarioNotFoundError, create_error
from .generators import GeneratorRegistry
from .handler import GeneratedResponse, ResponseHandler, ResponseState
from .interceptor import INTERCEPTOR_ERROR_KEY, InterceptorChain
from .logger import RequestLogger
from .router import CompiledRoute, EndpointConfig, Router
from .scenario import GLOBAL_SCOPE, ScenarioManager, condition_from_when
from .schema import TemplateInterpreter
from .state import StateManager
from .validator import validate


HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

_SCENARIO_KEYS = {'name', 'status', 'body', 'headers', 'when', 'activate'}


@dataclass
class MockConfig:
    """Configuration for mock server behavior."""

    # Delay applied to endpoints without their own (ms, [min, max], preset name)
    default_delay: Any = None

    # Seed for generators, error draws and delay sampling (None = random)
    seed: Optional[int] = None

    log_level: str = "info"

    # Check request bodies of endpoints that declare a 'validate' schema
    validate_requests: bool = True

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"

    # Request log entries kept for GET <admin_prefix>/logs
    history_limit: int = 100


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    generated_responses: int = 0
    scenario_responses: int = 0
    simulated_errors: int = 0
    not_found: int = 0
    rejected_requests: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def record(self, response: GeneratedResponse):
        if response.outcome is ResponseState.DONE:
            self.generated_responses += 1
        elif response.outcome is ResponseState.SCENARIO_CHECK:
            self.scenario_responses += 1
        elif response.outcome is ResponseState.NOT_FOUND:
            self.not_found += 1
        else:
            self.simulated_errors += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'generated_responses': self.generated_responses,
            'scenario_responses': self.scenario_responses,
            'simulated_errors': self.simulated_errors,
            'not_found': self.not_found,
            'rejected_requests': self.rejected_requests,
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class MockServer:
    """
    Mock API: register endpoints, then ask for responses.

    Example:
        server = MockServer(MockConfig(seed=42))
        server.register_route('GET', '/users/:id', {
            'schema': {'id': 'params.id', 'name': '{{fullName}}', 'email': '{{email}}'},
            'delay': [20, 80],
        })
        server.define_scenario('suspended', status=403, body={'error': 'Account suspended'})
        server.activate_scenario('suspended', '/users/:id')

        response = server.handle_request_sync('GET', '/users/42')

        # Or serve it
        app = server.get_app()
    """

    def __init__(self, config: Optional[MockConfig] = None, registry: Optional[GeneratorRegistry] = None):
        """
        Initialize mock server.

        Args:
            config: Optional MockConfig for server behavior
            registry: Optional GeneratorRegistry (built from config.seed if None)
        """
        self.config = config or MockConfig()
        self.metrics = MockMetrics()

        self.logger = logging.getLogger("apimock.mock")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.rng = random.Random(self.config.seed)
        self.registry = registry or GeneratorRegistry(rng=self.rng)
        self.router = Router()
        self.scenarios = ScenarioManager()
        self.interceptors = InterceptorChain()
        self.state = StateManager()
        self.delay_controller = DelayController(rng=self.rng)
        self.request_logger = RequestLogger(
            level=self.config.log_level.upper(),
            max_history=self.config.history_limit
        )
        self.handler = ResponseHandler(
            router=self.router,
            scenarios=self.scenarios,
            interpreter=TemplateInterpreter(self.registry),
            delay_controller=self.delay_controller,
            default_delay=self.config.default_delay,
            rng=self.rng,
            request_logger=self.request_logger
        )

        self.app = self._create_app()

    # Routes

    def register_route(
        self,
        method: str,
        path: str,
        config: Union[EndpointConfig, Mapping[str, Any], None] = None,
        **options: Any
    ) -> 'MockServer':
        """
        Register an endpoint.

        Args:
            method: HTTP method
            path: Path template (``/users/:id``)
            config: EndpointConfig or mapping of endpoint options
            **options: Endpoint options given as keywords (merged over a mapping config)

        Raises:
            ConfigurationError: For any invalid option
        """
        if options:
            if isinstance(config, EndpointConfig):
                raise ConfigurationError("Pass either an EndpointConfig or keyword options, not both")
            config = {**(config or {}), **options}

        self.router.register(method, path, config)
        self.logger.debug(f"Registered {method.upper()} {path}")
        return self

    def unregister_route(self, method: str, path: str) -> bool:
        return self.router.unregister(method, path)

    def list_routes(self) -> List[CompiledRoute]:
        return self.router.routes()

    def clear_routes(self):
        self.router.clear()

    # Scenarios

    def define_scenario(
        self,
        name: str,
        condition: Optional[Callable[[Any], Any]] = None,
        status: Optional[int] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None
    ) -> 'MockServer':
        self.scenarios.define(name, condition=condition, status=status, body=body, headers=headers)
        return self

    def activate_scenario(self, name: str, scope: str = GLOBAL_SCOPE) -> 'MockServer':
        self.scenarios.activate(name, scope)
        self.logger.info(f'Scenario "{name}" active for {scope}')
        return self

    def deactivate_scenario(self, name: str, scope: str = GLOBAL_SCOPE) -> 'MockServer':
        self.scenarios.deactivate(name, scope)
        return self

    def reset_scenarios(self) -> 'MockServer':
        self.scenarios.reset()
        return self

    # Extensions

    def register_generator(self, name: str, fn: Callable[..., Any], override: bool = False) -> 'MockServer':
        self.registry.register(name, fn, override=override)
        return self

    def use(self, interceptor: Callable[..., Any]) -> 'MockServer':
        self.interceptors.use(interceptor)
        return self

    def abort_delays(self):
        """Reject every pending delay; new delays fail until reset()."""
        self.delay_controller.abort()

    def reset(self):
        """Back to a clean runtime state; routes and scenario definitions are kept."""
        self.metrics = MockMetrics()
        self.scenarios.reset()
        self.delay_controller.reset()
        self.request_logger.clear_history()
        self.registry.reset_sequences()
        self.state.reset_all()

    # Definitions

    def load_definitions(self, source: Union[str, Path, Mapping[str, Any], List[Any]]) -> Dict[str, int]:
        """
        Register routes and scenarios from a definition file or document.

        Args:
            source: Path to a YAML/JSON file, or an already-parsed document

        Returns:
            Counts of loaded routes and scenarios

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the document has the wrong shape
            ConfigurationError: If a route or scenario is invalid
        """
        if isinstance(source, (str, Path)):
            definitions = DefinitionLoader(source).load()
        else:
            definitions = DefinitionLoader.normalize(source)

        # Everything is validated against scratch tables before anything is registered
        staged_router = Router()
        staged_routes = []
        for route in definitions['routes']:
            config = EndpointConfig.from_dict(route)
            staged_router.register(route['method'], route['path'], config)
            staged_routes.append((route['method'], route['path'], config))

        staged_scenarios = ScenarioManager()
        prepared = [self._prepare_scenario(entry) for entry in definitions['scenarios']]
        for options, scopes in prepared:
            staged_scenarios.define(**options)
            for scope in scopes:
                staged_scenarios.activate(options['name'], scope)

        for method, path, config in staged_routes:
            self.register_route(method, path, config)

        for options, scopes in prepared:
            self.define_scenario(**options)
            for scope in scopes:
                self.activate_scenario(options['name'], scope)

        counts = {'routes': len(definitions['routes']), 'scenarios': len(definitions['scenarios'])}
        self.logger.info(f"Loaded {counts['routes']} routes and {counts['scenarios']} scenarios")
        return counts

    @staticmethod
    def _prepare_scenario(entry: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        unknown = set(entry) - _SCENARIO_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown scenario option(s): {', '.join(sorted(unknown))}")

        options = {
            'name': entry['name'],
            'condition': condition_from_when(entry.get('when')),
            'status': entry.get('status'),
            'body': entry.get('body'),
            'headers': entry.get('headers'),
        }

        scopes = entry.get('activate') or []
        if isinstance(scopes, str):
            scopes = [scopes]
        if not isinstance(scopes, (list, tuple)) or not all(isinstance(scope, str) for scope in scopes):
            raise ConfigurationError(f'Scenario "{entry["name"]}" activate entries must be strings')
        return options, list(scopes)

    # Requests

    async def handle_request(
        self,
        method: str,
        path: str,
        context: Optional[Mapping[str, Any]] = None
    ) -> GeneratedResponse:
        """
        Run one request through interceptors, validation and the pipeline.

        Args:
            method: HTTP method
            path: Request path; a query string is split off and merged into context['query']
            context: Optional mapping with query/headers/body (other keys land in extra)

        Returns:
            GeneratedResponse

        Raises:
            DelayAbortedError: If abort_delays() interrupted this request
        """
        self.metrics.total_requests += 1

        path, url_query = URLParser.split_target(path)
        request = RequestContext.from_mapping(method, path, context)
        request.query = {**url_query, **request.query}
        if request.state is None:
            request.state = self.state

        if self.interceptors.count:
            extra = await self.interceptors.execute(request, dict(request.extra))
            error = extra.pop(INTERCEPTOR_ERROR_KEY, None)
            request.extra = extra
            if error is not None:
                self.metrics.rejected_requests += 1
                return GeneratedResponse(
                    status=500,
                    headers={},
                    body=create_error(500, 'Internal Server Error', 'INTERCEPTOR_ERROR',
                                      {'message': str(error)}).to_body(),
                    outcome=ResponseState.ERROR_SHORT_CIRCUIT
                )

        if self.config.validate_requests:
            rejected = self._validate_body(request)
            if rejected is not None:
                self.metrics.rejected_requests += 1
                return rejected

        response = await self.handler.handle_request(request.method, request.path, request)
        self.metrics.record(response)
        return response

    def handle_request_sync(
        self,
        method: str,
        path: str,
        context: Optional[Mapping[str, Any]] = None
    ) -> GeneratedResponse:
        """Blocking wrapper around handle_request() for scripts and the CLI."""
        return asyncio.run(self.handle_request(method, path, context))

    def _validate_body(self, request: RequestContext) -> Optional[GeneratedResponse]:
        match = self.router.match(request.method, request.path)
        if match is None or match.config.validate is None:
            return None

        result = validate(request.body, match.config.validate, throw_on_error=False)
        if result.valid:
            return None

        self.logger.info(f"Rejected {request.method} {request.path}: {len(result.errors)} validation error(s)")
        return GeneratedResponse(
            status=400,
            headers={},
            body=create_error(400, 'Bad Request', 'VALIDATION_ERROR', {'errors': result.errors}).to_body(),
            outcome=ResponseState.ERROR_SHORT_CIRCUIT
        )

    # ASGI adapter

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="APIMock",
            description="Schema-driven HTTP mock API",
            version="1.0.0"
        )

        # Admin API routes
        if self.config.admin_enabled:
            prefix = self.config.admin_prefix

            @app.get(f"{prefix}/metrics")
            async def get_metrics():
                """Get server metrics."""
                return JSONResponse(content=self.metrics.to_dict())

            @app.get(f"{prefix}/routes")
            async def list_routes():
                """List registered routes in match order."""
                routes = [route.to_dict() for route in self.router.routes()]
                return JSONResponse(content={'total': len(routes), 'routes': routes})

            @app.get(f"{prefix}/scenarios")
            async def list_scenarios():
                """List scenario definitions and activations."""
                return JSONResponse(content={
                    'defined': [self.scenarios.get(name).to_dict() for name in self.scenarios.list()],
                    'active': self.scenarios.activations()
                })

            @app.post(f"{prefix}/scenarios/reset")
            async def reset_scenarios():
                """Deactivate all scenarios."""
                self.reset_scenarios()
                return JSONResponse(content={'status': 'reset'})

            @app.post(f"{prefix}/scenarios/{{name}}/activate")
            async def activate_scenario(name: str, request: Request):
                """Activate a scenario; optional JSON body {"scope": "/users/:id"}."""
                body = safe_json_parse(await request.body(), default={}) or {}
                scope = body.get('scope', GLOBAL_SCOPE) if isinstance(body, dict) else GLOBAL_SCOPE
                try:
                    self.activate_scenario(name, scope)
                except ScenarioNotFoundError as e:
                    return JSONResponse(content={'error': str(e)}, status_code=404)
                return JSONResponse(content={'status': 'activated', 'name': name, 'scope': scope})

            @app.post(f"{prefix}/scenarios/{{name}}/deactivate")
            async def deactivate_scenario(name: str, request: Request):
                """Deactivate a scenario; optional JSON body {"scope": "/users/:id"}."""
                body = safe_json_parse(await request.body(), default={}) or {}
                scope = body.get('scope', GLOBAL_SCOPE) if isinstance(body, dict) else GLOBAL_SCOPE
                self.deactivate_scenario(name, scope)
                return JSONResponse(content={'status': 'deactivated', 'name': name, 'scope': scope})

            @app.post(f"{prefix}/reset")
            async def reset_server():
                """Reset metrics, activations, sequences, state and delays."""
                self.reset()
                return JSONResponse(content={'status': 'reset'})

            @app.get(f"{prefix}/logs")
            async def get_logs(level: Optional[str] = None, contains: Optional[str] = None):
                """Get recorded request log entries."""
                entries = self.request_logger.get_history(level=level, contains=contains)
                return JSONResponse(content={
                    'total': len(entries),
                    'limit': self.config.history_limit,
                    'entries': [entry.to_dict() for entry in entries]
                })

        # Main catch-all route for mocking
        @app.api_route("/{path:path}", methods=HTTP_METHODS)
        async def mock_request(request: Request, path: str):
            """Handle incoming requests and serve mock responses."""
            return await self._handle_http(request)

        return app

    async def _handle_http(self, request: Request) -> Response:
        raw = await request.body()
        body = safe_json_parse(raw, default=raw.decode('utf-8', errors='replace') if raw else None)

        context = {
            'query': URLParser.parse_query(request.url.query),
            'headers': dict(request.headers),
            'body': body,
            'ip': request.client.host if request.client else None,
        }

        try:
            generated = await self.handle_request(request.method, request.url.path, context)
        except DelayAbortedError as e:
            self.logger.warning(f"Delay aborted for {request.method} {request.url.path}")
            return JSONResponse(
                content=create_error(503, 'Service Unavailable', 'DELAY_ABORTED', {'message': str(e)}).to_body(),
                status_code=503
            )

        if generated.body is None:
            return Response(status_code=generated.status, headers=generated.headers)
        return JSONResponse(content=generated.body, status_code=generated.status, headers=generated.headers)

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_mock_server(
    definitions: Union[str, Path, Mapping[str, Any], List[Any], None] = None,
    **config_kwargs: Any
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        definitions: Definition file path or parsed document to load
        **config_kwargs: MockConfig fields (seed, default_delay, log_level, ...)

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server('mocks.yaml', seed=7, default_delay='FAST')
        app = server.get_app()
    """
    server = MockServer(MockConfig(**config_kwargs))
    if definitions is not None:
        server.load_definitions(definitions)
    return server
