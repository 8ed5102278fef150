"""
APIMock Mock Module

Schema-driven HTTP mock responses.

This module provides:
- Router with path-parameter matching
- Template interpreter and fake-data generators
- Scenarios, delay and error simulation
- Response orchestration and a FastAPI adapter
"""

from .server import MockServer, MockConfig, MockMetrics, create_mock_server
from .handler import ResponseHandler, GeneratedResponse, ResponseState
from .context import RequestContext
from .router import Router, EndpointConfig, CompiledRoute, RouteMatch
from .schema import TemplateInterpreter, Schema, create_schema, parse_args, parse_arg_value
from .generators import GeneratorRegistry, GeneratorKind, BuiltinGenerators
from .scenario import ScenarioManager, ScenarioPresets, Scenario
from .delay import DelayController, DelayPresets, DelaySpec, delay, random_delay
from .errors import (
    APIMockError,
    ConfigurationError,
    ScenarioNotFoundError,
    DelayAbortedError,
    RequestValidationError,
    SimulatedError,
    ErrorSimulator,
    COMMON_ERRORS,
    create_error,
    simulate_error
)
from .state import StateManager, StateStore
from .logger import RequestLogger, LogEntry
from .validator import validate, create_validator, ValidationResult
from .interceptor import InterceptorChain, builtin_interceptors

__all__ = [
    # Server
    'MockServer',
    'MockConfig',
    'MockMetrics',
    'create_mock_server',

    # Pipeline
    'ResponseHandler',
    'GeneratedResponse',
    'ResponseState',
    'RequestContext',
    'Router',
    'EndpointConfig',
    'CompiledRoute',
    'RouteMatch',
    'TemplateInterpreter',
    'Schema',
    'create_schema',
    'parse_args',
    'parse_arg_value',
    'GeneratorRegistry',
    'GeneratorKind',
    'BuiltinGenerators',
    'ScenarioManager',
    'ScenarioPresets',
    'Scenario',
    'DelayController',
    'DelayPresets',
    'DelaySpec',
    'delay',
    'random_delay',

    # Errors
    'APIMockError',
    'ConfigurationError',
    'ScenarioNotFoundError',
    'DelayAbortedError',
    'RequestValidationError',
    'SimulatedError',
    'ErrorSimulator',
    'COMMON_ERRORS',
    'create_error',
    'simulate_error',

    # Collaborators
    'StateManager',
    'StateStore',
    'RequestLogger',
    'LogEntry',
    'validate',
    'create_validator',
    'ValidationResult',
    'InterceptorChain',
    'builtin_interceptors',
]

__version__ = '1.0.0'
