"""
APIMock Request Validator

JSON Schema validation for mock request bodies, backed by ``jsonschema``.

Endpoints registered with a ``validate`` schema have their request bodies
checked before the response pipeline runs; invalid bodies get a 400 response.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError

from .errors import ConfigurationError, RequestValidationError


@dataclass
class ValidationResult:
    """Outcome of validating one value."""

    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'valid': self.valid, 'errors': list(self.errors)}


def check_schema(schema: Any):
    """
    Reject a malformed JSON Schema up front.

    Raises:
        ConfigurationError: If the schema itself is invalid
    """
    if not isinstance(schema, dict):
        raise ConfigurationError(f"Validation schema must be a mapping, got {type(schema).__name__}")
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise ConfigurationError(f"Invalid validation schema: {e.message}") from e


def _format_error(error) -> str:
    path = '.'.join(str(part) for part in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message


def validate(data: Any, schema: Dict[str, Any], throw_on_error: bool = True) -> ValidationResult:
    """
    Validate data against a JSON Schema.

    Args:
        data: Parsed request body
        schema: JSON Schema (draft 7)
        throw_on_error: Raise instead of returning an invalid result

    Returns:
        ValidationResult

    Raises:
        RequestValidationError: Data is invalid and throw_on_error is True
        ConfigurationError: The schema itself is invalid

    Example:
        result = validate({'email': 'x'}, {'type': 'object', 'required': ['name']},
                          throw_on_error=False)
        # result.errors == ["'name' is a required property"]
    """
    check_schema(schema)
    validator = Draft7Validator(schema, format_checker=FormatChecker())
    errors = [
        _format_error(error)
        for error in sorted(validator.iter_errors(data), key=lambda e: [str(part) for part in e.absolute_path])
    ]

    if errors and throw_on_error:
        raise RequestValidationError('Validation failed', errors)
    return ValidationResult(valid=not errors, errors=errors)


def create_validator(schema: Dict[str, Any]) -> Callable[..., ValidationResult]:
    """Check the schema now and return a reusable validate(data, throw_on_error) callable."""
    check_schema(schema)

    def _validate(data: Any, throw_on_error: bool = True) -> ValidationResult:
        return validate(data, schema, throw_on_error=throw_on_error)

    return _validate
