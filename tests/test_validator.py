"""
Tests for APIMock Request Validator

Tests JSON Schema validation of request bodies.
"""

import pytest

from apimock.mock.errors import ConfigurationError, RequestValidationError
from apimock.mock.validator import check_schema, create_validator, validate


USER_SCHEMA = {
    'type': 'object',
    'required': ['name'],
    'properties': {
        'name': {'type': 'string'},
        'age': {'type': 'integer', 'minimum': 0},
    },
}


class TestValidate:
    """Test validate()."""

    def test_valid(self):
        """Test valid data."""
        result = validate({'name': 'Ada', 'age': 36}, USER_SCHEMA)

        assert result.valid
        assert result.errors == []

    def test_invalid_without_raising(self):
        """Test errors are collected with their paths."""
        result = validate({'age': -1}, USER_SCHEMA, throw_on_error=False)

        assert not result.valid
        assert "'name' is a required property" in result.errors
        assert any(error.startswith('age:') for error in result.errors)

    def test_invalid_raises(self):
        """Test throw_on_error raises RequestValidationError with errors."""
        with pytest.raises(RequestValidationError) as exc_info:
            validate({'name': 5}, USER_SCHEMA)

        assert exc_info.value.errors == ["name: 5 is not of type 'string'"]

    def test_to_dict(self):
        """Test result serialization."""
        assert validate({'name': 'x'}, USER_SCHEMA).to_dict() == {'valid': True, 'errors': []}


class TestSchemaChecks:
    """Test schema checking."""

    def test_bad_schema(self):
        """Test malformed schemas raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            check_schema({'type': 12})

    def test_non_mapping_schema(self):
        """Test non-mapping schemas are rejected."""
        with pytest.raises(ConfigurationError):
            check_schema(['type'])

    def test_create_validator(self):
        """Test a reusable validator."""
        check = create_validator(USER_SCHEMA)

        assert check({'name': 'a'}).valid
        assert not check({}, throw_on_error=False).valid
