"""
Tests for APIMock Errors

Tests the simulated-error catalogue and the error simulator.
"""

import random

import pytest

from apimock.mock.errors import (
    COMMON_ERRORS,
    ConfigurationError,
    ErrorSimulator,
    SimulatedError,
    coerce_error,
    create_error,
    error_for_status,
    get_common_error,
    simulate_error,
)


class TestCatalogue:
    """Test the common error catalogue."""

    def test_known_entries(self):
        """Test a few catalogue entries."""
        assert get_common_error('notFound') == SimulatedError(404, 'Not Found', 'NOT_FOUND')
        assert get_common_error('tooManyRequests').status == 429
        assert get_common_error('missing') is None

    def test_statuses_are_unique(self):
        """Test every catalogue entry has its own status."""
        statuses = [e.status for e in COMMON_ERRORS.values()]

        assert len(statuses) == len(set(statuses))

    def test_error_for_status(self):
        """Test catalogue lookup and generic fallback."""
        assert error_for_status(503).code == 'SERVICE_UNAVAILABLE'
        generic = error_for_status(418)
        assert generic.status == 418
        assert generic.code == 'SIMULATED_ERROR'

    def test_to_body(self):
        """Test body rendering includes details only when present."""
        assert get_common_error('forbidden').to_body() == {'error': 'Forbidden', 'code': 'FORBIDDEN'}

        custom = create_error(400, 'Invalid email', code='VALIDATION_ERROR', details={'field': 'email'})
        assert custom.to_body() == {
            'error': 'Invalid email',
            'code': 'VALIDATION_ERROR',
            'details': {'field': 'email'},
        }


class TestCoerceError:
    """Test coerce_error."""

    def test_forms(self):
        """Test status, name, mapping and instance forms."""
        assert coerce_error(404).code == 'NOT_FOUND'
        assert coerce_error('badGateway').status == 502
        assert coerce_error({'status': 400, 'message': 'Nope'}) == SimulatedError(400, 'Nope', 'BAD_REQUEST')
        error = SimulatedError(500, 'x')
        assert coerce_error(error) is error

    @pytest.mark.parametrize('value', ['nonsense', True, 1.5, {'status': 'high'}, ['x'], 1000, 42, {'status': 600}])
    def test_invalid(self, value):
        """Test unrecognised values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            coerce_error(value)


class TestErrorSimulator:
    """Test ErrorSimulator."""

    def test_probability_one_always_triggers(self):
        """Test p=1 returns an error on every call."""
        simulator = ErrorSimulator(probability=1.0, rng=random.Random(1))

        assert all(simulator.roll() is not None for _ in range(1000))

    def test_probability_zero_never_triggers(self):
        """Test p=0 never returns an error."""
        simulator = ErrorSimulator(probability=0.0, rng=random.Random(1))

        assert all(simulator.roll() is None for _ in range(1000))

    def test_rate_is_approximate(self):
        """Test p=0.5 lands near half over many trials."""
        simulator = ErrorSimulator(probability=0.5, rng=random.Random(42))

        hits = sum(1 for _ in range(2000) if simulator.should_trigger())

        assert 850 < hits < 1150

    def test_status_list(self):
        """Test statuses are chosen from the configured list."""
        simulator = ErrorSimulator(probability=1.0, status=[500, 503], rng=random.Random(7))

        statuses = {simulator.roll().status for _ in range(200)}

        assert statuses == {500, 503}
        assert simulator.statuses == [500, 503]

    def test_external_rng(self):
        """Test the rng passed to roll() drives the draw."""
        simulator = ErrorSimulator(probability=0.3)

        first = [simulator.should_trigger(random.Random(5)) for _ in range(3)]
        second = [simulator.should_trigger(random.Random(5)) for _ in range(3)]

        assert first == second

    @pytest.mark.parametrize('kwargs', [
        {'probability': -0.1},
        {'probability': 1.1},
        {'probability': 'often'},
        {'probability': 0.5, 'status': []},
        {'probability': 0.5, 'status': ['500']},
        {'probability': 0.5, 'status': [500, 1000]},
        {'probability': 0.5, 'status': 99},
    ])
    def test_invalid_configuration(self, kwargs):
        """Test invalid configuration fails on construction."""
        with pytest.raises(ConfigurationError):
            ErrorSimulator(**kwargs)


class TestSimulateError:
    """Test the one-shot helper."""

    def test_always_and_never(self):
        """Test extremes of simulate_error."""
        assert simulate_error(1.0, 'conflict').status == 409
        assert simulate_error(0.0, 'conflict') is None
