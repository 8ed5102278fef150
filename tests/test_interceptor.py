"""
Tests for APIMock Interceptors

Tests the interceptor chain and the built-in interceptors.
"""

import asyncio
import time

import pytest

from apimock.mock.context import RequestContext
from apimock.mock.errors import ConfigurationError
from apimock.mock.interceptor import INTERCEPTOR_ERROR_KEY, InterceptorChain, builtin_interceptors


@pytest.fixture
def request_context():
    """Authenticated GET request from a known client."""
    return RequestContext(
        method='GET',
        path='/users',
        headers={'Authorization': 'Bearer abc123'},
        extra={'ip': '10.0.0.1'}
    )


class TestInterceptorChain:
    """Test InterceptorChain."""

    def test_results_merged_in_order(self, request_context):
        """Test later interceptors see and override earlier results."""
        chain = InterceptorChain()
        chain.use(lambda req, ctx: {'a': 1, 'b': 1})
        chain.use(lambda req, ctx: {'b': ctx['a'] + 1})

        assert asyncio.run(chain.execute(request_context)) == {'a': 1, 'b': 2}

    def test_async_interceptor(self, request_context):
        """Test awaitable results are awaited."""
        async def slow(req, ctx):
            return {'async': True}

        chain = InterceptorChain().use(slow)

        assert asyncio.run(chain.execute(request_context)) == {'async': True}

    def test_none_keeps_context(self, request_context):
        """Test returning None leaves the context unchanged."""
        chain = InterceptorChain().use(lambda req, ctx: None)

        assert asyncio.run(chain.execute(request_context, {'x': 1})) == {'x': 1}

    def test_error_stops_chain(self, request_context):
        """Test the first exception is stored and later interceptors skipped."""
        calls = []

        def broken(req, ctx):
            raise ValueError('bad token')

        chain = InterceptorChain()
        chain.use(broken)
        chain.use(lambda req, ctx: calls.append('after'))

        result = asyncio.run(chain.execute(request_context))

        assert isinstance(result[INTERCEPTOR_ERROR_KEY], ValueError)
        assert calls == []

    @pytest.mark.parametrize('value', [True, ['a'], 'text'])
    def test_non_mapping_result_is_error(self, request_context, value):
        """Test a non-mapping return value is stored as the chain error."""
        calls = []
        chain = InterceptorChain()
        chain.use(lambda req, ctx: value)
        chain.use(lambda req, ctx: calls.append('after'))

        result = asyncio.run(chain.execute(request_context, {'x': 1}))

        assert isinstance(result[INTERCEPTOR_ERROR_KEY], TypeError)
        assert result['x'] == 1
        assert calls == []

    def test_initial_context_not_mutated(self, request_context):
        """Test the caller's mapping is copied."""
        initial = {'x': 1}
        chain = InterceptorChain().use(lambda req, ctx: {'y': 2})

        asyncio.run(chain.execute(request_context, initial))

        assert initial == {'x': 1}

    def test_use_remove_clear(self):
        """Test chain management."""
        first = lambda req, ctx: None  # noqa: E731
        chain = InterceptorChain().use(first).use(lambda req, ctx: None)

        assert chain.count == 2
        assert chain.remove(first).count == 1
        assert chain.clear().count == 0

    def test_non_callable(self):
        """Test non-callables are rejected."""
        with pytest.raises(ConfigurationError):
            InterceptorChain().use('nope')


class TestBuiltinInterceptors:
    """Test built-in interceptors."""

    def test_auth(self, request_context):
        """Test bearer tokens are extracted."""
        result = builtin_interceptors.auth()(request_context, {})

        assert result == {'authenticated': True, 'auth_token': 'abc123'}
        assert builtin_interceptors.auth()(RequestContext(), {}) == {
            'authenticated': False,
            'auth_token': None,
        }

    def test_timestamp(self, request_context):
        """Test timestamps are added."""
        result = builtin_interceptors.timestamp()(request_context, {})

        assert isinstance(result['request_timestamp'], int)
        assert result['request_date'].endswith('+00:00')

    def test_rate_limit(self, request_context):
        """Test requests over the limit are flagged per client."""
        limit = builtin_interceptors.rate_limit(max_requests=2)

        results = [limit(request_context, {}) for _ in range(3)]
        other = limit(RequestContext(extra={'ip': '10.0.0.2'}), {})

        assert [r['rate_limited'] for r in results] == [False, False, True]
        assert results[1]['rate_limit_remaining'] == 0
        assert other['rate_limited'] is False

    def test_rate_limit_evicts_idle_clients(self, request_context):
        """Test clients with an expired window are dropped."""
        limit = builtin_interceptors.rate_limit(max_requests=5, window_ms=10)

        limit(request_context, {})
        time.sleep(0.05)
        limit(RequestContext(extra={'ip': '10.0.0.2'}), {})

        assert list(limit.windows) == ['10.0.0.2']

    def test_conditional(self, request_context):
        """Test the modifier runs only when the condition holds."""
        interceptor = builtin_interceptors.conditional(
            lambda req, ctx: req.method == 'POST',
            lambda req, ctx: {'write': True}
        )

        assert interceptor(request_context, {'x': 1}) == {'x': 1}
        assert interceptor(RequestContext(method='POST'), {}) == {'write': True}

    def test_logger(self, request_context):
        """Test the logging interceptor calls the log function."""
        lines = []
        interceptor = builtin_interceptors.logger(lambda message, data: lines.append(message))

        interceptor(request_context, {})

        assert lines == ['[APIMock] GET /users']
