"""
Tests for APIMock Scenarios

Tests scenario definition, activation scopes, evaluation order and presets.
"""

import logging

import pytest

from apimock.mock.context import RequestContext
from apimock.mock.errors import ConfigurationError, ScenarioNotFoundError
from apimock.mock.scenario import (
    GLOBAL_SCOPE,
    ScenarioManager,
    ScenarioPresets,
    condition_from_when,
)


@pytest.fixture
def manager():
    """Empty scenario manager."""
    return ScenarioManager()


@pytest.fixture
def request_context():
    """Plain GET request."""
    return RequestContext(method='GET', path='/users/1', query={'mode': 'test'},
                          headers={'X-Client': 'cli'})


class TestDefinition:
    """Test define/remove/list."""

    def test_define_and_list(self, manager):
        """Test defined scenarios are listed in order."""
        manager.define('a').define('b', status=503)

        assert manager.list() == ['a', 'b']
        assert manager.has('b')
        assert manager.get('b').status == 503

    @pytest.mark.parametrize('name', ['', '   ', None, 42])
    def test_invalid_name(self, manager, name):
        """Test empty or non-string names fail fast."""
        with pytest.raises(ConfigurationError, match='non-empty string'):
            manager.define(name)

    def test_non_callable_condition(self, manager):
        """Test non-callable conditions fail fast."""
        with pytest.raises(ConfigurationError):
            manager.define('bad', condition='always')

    def test_invalid_status(self, manager):
        """Test invalid status overrides fail fast."""
        with pytest.raises(ConfigurationError):
            manager.define('bad', status=1000)

    def test_redefine_replaces(self, manager, request_context):
        """Test redefinition replaces overrides but keeps activation."""
        manager.define('s', status=500).activate('s')
        manager.define('s', status=502)

        assert manager.evaluate('/users/:id', request_context).status == 502

    def test_remove(self, manager):
        """Test removing forgets definition and activations."""
        manager.define('s').activate('s').activate('s', '/x')

        assert manager.remove('s') is True
        assert not manager.has('s')
        assert manager.activations() == {}
        assert manager.remove('s') is False


class TestActivation:
    """Test activate/deactivate/reset."""

    def test_activate_unknown(self, manager):
        """Test activating an undefined scenario raises."""
        with pytest.raises(ScenarioNotFoundError, match='Scenario "ghost" not found'):
            manager.activate('ghost')

    def test_multiple_scopes(self, manager):
        """Test a scenario can be active in several scopes at once."""
        manager.define('s').activate('s').activate('s', '/a')

        assert manager.is_active('s', GLOBAL_SCOPE)
        assert manager.is_active('s', '/a')
        assert not manager.is_active('s', '/b')

    def test_deactivate_one_scope(self, manager):
        """Test deactivating one scope leaves others."""
        manager.define('s').activate('s').activate('s', '/a')
        manager.deactivate('s', '/a')

        assert manager.is_active('s')
        assert not manager.is_active('s', '/a')

    def test_deactivate_inactive_is_noop(self, manager):
        """Test deactivating something inactive does nothing."""
        manager.define('s')
        manager.deactivate('s', '/nowhere')

        assert manager.activations() == {}

    def test_reset_keeps_definitions(self, manager, request_context):
        """Test reset clears activations only."""
        manager.define('s').activate('s')
        manager.reset()

        assert manager.has('s')
        assert manager.evaluate('/users/:id', request_context) is None


class TestEvaluation:
    """Test evaluate ordering and error handling."""

    def test_endpoint_scoped_match_when_global_does_not(self, manager, request_context):
        """Test a never-matching global and an always-matching scoped scenario."""
        manager.define('global-never', condition=lambda req: False)
        manager.define('scoped-always', condition=lambda req: True)
        manager.activate('global-never')
        manager.activate('scoped-always', '/users/:id')

        result = manager.evaluate('/users/:id', request_context)

        assert result.name == 'scoped-always'

    def test_global_first(self, manager, request_context):
        """Test global scenarios are checked before scoped ones."""
        manager.define('scoped').define('global')
        manager.activate('scoped', '/users/:id')
        manager.activate('global')

        assert [s.name for s in manager.active_scenarios('/users/:id')] == ['global', 'scoped']
        assert manager.evaluate('/users/:id', request_context).name == 'global'

    def test_deduplicated(self, manager):
        """Test a scenario active globally and scoped appears once."""
        manager.define('s').activate('s').activate('s', '/x')

        assert [s.name for s in manager.active_scenarios('/x')] == ['s']

    def test_other_endpoint_not_affected(self, manager, request_context):
        """Test scoped scenarios do not leak to other endpoints."""
        manager.define('s').activate('s', '/orders')

        assert manager.evaluate('/users/:id', request_context) is None

    def test_aliases(self, manager, request_context):
        """Test method-qualified keys are consulted as aliases."""
        manager.define('s').activate('s', 'GET /users/:id')

        assert manager.evaluate('/users/:id', request_context) is None
        assert manager.evaluate('/users/:id', request_context, aliases=('GET /users/:id',)).name == 's'

    def test_condition_error_is_non_match(self, manager, request_context, caplog):
        """Test a raising condition is logged and skipped."""
        manager.define('broken', condition=lambda req: req.nonexistent.attr)
        manager.define('fallback')
        manager.activate('broken')
        manager.activate('fallback')

        with caplog.at_level(logging.WARNING, logger='apimock.mock.scenario'):
            result = manager.evaluate('/users/:id', request_context)

        assert result.name == 'fallback'
        assert 'broken' in caplog.text

    def test_condition_receives_request(self, manager, request_context):
        """Test the condition sees the request context."""
        seen = []
        manager.define('spy', condition=lambda req: seen.append(req) or False).activate('spy')

        manager.evaluate('/users/:id', request_context)

        assert seen == [request_context]


class TestWhenConditions:
    """Test definition-file conditions."""

    def test_empty_when_always_matches(self, request_context):
        """Test no 'when' block matches everything."""
        assert condition_from_when(None)(request_context) is True

    def test_query_and_header_equality(self, request_context):
        """Test query and header values are compared as strings."""
        assert condition_from_when({'query': {'mode': 'test'}})(request_context)
        assert condition_from_when({'headers': {'x-client': 'cli'}})(request_context)
        assert not condition_from_when({'query': {'mode': 'prod'}})(request_context)

    def test_unknown_keys(self):
        """Test unsupported condition keys fail fast."""
        with pytest.raises(ConfigurationError):
            condition_from_when({'body': {}})


class TestScenarioPresets:
    """Test preset factories."""

    def test_unauthorized(self):
        """Test unauthorized matches requests without Authorization."""
        preset = ScenarioPresets.unauthorized()

        assert preset['status'] == 401
        assert preset['condition'](RequestContext()) is True
        assert preset['condition'](RequestContext(headers={'Authorization': 'Bearer x'})) is False

    def test_rate_limited_is_stateful(self):
        """Test rate_limited matches after the limit."""
        preset = ScenarioPresets.rate_limited(limit=2)
        condition = preset['condition']

        assert [condition(None) for _ in range(4)] == [False, False, True, True]
        assert preset['headers'] == {'Retry-After': '60'}
        assert preset['status'] == 429

    def test_maintenance(self):
        """Test maintenance always matches with 503."""
        preset = ScenarioPresets.maintenance()

        assert preset['status'] == 503
        assert preset['condition'](RequestContext())

    def test_query_param_and_header(self, request_context):
        """Test equality presets."""
        assert ScenarioPresets.query_param('mode', 'test')['condition'](request_context)
        assert not ScenarioPresets.query_param('mode', 'x')['condition'](request_context)
        assert ScenarioPresets.header('X-Client', 'cli')['condition'](request_context)

    def test_presets_feed_define(self, manager):
        """Test presets are valid define() keyword arguments."""
        manager.define('auth', **ScenarioPresets.unauthorized())
        manager.define('limited', **ScenarioPresets.rate_limited(5))

        assert manager.list() == ['auth', 'limited']
