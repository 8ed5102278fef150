"""
Tests for APIMock Request Context
"""

from apimock.mock.context import RequestContext


class TestRequestContext:
    """Test RequestContext construction."""

    def test_normalization(self):
        """Test method is upper-cased and header names lower-cased."""
        context = RequestContext(method='post', headers={'X-Token': 'abc'})

        assert context.method == 'POST'
        assert context.headers == {'x-token': 'abc'}
        assert context.header('X-TOKEN') == 'abc'

    def test_from_mapping(self):
        """Test known keys are mapped and unknown keys land in extra."""
        context = RequestContext.from_mapping('get', '/users/1', {
            'query': {'page': '2'},
            'body': {'a': 1},
            'ip': '127.0.0.1',
        }, params={'id': '1'})

        assert context.query == {'page': '2'}
        assert context.body == {'a': 1}
        assert context.params == {'id': '1'}
        assert context.extra == {'ip': '127.0.0.1'}

    def test_with_params(self):
        """Test binding params returns a new context."""
        context = RequestContext(path='/users/1')
        bound = context.with_params({'id': '1'})

        assert bound.params == {'id': '1'}
        assert context.params == {}
        assert bound.to_dict()['path'] == '/users/1'
