"""
Tests for APIMock CLI

Tests the routes, request and generate commands.
"""

import json

import pytest

from apimock.cli import main


@pytest.fixture
def definitions_file(tmp_path):
    """JSON definition file with one route and one scenario."""
    path = tmp_path / 'mocks.json'
    path.write_text(json.dumps({
        'routes': [
            {'method': 'GET', 'path': '/users/:id', 'schema': {'id': 'params.id', 'page': '$query.page'}},
        ],
        'scenarios': [
            {'name': 'maintenance', 'status': 503, 'body': {'error': 'down'}},
        ],
    }))
    return path


class TestRoutesCommand:
    """Test 'apimock routes'."""

    def test_lists_routes(self, definitions_file, capsys):
        """Test routes and scenarios are printed."""
        main(['routes', str(definitions_file)])

        out = capsys.readouterr().out
        assert '1 route(s)' in out
        assert '/users/:id' in out
        assert 'maintenance' in out

    def test_missing_file(self, tmp_path, capsys):
        """Test a missing file exits with status 1."""
        with pytest.raises(SystemExit) as exc_info:
            main(['routes', str(tmp_path / 'missing.json')])

        assert exc_info.value.code == 1
        assert 'Failed to load definitions' in capsys.readouterr().out


class TestRequestCommand:
    """Test 'apimock request'."""

    def test_request(self, definitions_file, capsys):
        """Test a request prints the response as JSON."""
        main(['request', str(definitions_file), 'GET', '/users/42', '--query', 'page=3'])

        data = json.loads(capsys.readouterr().out)
        assert data == {'status': 200, 'headers': {}, 'body': {'id': '42', 'page': '3'}}

    def test_request_with_scenario(self, definitions_file, capsys):
        """Test scenarios can be switched on from the command line."""
        main(['request', str(definitions_file), 'GET', '/users/1', '--scenario', 'maintenance'])

        data = json.loads(capsys.readouterr().out)
        assert data['status'] == 503
        assert data['body'] == {'error': 'down'}

    def test_unknown_scenario(self, definitions_file, capsys):
        """Test an unknown scenario exits with status 1."""
        with pytest.raises(SystemExit):
            main(['request', str(definitions_file), 'GET', '/users/1', '--scenario', 'ghost'])

        assert 'ghost' in capsys.readouterr().out

    def test_bad_query_pair(self, definitions_file, capsys):
        """Test malformed key=value pairs are rejected."""
        with pytest.raises(SystemExit):
            main(['request', str(definitions_file), 'GET', '/users/1', '--query', 'oops'])

        assert 'expected key=value' in capsys.readouterr().out


class TestGenerateCommand:
    """Test 'apimock generate'."""

    def test_generate_count(self, tmp_path, capsys):
        """Test rendering several instances."""
        schema = tmp_path / 'user.yaml'
        schema.write_text('id: "{{sequence}}"\nactive: true\n')

        main(['generate', str(schema), '--count', '3', '--seed', '1'])

        data = json.loads(capsys.readouterr().out)
        assert data == [{'id': 1, 'active': True}, {'id': 2, 'active': True}, {'id': 3, 'active': True}]

    def test_generate_single(self, tmp_path, capsys):
        """Test rendering one instance."""
        schema = tmp_path / 'tag.json'
        schema.write_text('{"tag": "{{pick([\\"a\\"])}}"}')

        main(['generate', str(schema)])

        assert json.loads(capsys.readouterr().out) == {'tag': 'a'}


class TestMain:
    """Test main() dispatch."""

    def test_no_command(self, capsys):
        """Test running without a command prints help and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert 'usage' in capsys.readouterr().out
