"""
Tests for APIMock State Store

Tests stores, dotted paths, undo history and change listeners.
"""

import logging

import pytest

from apimock.mock.errors import ConfigurationError
from apimock.mock.state import MAX_HISTORY, StateManager


@pytest.fixture
def manager():
    """Empty state manager."""
    return StateManager()


@pytest.fixture
def store(manager):
    """Users store with an empty item list."""
    return manager.create_store('users', {'items': [], 'count': 0})


class TestStateStore:
    """Test StateStore operations."""

    def test_state_is_copied(self, store):
        """Test callers cannot mutate stored state."""
        state = store.get_state()
        state['items'].append('x')

        assert store.get_state() == {'items': [], 'count': 0}

    def test_dotted_paths(self, store):
        """Test get/set through nested paths."""
        store.set('settings.theme.color', 'blue')

        assert store.get('settings.theme.color') == 'blue'
        assert store.get('settings.missing.deep') is None

    def test_push_and_index(self, store):
        """Test pushing items and reading by index."""
        store.push('items', {'id': 1})
        store.push('items', {'id': 2})

        assert store.get('items.1.id') == 2
        assert store.get('items.5') is None

    def test_push_to_non_list(self, store):
        """Test push on a non-list path raises TypeError."""
        with pytest.raises(TypeError, match='Path count is not an array'):
            store.push('count', 1)

    def test_remove(self, store):
        """Test removing the first matching item."""
        store.push('items', {'id': 1})
        store.push('items', {'id': 2})

        removed = store.remove('items', lambda item: item['id'] == 1)

        assert removed == {'id': 1}
        assert store.get('items') == [{'id': 2}]
        assert store.remove('items', lambda item: item['id'] == 99) is None

    def test_update(self, store):
        """Test shallow merge."""
        store.update({'count': 3})

        assert store.get_state() == {'items': [], 'count': 3}

    def test_update_non_mapping(self, manager):
        """Test update on list state raises TypeError."""
        listing = manager.create_store('list', [1, 2])

        with pytest.raises(TypeError):
            listing.update({'a': 1})

    def test_undo(self, store):
        """Test undo restores the previous state."""
        store.set_state({'items': ['a']})
        store.set_state({'items': ['b']})

        assert store.undo() is True
        assert store.get_state() == {'items': ['a']}
        assert store.undo() is True
        assert store.undo() is False

    def test_history_bounded(self, store):
        """Test only the most recent changes are kept for undo."""
        for i in range(MAX_HISTORY + 10):
            store.set('count', i)

        assert store.history_length() == MAX_HISTORY

        for _ in range(MAX_HISTORY):
            assert store.undo()
        assert store.undo() is False
        assert store.get('count') == 9

    def test_reset(self, store):
        """Test reset returns to the initial state."""
        store.push('items', 1)
        store.reset()

        assert store.get_state() == {'items': [], 'count': 0}


class TestStateManager:
    """Test StateManager."""

    def test_create_store_is_idempotent(self, manager):
        """Test create_store returns the existing store."""
        first = manager.create_store('a', {'x': 1})
        second = manager.create_store('a', {'x': 2})

        assert first is second
        assert second.get('x') == 1

    def test_default_initial_state(self, manager):
        """Test stores start as an empty mapping."""
        assert manager.create_store('empty').get_state() == {}

    def test_store_lifecycle(self, manager):
        """Test has/get/delete/stores."""
        manager.create_store('a')

        assert manager.has_store('a')
        assert manager.stores() == ['a']
        assert manager.delete_store('a') is True
        assert manager.get_store('a') is None
        assert manager.delete_store('a') is False

    def test_listeners(self, manager, store):
        """Test listeners receive change events."""
        events = []
        manager.use(events.append)

        store.set_state({'items': []})

        assert events[0]['store'] == 'users'
        assert events[0]['action'] == 'SET'

    def test_listener_error_is_logged(self, manager, store, caplog):
        """Test a failing listener does not break mutations."""
        def broken(event):
            raise RuntimeError('listener down')

        manager.use(broken)

        with caplog.at_level(logging.ERROR, logger='apimock.mock.state'):
            store.set('count', 1)

        assert store.get('count') == 1
        assert 'listener down' in caplog.text

    def test_non_callable_listener(self, manager):
        """Test listeners must be callable."""
        with pytest.raises(ConfigurationError):
            manager.use('nope')

    def test_snapshot_restore(self, manager, store):
        """Test snapshot and restore of every store."""
        store.set('count', 5)
        snapshot = manager.snapshot()
        store.set('count', 9)

        manager.restore(snapshot)

        assert store.get('count') == 5

    def test_reset_and_clear_all(self, manager, store):
        """Test reset_all keeps stores, clear_all drops them."""
        store.set('count', 5)
        manager.reset_all()
        assert store.get('count') == 0

        manager.clear_all()
        assert manager.stores() == []
