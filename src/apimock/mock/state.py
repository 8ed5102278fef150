"""
APIMock State Store

Cross-request state for stateful mock endpoints (e.g. a POST that adds a
user which a later GET returns).

Features:
- Named stores, created on first use
- Dotted-path get/set plus list push/remove helpers
- Bounded undo history per store (ring buffer of deep copies)
- Change listeners notified after every mutation
- Whole-manager snapshot/restore
"""

import copy
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from .errors import ConfigurationError


MAX_HISTORY = 50

logger = logging.getLogger('apimock.mock.state')


def _not_a_list(path: str) -> TypeError:
    return TypeError(f"Path {path} is not an array")


class StateStore:
    """
    One named piece of state, always handed out as a deep copy.

    Example:
        store = manager.create_store('users', {'items': []})
        store.push('items', {'id': 1})
        store.get('items.0.id')  # -> 1
        store.undo()
    """

    def __init__(self, name: str, initial: Any, manager: 'StateManager', max_history: int = MAX_HISTORY):
        self.name = name
        self.initial = copy.deepcopy(initial)
        self._state = copy.deepcopy(initial)
        self._manager = manager
        self._history: Deque[Any] = deque(maxlen=max_history)
        self._lock = threading.RLock()

    def get_state(self) -> Any:
        with self._lock:
            return copy.deepcopy(self._state)

    def set_state(self, value: Any):
        with self._lock:
            self._push_history()
            self._state = copy.deepcopy(value)
        self._manager.notify(self.name, 'SET', value)

    def update(self, updates: Dict[str, Any]):
        """
        Shallow-merge updates into a mapping state.

        Raises:
            TypeError: If the current state is not a mapping
        """
        with self._lock:
            if not isinstance(self._state, dict):
                raise TypeError('Cannot update non-object state')
            self._push_history()
            self._state = {**self._state, **copy.deepcopy(updates)}
        self._manager.notify(self.name, 'UPDATE', updates)

    def get(self, path: str) -> Any:
        """Read a dotted path; any missing segment yields None."""
        with self._lock:
            value = self._state
            for key in path.split('.'):
                if isinstance(value, dict):
                    value = value.get(key)
                elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
                    value = value[int(key)]
                else:
                    return None
            return copy.deepcopy(value)

    def set(self, path: str, value: Any):
        """Write a dotted path, creating intermediate mappings as needed."""
        with self._lock:
            self._push_history()
            if not isinstance(self._state, dict):
                self._state = {}
            *parents, last = path.split('.')
            target = self._state
            for key in parents:
                if not isinstance(target.get(key), dict):
                    target[key] = {}
                target = target[key]
            target[last] = copy.deepcopy(value)
        self._manager.notify(self.name, 'SET_PATH', {'path': path, 'value': value})

    def push(self, path: str, item: Any):
        with self._lock:
            items = self.get(path)
            if not isinstance(items, list):
                raise _not_a_list(path)
            items.append(copy.deepcopy(item))
            self.set(path, items)
        self._manager.notify(self.name, 'PUSH', {'path': path, 'item': item})

    def remove(self, path: str, predicate: Callable[[Any], bool]) -> Any:
        """Remove and return the first list item at path matching predicate."""
        with self._lock:
            items = self.get(path)
            if not isinstance(items, list):
                raise _not_a_list(path)
            for index, item in enumerate(items):
                if predicate(item):
                    removed = items.pop(index)
                    self.set(path, items)
                    break
            else:
                return None
        self._manager.notify(self.name, 'REMOVE', {'path': path, 'removed': removed})
        return removed

    def reset(self):
        with self._lock:
            self._push_history()
            self._state = copy.deepcopy(self.initial)
        self._manager.notify(self.name, 'RESET', None)

    def undo(self) -> bool:
        """Step back one change; False when there is no history left."""
        with self._lock:
            if not self._history:
                return False
            self._state = self._history.pop()
        self._manager.notify(self.name, 'UNDO', None)
        return True

    def history_length(self) -> int:
        return len(self._history)

    def _push_history(self):
        self._history.append(copy.deepcopy(self._state))


class StateManager:
    """Owns every StateStore and the change listeners."""

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self._stores: Dict[str, StateStore] = {}
        self._listeners: List[Callable[[Dict[str, Any]], Any]] = []
        self._lock = threading.Lock()

    def create_store(self, name: str, initial: Any = None) -> StateStore:
        """Return the store called name, creating it with initial ({} by default) if needed."""
        with self._lock:
            store = self._stores.get(name)
            if store is None:
                store = StateStore(name, {} if initial is None else initial, self, self.max_history)
                self._stores[name] = store
            return store

    def get_store(self, name: str) -> Optional[StateStore]:
        return self._stores.get(name)

    def has_store(self, name: str) -> bool:
        return name in self._stores

    def delete_store(self, name: str) -> bool:
        with self._lock:
            return self._stores.pop(name, None) is not None

    def stores(self) -> List[str]:
        return list(self._stores)

    def reset_all(self):
        for store in list(self._stores.values()):
            store.reset()

    def clear_all(self):
        with self._lock:
            self._stores = {}

    def use(self, listener: Callable[[Dict[str, Any]], Any]):
        """
        Register a change listener.

        Raises:
            ConfigurationError: If listener is not callable
        """
        if not callable(listener):
            raise ConfigurationError('State listener must be callable')
        self._listeners.append(listener)

    def notify(self, store: str, action: str, payload: Any):
        event = {'store': store, 'action': action, 'payload': payload, 'timestamp': time.time()}
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State listener error: {e}")

    def snapshot(self) -> Dict[str, Any]:
        return {name: store.get_state() for name, store in list(self._stores.items())}

    def restore(self, snapshot: Dict[str, Any]):
        for name, state in snapshot.items():
            self.create_store(name, state).set_state(state)
