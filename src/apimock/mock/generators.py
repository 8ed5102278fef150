"""
APIMock Generators

Fake-data generators invoked from schema placeholders such as
``{{fullName}}`` or ``{{integer(10, 20)}}``.

Features:
- Closed set of built-in generator kinds (GeneratorKind)
- Seedable: one random.Random drives numbers and picks, Faker drives
  human-looking values, both derived from the same seed
- Explicit registry passed into the template interpreter (no global table)
- Name-keyed, lock-protected counters for the ``sequence`` generator
"""

import inspect
import math
import random
import re
import threading
import uuid as uuid_module
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from faker import Faker

from .errors import ConfigurationError


_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class GeneratorKind(str, Enum):
    """Built-in generator names as they appear in schemas."""

    UUID = 'uuid'
    EMAIL = 'email'
    FIRST_NAME = 'firstName'
    LAST_NAME = 'lastName'
    FULL_NAME = 'fullName'
    NAME = 'name'
    DATE = 'date'
    INTEGER = 'integer'
    FLOAT = 'float'
    BOOLEAN = 'boolean'
    PHONE = 'phone'
    LOREM = 'lorem'
    PICK = 'pick'
    ONE_OF = 'oneOf'
    URL = 'url'
    SEQUENCE = 'sequence'


BUILTIN_GENERATOR_NAMES = frozenset(kind.value for kind in GeneratorKind)


def _as_number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if math.isnan(value) or math.isinf(value):
        return default
    return value


def _as_datetime(value: Any, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return default
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return default


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc.microsecond // 1000:03d}Z"


class BuiltinGenerators:
    """
    Implementations of every GeneratorKind.

    All randomness flows from ``rng`` (and a Faker instance seeded from it),
    so two instances built with the same seed produce the same values.

    Example:
        gens = BuiltinGenerators(seed=42)
        gens.integer(10, 20)      # -> int in [10, 20]
        gens.full_name()          # -> 'Jennifer Green'
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random(seed)
        self.faker = Faker()
        self.faker.seed_instance(self.rng.getrandbits(32))
        self._sequences: Dict[str, int] = {}
        self._sequence_lock = threading.Lock()

    def uuid(self) -> str:
        return str(uuid_module.UUID(int=self.rng.getrandbits(128), version=4))

    def email(self) -> str:
        return self.faker.email()

    def first_name(self) -> str:
        return self.faker.first_name()

    def last_name(self) -> str:
        return self.faker.last_name()

    def full_name(self) -> str:
        return f"{self.first_name()} {self.last_name()}"

    def date(self, start: Any = None, end: Any = None) -> str:
        """
        Random timestamp between start and end (default: the last 365 days).

        Args:
            start: ISO string or datetime lower bound
            end: ISO string or datetime upper bound

        Returns:
            ISO-8601 UTC string, e.g. '2024-03-01T12:30:00.123Z'
        """
        end_dt = _as_datetime(end, datetime.now(timezone.utc))
        start_dt = _as_datetime(start, end_dt - timedelta(days=365))
        if start_dt > end_dt:
            start_dt, end_dt = end_dt, start_dt
        span = (end_dt - start_dt).total_seconds()
        return format_timestamp(start_dt + timedelta(seconds=self.rng.uniform(0, span)))

    def integer(self, min: Any = 0, max: Any = 1000) -> int:
        low = math.ceil(_as_number(min, 0))
        high = math.floor(_as_number(max, 1000))
        if low > high:
            low, high = high, low
        return self.rng.randint(low, high)

    def float(self, min: Any = 0, max: Any = 1000, decimals: Any = 2) -> float:
        low = _as_number(min, 0)
        high = _as_number(max, 1000)
        places = int(_as_number(decimals, 2))
        if low > high:
            low, high = high, low
        return round(self.rng.uniform(low, high), places if places > 0 else 0)

    def boolean(self, probability: Any = 0.5) -> bool:
        return self.rng.random() < _as_number(probability, 0.5)

    def phone(self) -> str:
        return self.faker.numerify('(%##) %##-####')

    def lorem(self, words: Any = 10) -> str:
        count = int(_as_number(words, 10))
        return ' '.join(self.faker.words(nb=max(count, 0)))

    def pick(self, items: Any = None) -> Any:
        if not isinstance(items, (list, tuple)) or not items:
            return None
        return self.rng.choice(list(items))

    def one_of(self, *options: Any) -> Any:
        # oneOf(['a', 'b']) and oneOf('a', 'b') are both accepted
        if len(options) == 1 and isinstance(options[0], (list, tuple)):
            return self.pick(options[0])
        return self.pick(list(options))

    def url(self) -> str:
        return self.faker.url()

    def sequence(self, name: Any = 'default', start: Any = 1) -> int:
        """Next value of a named counter; counters are independent per name."""
        key = str(name)
        with self._sequence_lock:
            if key not in self._sequences:
                self._sequences[key] = int(_as_number(start, 1))
            else:
                self._sequences[key] += 1
            return self._sequences[key]

    def reset_sequence(self, name: Optional[str] = None):
        """Reset one named counter, or all of them."""
        with self._sequence_lock:
            if name is None:
                self._sequences.clear()
            else:
                self._sequences.pop(str(name), None)

    def as_mapping(self) -> Dict[str, Callable[..., Any]]:
        """Map every GeneratorKind to its bound implementation."""
        return {
            GeneratorKind.UUID.value: self.uuid,
            GeneratorKind.EMAIL.value: self.email,
            GeneratorKind.FIRST_NAME.value: self.first_name,
            GeneratorKind.LAST_NAME.value: self.last_name,
            GeneratorKind.FULL_NAME.value: self.full_name,
            GeneratorKind.NAME.value: self.full_name,
            GeneratorKind.DATE.value: self.date,
            GeneratorKind.INTEGER.value: self.integer,
            GeneratorKind.FLOAT.value: self.float,
            GeneratorKind.BOOLEAN.value: self.boolean,
            GeneratorKind.PHONE.value: self.phone,
            GeneratorKind.LOREM.value: self.lorem,
            GeneratorKind.PICK.value: self.pick,
            GeneratorKind.ONE_OF.value: self.one_of,
            GeneratorKind.URL.value: self.url,
            GeneratorKind.SEQUENCE.value: self.sequence,
        }


class GeneratorRegistry:
    """
    Name -> generator mapping consulted by the template interpreter.

    Built-in kinds are always present (unless include_builtins=False);
    extensions are registered explicitly and validated at registration time.

    Example:
        registry = GeneratorRegistry(seed=7)
        registry.register('sku', lambda: 'SKU-001')
        registry.call('integer', [1, 6])
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        include_builtins: bool = True
    ):
        """
        Initialize registry.

        Args:
            seed: Seed for the built-in generators
            rng: Random instance for the built-ins (takes precedence over seed)
            include_builtins: Register every GeneratorKind on creation
        """
        self.builtins = BuiltinGenerators(seed=seed, rng=rng)
        self._lock = threading.Lock()
        self._generators: Dict[str, Callable[..., Any]] = (
            self.builtins.as_mapping() if include_builtins else {}
        )

    def register(self, name: str, fn: Callable[..., Any], override: bool = False) -> 'GeneratorRegistry':
        """
        Register an extension generator.

        Args:
            name: Identifier used in placeholders
            fn: Callable invoked with the parsed placeholder arguments
            override: Allow replacing a built-in kind

        Raises:
            ConfigurationError: Invalid name, non-callable fn, or an attempt
                to shadow a built-in without override=True
        """
        if not isinstance(name, str) or not _NAME_PATTERN.match(name):
            raise ConfigurationError(f"Invalid generator name: {name!r}")
        if not callable(fn):
            raise ConfigurationError(f"Generator '{name}' must be callable")
        if name in BUILTIN_GENERATOR_NAMES and not override:
            raise ConfigurationError(
                f"Generator '{name}' is built in; pass override=True to replace it"
            )

        with self._lock:
            generators = dict(self._generators)
            generators[name] = fn
            self._generators = generators
        return self

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._generators:
                return False
            generators = dict(self._generators)
            del generators[name]
            self._generators = generators
        return True

    def get(self, name: str) -> Optional[Callable[..., Any]]:
        return self._generators.get(name)

    def names(self) -> List[str]:
        return sorted(self._generators)

    def __contains__(self, name: object) -> bool:
        return name in self._generators

    def call(self, name: str, args: Optional[List[Any]] = None) -> Any:
        """
        Invoke a generator with positional arguments.

        A single mapping argument whose keys are all parameter names of the
        generator is passed as keyword arguments, so both
        ``{{integer(10, 20)}}`` and ``{{integer({"min": 10, "max": 20})}}``
        work.

        Raises:
            KeyError: Unknown generator name
        """
        fn = self._generators[name]
        args = list(args or [])

        if len(args) == 1 and isinstance(args[0], dict) and args[0]:
            try:
                params = inspect.signature(fn).parameters
            except (TypeError, ValueError):
                params = {}
            if params and all(key in params for key in args[0]):
                return fn(**args[0])

        return fn(*args)

    def reset_sequences(self, name: Optional[str] = None):
        self.builtins.reset_sequence(name)
