"""
APIMock Delay Simulation

Simulated network latency for mock responses.

Features:
- Fixed delays, inclusive [min, max] ranges and named presets
- Configuration validated when it is set, never when it is used
- Non-blocking: waits are event-loop timers, so other in-flight requests
  keep progressing while one request is delayed
- Zero delays complete without suspending the caller
- Abortable: DelayController.abort() rejects every pending wait promptly
"""

import asyncio
import inspect
import math
import random
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Set, Tuple, Union

from .errors import ConfigurationError, DelayAbortedError


class DelayPresets(IntEnum):
    """Common latency profiles in milliseconds."""

    INSTANT = 0
    FAST = 50
    NORMAL = 200
    SLOW = 1000
    VERY_SLOW = 3000
    TIMEOUT = 30000


Number = Union[int, float]


def _validate_ms(value: Any, message: str = "Delay must be a non-negative number") -> Number:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value < 0
    ):
        raise ConfigurationError(message)
    return value


def _preset(name: str) -> Optional[int]:
    try:
        return int(DelayPresets[name.upper()])
    except KeyError:
        return None


@dataclass(frozen=True)
class DelaySpec:
    """
    Validated delay configuration: a fixed value (min_ms == max_ms) or an
    inclusive range sampled uniformly per call.
    """

    min_ms: Number = 0
    max_ms: Number = 0

    def __post_init__(self):
        _validate_ms(self.min_ms, "Delay range values must be non-negative")
        _validate_ms(self.max_ms, "Delay range values must be non-negative")
        if self.min_ms > self.max_ms:
            raise ConfigurationError("Minimum delay cannot be greater than maximum delay")

    @property
    def is_fixed(self) -> bool:
        return self.min_ms == self.max_ms

    @classmethod
    def fixed(cls, ms: Number) -> 'DelaySpec':
        _validate_ms(ms)
        return cls(ms, ms)

    @classmethod
    def parse(cls, value: Any) -> Optional['DelaySpec']:
        """
        Build a DelaySpec from any supported configuration form.

        Accepted forms:
            None                      -> no delay configured
            150                       -> fixed 150ms
            [50, 150] / (50, 150)     -> random 50..150ms
            'SLOW'                    -> preset
            {'fixed': 150}
            {'min': 50, 'max': 150}
            {'preset': 'FAST'}

        Raises:
            ConfigurationError: For negative values, min > max, unknown
                presets or unrecognised shapes
        """
        if value is None or isinstance(value, DelaySpec):
            return value

        if isinstance(value, str):
            ms = _preset(value)
            if ms is None:
                raise ConfigurationError(f"Unknown delay preset: {value!r}")
            return cls.fixed(ms)

        if isinstance(value, (list, tuple)):
            if len(value) != 2:
                raise ConfigurationError(f"Delay range must be [min, max], got {value!r}")
            return cls(value[0], value[1])

        if isinstance(value, dict):
            if 'preset' in value:
                return cls.parse(str(value['preset']))
            if 'fixed' in value:
                return cls.fixed(value['fixed'])
            if 'min' in value and 'max' in value:
                return cls(value['min'], value['max'])
            raise ConfigurationError(f"Unrecognised delay configuration: {value!r}")

        return cls.fixed(value)

    def sample(self, rng: Optional[random.Random] = None) -> Number:
        """Pick the delay for one call."""
        if self.is_fixed:
            return self.min_ms
        rng = rng or random
        if float(self.min_ms).is_integer() and float(self.max_ms).is_integer():
            return rng.randint(int(self.min_ms), int(self.max_ms))
        return rng.uniform(self.min_ms, self.max_ms)


async def delay(ms: Number):
    """
    Suspend the current task for ``ms`` milliseconds.

    Raises:
        ConfigurationError: If ms is negative or not a number
    """
    _validate_ms(ms)
    if ms == 0:
        return
    await asyncio.sleep(ms / 1000)


async def random_delay(min_ms: Number, max_ms: Number, rng: Optional[random.Random] = None) -> Number:
    """Suspend for a random duration in [min_ms, max_ms]; returns the chosen ms."""
    ms = DelaySpec(min_ms, max_ms).sample(rng)
    await delay(ms)
    return ms


def _resolve(future: asyncio.Future):
    if not future.done():
        future.set_result(None)


def _reject(future: asyncio.Future, handle: asyncio.TimerHandle):
    handle.cancel()
    if not future.done():
        future.set_exception(DelayAbortedError())


class DelayController:
    """
    Stateful delay source with abort support.

    Example:
        controller = DelayController()
        controller.set_delay_range(50, 150)
        await controller.wait()                 # 50..150ms
        result = await controller.execute(fn)   # wait, then call fn

        controller.abort()                      # pending waits raise DelayAbortedError
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()
        self.default_delay: Number = 0
        self.delay_range: Optional[Tuple[Number, Number]] = None
        self.aborted = False
        self._lock = threading.Lock()
        self._pending: Set[Tuple[asyncio.Future, asyncio.TimerHandle]] = set()

    def set_delay(self, ms: Number) -> 'DelayController':
        _validate_ms(ms)
        self.default_delay = ms
        self.delay_range = None
        return self

    def set_delay_range(self, min_ms: Number, max_ms: Number) -> 'DelayController':
        spec = DelaySpec(min_ms, max_ms)
        self.delay_range = (spec.min_ms, spec.max_ms)
        return self

    def get_delay(self) -> Number:
        """Delay for the next wait(): sampled from the range if one is set."""
        if self.delay_range is not None:
            return DelaySpec(*self.delay_range).sample(self.rng)
        return self.default_delay

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    async def wait(self, ms: Optional[Number] = None):
        """
        Wait for ``ms`` (or the configured delay) without blocking the loop.

        Raises:
            DelayAbortedError: If the controller is aborted before or while waiting
            ConfigurationError: If ms is invalid
        """
        if self.aborted:
            raise DelayAbortedError()

        duration = self.get_delay() if ms is None else _validate_ms(ms)
        if duration == 0:
            return

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        handle = loop.call_later(duration / 1000, _resolve, future)
        entry = (future, handle)

        with self._lock:
            self._pending.add(entry)
        try:
            await future
        finally:
            handle.cancel()
            with self._lock:
                self._pending.discard(entry)

    async def execute(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Wait for the configured delay, then call fn (awaiting it if needed)."""
        await self.wait()
        result = fn(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def abort(self):
        """Reject all pending waits and refuse new ones until reset()."""
        self.aborted = True
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        for future, handle in pending:
            loop = future.get_loop()
            if loop is running:
                _reject(future, handle)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(_reject, future, handle)

    def reset(self):
        """Abort anything pending and restore defaults."""
        self.abort()
        self.default_delay = 0
        self.delay_range = None
        self.aborted = False
