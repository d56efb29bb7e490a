"""Rate limiting for side effects triggered by bursts of navigation events.

Throttled calls only ever elide or delay side effects. Callers keep their state up to
date on every event and let the throttled function read that state when it runs.
"""

import asyncio
import dataclasses
import time
from collections.abc import Callable
from typing import Any, Protocol


class Handle(Protocol):
    def cancel(self) -> None: ...


class LoopScheduler:
    """Schedules callbacks on the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        return asyncio.get_running_loop().call_later(delay, callback)


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...


@dataclasses.dataclass
class SessionContext:
    """Time and scheduling for one analysis session."""

    clock: Callable[[], float] = time.monotonic
    scheduler: Scheduler = dataclasses.field(default_factory=LoopScheduler)

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        return self.scheduler.call_later(delay, callback)


@dataclasses.dataclass
class RateLimiter:
    """Minimum interval policy: remembers when it last let a call through."""

    interval: float
    clock: Callable[[], float] = time.monotonic
    last_invoked: float | None = None

    def remaining(self) -> float:
        """Seconds until the next call may go through."""
        if self.last_invoked is None:
            return 0.0
        return max(0.0, self.last_invoked + self.interval - self.clock())

    def ready(self) -> bool:
        return self.remaining() == 0.0

    def mark(self) -> None:
        self.last_invoked = self.clock()


class Throttle:
    """Run a function at most once per interval.

    Calls inside the interval are dropped, or with `trailing` coalesced into a single
    call with the latest arguments once the interval has passed.
    """

    def __init__(
        self,
        interval: float,
        func: Callable[..., Any],
        context: SessionContext,
        *,
        trailing: bool = True,
    ) -> None:
        self.func = func
        self.context = context
        self.trailing = trailing
        self.limiter = RateLimiter(interval=interval, clock=context.clock)
        self._pending: Handle | None = None
        self._args: tuple[Any, ...] = ()
        self._kwargs: dict[str, Any] = {}

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self._args, self._kwargs = args, kwargs
        if self._pending is not None:
            return
        if self.limiter.ready():
            self._invoke()
        elif self.trailing:
            self._pending = self.context.call_later(self.limiter.remaining(), self._flush)

    def _flush(self) -> None:
        self._pending = None
        self._invoke()

    def _invoke(self) -> None:
        self.limiter.mark()
        self.func(*self._args, **self._kwargs)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class Debounce:
    """Run a function once calls have stopped arriving for `interval` seconds."""

    def __init__(self, interval: float, func: Callable[[], Any], context: SessionContext) -> None:
        self.interval = interval
        self.func = func
        self.context = context
        self._pending: Handle | None = None

    def __call__(self) -> None:
        self.cancel()
        self._pending = self.context.call_later(self.interval, self._flush)

    def _flush(self) -> None:
        self._pending = None
        self.func()

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
