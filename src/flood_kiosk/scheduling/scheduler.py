"""Timer primitives for the kiosk tick loops.

Every periodic or one-shot callback in the engine is started through a
`Scheduler` and held as a `CancelToken`. Whoever starts a timer owns its token
and must cancel it when the phase or condition that started it ends.

Two implementations are provided:

- `ManualScheduler` keeps a virtual clock that only moves when `advance` is
  called. Used by tests and the headless CLI runs.
- `AsyncioScheduler` runs callbacks on an asyncio event loop. Used by the
  HTTP service.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

__all__ = ["CancelToken", "Scheduler", "ManualScheduler", "AsyncioScheduler"]

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class CancelToken:
    """Handle for a scheduled callback. Cancelling twice is harmless."""

    def __init__(self, on_cancel: Optional[Callable[["CancelToken"], None]] = None):
        self._on_cancel = on_cancel
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_cancel is not None:
            self._on_cancel(self)


class Scheduler(ABC):
    """Start/cancel periodic and one-shot timers."""

    def __init__(self):
        self._tokens: List[CancelToken] = []

    @abstractmethod
    def now_ms(self) -> float:
        """Monotonic time in milliseconds."""

    @abstractmethod
    def schedule(self, period_ms: float, fn: Callback) -> CancelToken:
        """Run `fn` every `period_ms` until the token is cancelled."""

    @abstractmethod
    def after(self, delay_ms: float, fn: Callback) -> CancelToken:
        """Run `fn` once after `delay_ms` unless the token is cancelled first."""

    def pending(self) -> int:
        """Number of timers still active."""
        return sum(1 for t in self._tokens if t.active)

    def cancel_all(self) -> None:
        for token in list(self._tokens):
            token.cancel()
        self._tokens.clear()

    def _track(self, token: CancelToken) -> CancelToken:
        self._tokens = [t for t in self._tokens if t.active]
        self._tokens.append(token)
        return token

    @staticmethod
    def _run(fn: Callback) -> None:
        try:
            fn()
        except Exception:
            logger.exception("Scheduled callback %r failed", fn)


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler; time only moves inside `advance`.

    Callbacks due at the same instant run in the order they were scheduled.
    A callback may schedule or cancel other timers, including its own.
    """

    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self._now = float(start_ms)
        self._seq = itertools.count()
        # (due_ms, seq, token, fn, period_ms or None)
        self._queue: List[Tuple[float, int, CancelToken, Callback, Optional[float]]] = []

    def now_ms(self) -> float:
        return self._now

    def schedule(self, period_ms: float, fn: Callback) -> CancelToken:
        if period_ms <= 0:
            raise ValueError("period_ms must be positive")
        token = self._track(CancelToken())
        heapq.heappush(self._queue, (self._now + period_ms,
                       next(self._seq), token, fn, float(period_ms)))
        return token

    def after(self, delay_ms: float, fn: Callback) -> CancelToken:
        token = self._track(CancelToken())
        heapq.heappush(self._queue, (self._now + max(0.0, delay_ms),
                       next(self._seq), token, fn, None))
        return token

    def advance(self, ms: float) -> None:
        """Move the clock forward by `ms`, firing every callback that falls due."""
        end = self._now + ms
        while self._queue and self._queue[0][0] <= end:
            due, _, token, fn, period = heapq.heappop(self._queue)
            if not token.active:
                continue
            self._now = due
            if period is None:
                token.active = False
            else:
                heapq.heappush(self._queue, (due + period,
                               next(self._seq), token, fn, period))
            self._run(fn)
        self._now = end

    def run_until(self, predicate: Callable[[], bool], step_ms: float, max_ms: float) -> bool:
        """Advance in `step_ms` increments until `predicate()` holds or `max_ms` passes."""
        elapsed = 0.0
        while elapsed < max_ms:
            if predicate():
                return True
            self.advance(step_ms)
            elapsed += step_ms
        return predicate()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop.

    Must be constructed while the loop is running (e.g. inside a FastAPI
    lifespan), or be given the loop explicitly.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self._loop = loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def schedule(self, period_ms: float, fn: Callback) -> CancelToken:
        if period_ms <= 0:
            raise ValueError("period_ms must be positive")
        handle: List[asyncio.TimerHandle] = []
        token = self._track(CancelToken(lambda _: handle and handle[0].cancel()))

        def fire():
            if not token.active:
                return
            handle[:] = [self._loop.call_later(period_ms / 1000.0, fire)]
            self._run(fn)

        handle.append(self._loop.call_later(period_ms / 1000.0, fire))
        return token

    def after(self, delay_ms: float, fn: Callback) -> CancelToken:
        handle: List[asyncio.TimerHandle] = []
        token = self._track(CancelToken(lambda _: handle and handle[0].cancel()))

        def fire():
            if not token.active:
                return
            token.active = False
            self._run(fn)

        handle.append(self._loop.call_later(max(0.0, delay_ms) / 1000.0, fire))
        return token
