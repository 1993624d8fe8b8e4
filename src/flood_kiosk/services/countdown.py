"""Windowed discrete countdown driven by the smoothed likelihood."""
import logging
import math
from typing import Callable, Optional

from flood_kiosk.domain.eta import ETA_NONE, ETA_NOW, EtaState
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler

__all__ = ["WindowedCountdown", "COUNTDOWN_START_PCT", "PEAK_NOW_PCT", "COUNTDOWN_START_S"]

logger = logging.getLogger(__name__)

COUNTDOWN_START_PCT = 95.0  # start counting at 95..98%
PEAK_NOW_PCT = 99.0         # "Now" at 99..100%
COUNTDOWN_START_S = 20      # 20 -> 1
COUNTDOWN_INTERVAL_MS = 1000


class WindowedCountdown:
    """Integer countdown that runs while the likelihood sits in the upper window.

    Only one countdown timer exists at a time; the timer token is released
    whenever the countdown stops, switches to "now", or is cleared.
    """

    def __init__(self, scheduler: Scheduler,
                 start_pct: float = COUNTDOWN_START_PCT,
                 now_pct: float = PEAK_NOW_PCT,
                 start_seconds: int = COUNTDOWN_START_S,
                 interval_ms: float = COUNTDOWN_INTERVAL_MS,
                 on_start: Optional[Callable[[int], None]] = None):
        if not start_pct < now_pct:
            raise ValueError("start_pct must be below now_pct")
        self.scheduler = scheduler
        self.start_pct = start_pct
        self.now_pct = now_pct
        self.start_seconds = start_seconds
        self.interval_ms = interval_ms
        self.on_start = on_start
        self.seconds: Optional[int] = None
        self.now = False
        self._token: Optional[CancelToken] = None

    @property
    def state(self) -> EtaState:
        if self.now:
            return ETA_NOW
        if self.seconds is not None:
            return EtaState(seconds=self.seconds)
        return ETA_NONE

    @property
    def running(self) -> bool:
        return self._token is not None

    def update(self, likelihood: float) -> EtaState:
        """Feed the latest smoothed likelihood and return the resulting state."""
        if not math.isfinite(likelihood):
            return self.state
        if self.now:
            if likelihood < self.start_pct:
                self.now = False
            return self.state
        if likelihood >= self.now_pct:
            self.force_now()
        elif likelihood >= self.start_pct:
            if self.seconds is None:
                self._start()
        elif self.seconds is not None:
            logger.info("Likelihood fell to %.1f%%; countdown cancelled", likelihood)
            self._cancel()
            self.seconds = None
        return self.state

    def force_now(self) -> None:
        self._cancel()
        self.seconds = None
        self.now = True

    def clear(self) -> None:
        self._cancel()
        self.seconds = None
        self.now = False

    def close(self) -> None:
        self._cancel()

    def _start(self) -> None:
        if self._token is not None:
            return
        self.seconds = self.start_seconds
        self._token = self.scheduler.schedule(self.interval_ms, self._tick)
        logger.info("Flood countdown started at %ss", self.seconds)
        if self.on_start is not None:
            self.on_start(self.seconds)

    def _tick(self) -> None:
        if self.seconds is None:
            return
        # Pinned at 1 until the likelihood reaches the "now" threshold
        self.seconds = max(1, self.seconds - 1)

    def _cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
