"""Scripted, unattended demo: ramp rain up, hold the peak, ramp down, idle.

State machine::

    idle --start()--> rampUp --trigger--> peakHold --15s--> rampDown --baseline--> idle

rampUp leaves for peakHold on the first of: likelihood at the peak
threshold, DANGER held for the dwell time, rain at its cap, or the ramp-up
safety timeout. rampDown returns to idle once rain is 0 and every sensor is
back near baseline.
"""
import logging
from typing import Callable, Optional

from flood_kiosk.domain.simulation import KioskState
from flood_kiosk.domain.status import DemoPhase, Status
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler

__all__ = ["DemoScriptController", "RAMP_UP_STEP", "RAMP_DOWN_STEP", "PEAK_HOLD_MS"]

logger = logging.getLogger(__name__)

# -------------------- TUNING KNOBS --------------------
RAMP_UP_STEP = 4            # rain % per tick
RAMP_DOWN_STEP = 3          # rain % per tick
PEAK_HOLD_MS = 15000        # hold at 100% before ramping down
PEAK_LIKELIHOOD = 99.0      # likelihood that ends the ramp-up
DANGER_DWELL_MS = 3000      # continuous DANGER that ends the ramp-up
RAIN_CAP_TRIGGER = 99       # rain that ends the ramp-up
MAX_RAMP_UP_MS = 60000      # safety fallback so the demo cannot hang
# ------------------------------------------------------

PhaseListener = Callable[[DemoPhase, DemoPhase], None]

_ORDER = {
    DemoPhase.IDLE: DemoPhase.RAMP_UP,
    DemoPhase.RAMP_UP: DemoPhase.PEAK_HOLD,
    DemoPhase.PEAK_HOLD: DemoPhase.RAMP_DOWN,
    DemoPhase.RAMP_DOWN: DemoPhase.IDLE,
}


class DemoScriptController:
    """Owns the demo phase, its dwell counters and the peak-hold timer.

    Parameters
    ----------
    scheduler : Scheduler
        Provides the peak-hold one-shot timer.
    on_phase_change : callable, optional
        Called as ``(old, new)`` after every transition.
    on_reset : callable, optional
        Called whenever a start or stop wipes the cycle (alert flags, ETA).
    """

    def __init__(self, scheduler: Scheduler,
                 on_phase_change: Optional[PhaseListener] = None,
                 on_reset: Optional[Callable[[], None]] = None,
                 peak_hold_ms: float = PEAK_HOLD_MS):
        self.scheduler = scheduler
        self.on_phase_change = on_phase_change
        self.on_reset = on_reset
        self.peak_hold_ms = peak_hold_ms
        self.phase = DemoPhase.IDLE
        self.ramp_up_elapsed_ms = 0.0
        self.danger_elapsed_ms = 0.0
        self._hold_token: Optional[CancelToken] = None

    @property
    def active(self) -> bool:
        return self.phase != DemoPhase.IDLE

    def start(self) -> None:
        """Begin (or restart) the demo from rampUp with a clean slate."""
        if self.active:
            logger.info("Demo restart requested during %s; resetting", self.phase.value)
        self._reset()
        if self.phase != DemoPhase.IDLE:
            self._transition(DemoPhase.IDLE, force=True)
        self._transition(DemoPhase.RAMP_UP)

    def stop(self) -> None:
        """Abort the demo; rain is left where it is."""
        self._reset()
        if self.phase != DemoPhase.IDLE:
            self._transition(DemoPhase.IDLE, force=True)

    def drive_rain(self, rain: int) -> int:
        """Rain for the coming tick according to the current phase."""
        if self.phase == DemoPhase.RAMP_UP:
            return min(100, rain + RAMP_UP_STEP)
        if self.phase == DemoPhase.RAMP_DOWN:
            return max(0, rain - RAMP_DOWN_STEP)
        if self.phase == DemoPhase.PEAK_HOLD:
            return 100
        return rain

    def evaluate(self, state: KioskState, elapsed_ms: float) -> None:
        """Check phase exit conditions against the freshly committed tick."""
        if self.phase == DemoPhase.RAMP_UP:
            self.ramp_up_elapsed_ms += elapsed_ms
            if state.status == Status.DANGER:
                self.danger_elapsed_ms += elapsed_ms
            else:
                self.danger_elapsed_ms = 0.0
            if (state.likelihood >= PEAK_LIKELIHOOD
                    or self.danger_elapsed_ms >= DANGER_DWELL_MS
                    or state.rain >= RAIN_CAP_TRIGGER
                    or self.ramp_up_elapsed_ms >= MAX_RAMP_UP_MS):
                self._enter_peak_hold()
        elif self.phase == DemoPhase.RAMP_DOWN:
            if state.rain <= 0 and state.near_baseline:
                self._transition(DemoPhase.IDLE)

    def close(self) -> None:
        self._cancel_hold()

    def _enter_peak_hold(self) -> None:
        self._transition(DemoPhase.PEAK_HOLD)
        self._cancel_hold()
        self._hold_token = self.scheduler.after(self.peak_hold_ms, self._end_peak_hold)

    def _end_peak_hold(self) -> None:
        self._hold_token = None
        if self.phase == DemoPhase.PEAK_HOLD:
            self._transition(DemoPhase.RAMP_DOWN)

    def _reset(self) -> None:
        self._cancel_hold()
        self.ramp_up_elapsed_ms = 0.0
        self.danger_elapsed_ms = 0.0
        if self.on_reset is not None:
            self.on_reset()

    def _cancel_hold(self) -> None:
        if self._hold_token is not None:
            self._hold_token.cancel()
            self._hold_token = None

    def _transition(self, new: DemoPhase, force: bool = False) -> None:
        old = self.phase
        if not force and _ORDER[old] != new:
            logger.warning("Ignoring invalid demo transition %s -> %s", old.value, new.value)
            return
        self.phase = new
        logger.info("Demo phase %s -> %s", old.value, new.value)
        if self.on_phase_change is not None:
            self.on_phase_change(old, new)
