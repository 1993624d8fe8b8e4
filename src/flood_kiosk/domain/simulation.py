"""Simulation state record and the pure per-tick transition."""
import math
import random
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from .eta import ETA_NONE, EtaState, eta_to_threshold_seconds
from .likelihood import raw_likelihood, smooth_likelihood
from .sensors import (EASING, FLOOD_LEVEL_M, baseline_readings, clamp_rain,
                      sensor_targets, step_sensors)
from .status import (DEFAULT_THRESHOLDS, DemoPhase, Status, StatusThresholds,
                     classify, is_near_baseline)

__all__ = ["KioskState", "TICK_MS", "initial_state", "step_simulation", "advance", "simulate_series"]

TICK_MS = 250  # sensor update rate


@dataclass(frozen=True)
class KioskState:
    """Everything the control surface owns, as of the last committed tick.

    Treated as immutable: transitions return a new record via `replace`.
    """
    rain: int = 0
    readings: Dict[str, float] = field(default_factory=baseline_readings)
    likelihood: float = 0.0
    raw_likelihood: float = 0.0
    status: Status = Status.NORMAL
    phase: DemoPhase = DemoPhase.IDLE
    near_baseline: bool = True
    eta: EtaState = ETA_NONE
    overflow_eta_s: float = math.inf
    tick: int = 0

    def with_rain(self, value) -> "KioskState":
        return replace(self, rain=clamp_rain(value))


def initial_state() -> KioskState:
    return KioskState()


def step_simulation(state: KioskState, rng: Callable[[], float],
                    thresholds: StatusThresholds = DEFAULT_THRESHOLDS,
                    tick_ms: float = TICK_MS) -> KioskState:
    """One tick: ease sensors, rescore, reclassify.

    Rain, phase and ETA are left as they are; the demo controller and the
    countdown own those.
    """
    readings = step_sensors(state.readings, state.rain, rng)
    raw = raw_likelihood(readings)
    likelihood = smooth_likelihood(state.likelihood, raw)
    near = is_near_baseline(readings)
    status = classify(likelihood, state.phase, near, thresholds)
    overflow = eta_to_threshold_seconds(
        readings["level"], sensor_targets(state.rain)["level"], FLOOD_LEVEL_M, EASING, tick_ms)
    return replace(state, readings=readings, raw_likelihood=raw, likelihood=likelihood,
                   near_baseline=near, status=status, overflow_eta_s=overflow,
                   tick=state.tick + 1)


def advance(state: KioskState, ticks: int, rng: Callable[[], float],
            thresholds: StatusThresholds = DEFAULT_THRESHOLDS) -> KioskState:
    """Apply `step_simulation` `ticks` times with rain held constant."""
    for _ in range(max(0, ticks)):
        state = step_simulation(state, rng, thresholds)
    return state


def simulate_series(rain_levels: List[int], seed: Optional[int] = None,
                    thresholds: StatusThresholds = DEFAULT_THRESHOLDS) -> Dict:
    """Run one tick per entry of `rain_levels` from a baseline start.

    Returns a dict with a per-tick `series` and the peak smoothed likelihood,
    rounded for display.
    """
    rng = random.Random(seed).random
    state = initial_state()
    series = []
    max_lk = 0.0
    for rain in rain_levels:
        state = step_simulation(state.with_rain(rain), rng, thresholds)
        max_lk = max(max_lk, state.likelihood)
        series.append({
            "tick": state.tick,
            "rain": state.rain,
            "level": round(state.readings["level"], 3),
            "flow": round(state.readings["flow"], 3),
            "discharge_q": round(state.readings["discharge_q"], 1),
            "likelihood": round(state.likelihood, 1),
            "status": state.status.value,
            "overflow_eta_s": None if math.isinf(state.overflow_eta_s) else round(state.overflow_eta_s, 1),
        })
    return {"series": series, "max_likelihood": round(max_lk, 1)}
