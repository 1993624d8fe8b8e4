"""Flood likelihood score from sensor deviations.

Two-stage smoothing (EMA, then a per-tick step clamp) keeps the score from
flickering across status bucket boundaries when sensor jitter is large.
"""
import math
from typing import Dict, Mapping

from .sensors import PROFILES, clamp, clamp01

__all__ = ["WEIGHTS", "MAX_DEVIATION", "EMA_ALPHA", "MAX_STEP",
           "normalized_deviations", "raw_likelihood", "smooth_likelihood"]

# -------------------- TUNING KNOBS --------------------
EMA_ALPHA = 0.25   # 0..1
MAX_STEP = 4.0     # max change in percentage points per tick

# Weighted sum (must sum to 1.0)
WEIGHTS: Dict[str, float] = {
    "level": 0.27,
    "flow": 0.20,
    "upstream_level": 0.20,
    "turbidity": 0.14,
    "rain_rate": 0.14,
    "pressure": 0.05,
}
# ------------------------------------------------------

# Deviation that counts as "fully risen" for each driver.
MAX_DEVIATION: Dict[str, float] = {name: abs(PROFILES[name].gain) for name in WEIGHTS}


def normalized_deviations(readings: Mapping[str, float]) -> Dict[str, float]:
    """Per-driver deviation from baseline scaled to [0, 1].

    Deviation is measured in the direction of the metric's gain, so a
    pressure drop counts as a positive deviation.
    """
    out = {}
    for name in WEIGHTS:
        prof = PROFILES[name]
        value = readings.get(name, prof.baseline)
        if not math.isfinite(value):
            value = prof.baseline
        direction = 1.0 if prof.gain >= 0 else -1.0
        out[name] = clamp01(direction * (value - prof.baseline) / MAX_DEVIATION[name])
    return out


def raw_likelihood(readings: Mapping[str, float]) -> float:
    """Instantaneous score in [0, 100]."""
    f = normalized_deviations(readings)
    score = sum(WEIGHTS[name] * f[name] for name in WEIGHTS)
    return clamp01(score) * 100.0


def smooth_likelihood(prev: float, raw: float, alpha: float = EMA_ALPHA,
                      max_step: float = MAX_STEP) -> float:
    """EMA toward `raw`, then clamp the move to `max_step` either way.

    A non-finite `raw` holds the previous value; a non-finite `prev`
    restarts from zero.
    """
    if not math.isfinite(prev):
        prev = 0.0
    if not math.isfinite(raw):
        return prev
    ema = prev + alpha * (raw - prev)
    stepped = clamp(ema, prev - max_step, prev + max_step)
    return clamp(stepped, 0.0, 100.0)
