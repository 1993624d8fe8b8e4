"""Synthetic river-reach sensor model.

Pure functions (no I/O, no timers): each metric eases toward a rain-driven
target every tick with a little jitter. The response is plausible-looking,
not hydrologically accurate.
"""
import math
from dataclasses import dataclass
from typing import Callable, Dict, Mapping

__all__ = [
    "SensorProfile",
    "PROFILES",
    "DERIVED_METRICS",
    "EASING",
    "JITTER_SCALE",
    "FLOOD_LEVEL_M",
    "clamp",
    "clamp01",
    "clamp_rain",
    "round_half_up",
    "ease_pow",
    "sensor_targets",
    "baseline_readings",
    "derive_metrics",
    "step_sensors",
]

RandomSource = Callable[[], float]


@dataclass(frozen=True)
class SensorProfile:
    """Response of one metric to rain intensity.

    target = baseline + gain * (rain / 100) ** exponent
    """
    baseline: float
    gain: float
    exponent: float
    unit: str = ""


# -------------------- TUNING KNOBS --------------------
EASING = 0.2            # fraction of remaining distance covered per tick
JITTER_SCALE = 0.005    # jitter amplitude relative to |target| + 1
FLOOD_LEVEL_M = 1.80    # river level treated as overflow

PROFILES: Dict[str, SensorProfile] = {
    "air_temp": SensorProfile(31.0, -2.5, 1.12, "°C"),
    "humidity": SensorProfile(70.0, 25.0, 1.12, "%"),
    "level": SensorProfile(1.20, 0.75, 1.35, "m"),
    "flow": SensorProfile(0.80, 0.9, 1.12, "m/s"),
    "pressure": SensorProfile(1008.0, -9.0, 1.12, "hPa"),
    "wind": SensorProfile(1.5, 3.2, 1.12, "m/s"),
    "soil": SensorProfile(25.0, 35.0, 1.12, "%"),
    "turbidity": SensorProfile(10.0, 85.0, 1.7, "NTU"),
    "water_temp": SensorProfile(29.0, -1.4, 1.12, "°C"),
    "upstream_level": SensorProfile(1.10, 0.8, 1.35, "m"),
    "rain_rate": SensorProfile(0.0, 120.0, 1.12, "mm/h"),
}

# Recomputed from settled readings, never eased on their own.
DERIVED_METRICS = ("discharge_q", "stage_pct")
# ------------------------------------------------------


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def clamp01(x: float) -> float:
    return clamp(x, 0.0, 1.0)


def round_half_up(x: float) -> int:
    """Nearest integer, halves rounded up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(x + 0.5))


def clamp_rain(value) -> int:
    """Coerce any rain input to an integer percent in [0, 100].

    Non-numeric or non-finite input maps to 0.
    """
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(v):
        return 0
    return round_half_up(clamp(v, 0.0, 100.0))


def ease_pow(x: float, p: float) -> float:
    return clamp01(x) ** p


def sensor_targets(rain: int) -> Dict[str, float]:
    """Target value of every eased metric for a given rain level."""
    x = clamp01(rain / 100.0)
    return {name: prof.baseline + prof.gain * ease_pow(x, prof.exponent)
            for name, prof in PROFILES.items()}


def derive_metrics(readings: Mapping[str, float]) -> Dict[str, float]:
    """Discharge (m^3/s, arbitrary cross-section factor) and percent of flood stage."""
    level = readings["level"]
    return {
        "discharge_q": level * readings["flow"] * 100.0,
        "stage_pct": 100.0 * level / FLOOD_LEVEL_M,
    }


def baseline_readings() -> Dict[str, float]:
    readings = {name: prof.baseline for name, prof in PROFILES.items()}
    readings.update(derive_metrics(readings))
    return readings


def step_sensors(readings: Mapping[str, float], rain: int, rng: RandomSource) -> Dict[str, float]:
    """Advance every metric one tick toward its rain-driven target.

    Parameters
    ----------
    readings : Mapping[str, float]
        Current readings; missing or non-finite metrics restart from baseline.
    rain : int
        Rain intensity, clamped to [0, 100].
    rng : Callable[[], float]
        Uniform source in [0, 1) used for jitter.

    Returns
    -------
    Dict[str, float]
        New readings including the derived metrics.
    """
    targets = sensor_targets(clamp_rain(rain))
    nxt: Dict[str, float] = {}
    for name, target in targets.items():
        current = readings.get(name, PROFILES[name].baseline)
        if not math.isfinite(current):
            current = PROFILES[name].baseline
        jitter = (rng() - 0.5) * JITTER_SCALE * (abs(target) + 1.0)
        nxt[name] = current + (target - current) * EASING + jitter
    nxt["turbidity"] = max(0.0, nxt["turbidity"])
    nxt["rain_rate"] = max(0.0, nxt["rain_rate"])
    nxt["humidity"] = clamp(nxt["humidity"], 0.0, 100.0)
    nxt["soil"] = clamp(nxt["soil"], 0.0, 100.0)
    nxt.update(derive_metrics(nxt))
    return nxt
