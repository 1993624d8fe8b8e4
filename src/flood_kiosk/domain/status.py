"""Status classification from the smoothed likelihood."""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .sensors import PROFILES, round_half_up

__all__ = ["Status", "DemoPhase", "StatusThresholds", "BASELINE_EPS",
           "bucket", "classify", "is_near_baseline"]

# Relative tolerance per metric for "back near baseline"
BASELINE_EPS = 0.03
# Absolute tolerance for metrics whose baseline is zero
BASELINE_ABS_EPS = 1.0


class Status(str, Enum):
    NORMAL = "NORMAL"
    WATCH = "WATCH"
    WARNING = "WARNING"
    DANGER = "DANGER"
    SUBSIDING = "SUBSIDING"


class DemoPhase(str, Enum):
    IDLE = "idle"
    RAMP_UP = "rampUp"
    PEAK_HOLD = "peakHold"
    RAMP_DOWN = "rampDown"


@dataclass(frozen=True)
class StatusThresholds:
    """Lower bounds (inclusive) of the WATCH, WARNING and DANGER buckets.

    NORMAL covers everything below `watch_min`; DANGER everything from
    `danger_min` up, so the buckets are always contiguous and exhaustive.
    """
    watch_min: int = 40
    warning_min: int = 70
    danger_min: int = 80

    def __post_init__(self):
        if not (0 < self.watch_min < self.warning_min < self.danger_min <= 100):
            raise ValueError(
                "Thresholds must satisfy 0 < watch_min < warning_min < danger_min <= 100, "
                f"got {self.watch_min}/{self.warning_min}/{self.danger_min}")


DEFAULT_THRESHOLDS = StatusThresholds()


def bucket(score: float, thresholds: StatusThresholds = DEFAULT_THRESHOLDS) -> Status:
    """Map a likelihood (0..100) to NORMAL/WATCH/WARNING/DANGER by its rounded value."""
    p = round_half_up(score) if math.isfinite(score) else 0
    if p >= thresholds.danger_min:
        return Status.DANGER
    if p >= thresholds.warning_min:
        return Status.WARNING
    if p >= thresholds.watch_min:
        return Status.WATCH
    return Status.NORMAL


def classify(score: float, phase: DemoPhase, near_baseline: bool,
             thresholds: StatusThresholds = DEFAULT_THRESHOLDS) -> Status:
    """Bucket result, except SUBSIDING while ramping down and not yet near baseline."""
    if phase == DemoPhase.RAMP_DOWN and not near_baseline:
        return Status.SUBSIDING
    return bucket(score, thresholds)


def is_near_baseline(readings: Mapping[str, float], eps: float = BASELINE_EPS) -> bool:
    """True when every eased metric is within tolerance of its baseline."""
    for name, prof in PROFILES.items():
        value = readings.get(name)
        if value is None or not math.isfinite(value):
            return False
        tol = abs(prof.baseline) * eps if prof.baseline else BASELINE_ABS_EPS
        if abs(value - prof.baseline) > tol:
            return False
    return True
