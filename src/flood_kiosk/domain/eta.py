"""Time-to-flood estimates.

Contains the closed-form estimate for a value easing toward a target, and the
`EtaState` value published to displays. The timer-driven windowed countdown
lives in `flood_kiosk.services.countdown`.
"""
import math
from dataclasses import dataclass
from typing import Optional

__all__ = ["EtaState", "ETA_NONE", "ETA_NOW", "eta_to_threshold_seconds", "eta_label"]


@dataclass(frozen=True)
class EtaState:
    """Countdown seconds, the "now" flag, or neither (no event expected)."""
    seconds: Optional[int] = None
    now: bool = False

    def __post_init__(self):
        if self.now and self.seconds is not None:
            raise ValueError("EtaState cannot be both 'now' and counting down")
        if self.seconds is not None and self.seconds < 0:
            raise ValueError("EtaState seconds must be non-negative")

    @property
    def counting(self) -> bool:
        return self.seconds is not None


ETA_NONE = EtaState()
ETA_NOW = EtaState(now=True)


def eta_to_threshold_seconds(current: float, target: float, threshold: float,
                             alpha: float, tick_ms: float) -> float:
    """Seconds until `current` crosses `threshold` while easing toward `target`.

    With v[n+1] = v[n] + alpha * (target - v[n]) the remaining distance decays
    as (1 - alpha) ** n, so the crossing happens after

        n = ln((target - threshold) / (target - current)) / ln(1 - alpha)

    ticks.

    Parameters
    ----------
    current : float
        Present value.
    target : float
        Value being eased toward.
    threshold : float
        Level treated as the event.
    alpha : float
        Per-tick convergence fraction, in (0, 1).
    tick_ms : float
        Tick interval in milliseconds.

    Returns
    -------
    float
        `math.inf` when the target never exceeds the threshold, 0.0 when the
        value is already at or past it, otherwise the estimate in seconds.
    """
    if not all(math.isfinite(v) for v in (current, target, threshold)):
        return math.inf
    if not 0.0 < alpha < 1.0:
        return math.inf
    delta_threshold = target - threshold
    if delta_threshold <= 0:
        return math.inf
    delta_current = target - current
    if delta_current <= delta_threshold:
        return 0.0
    ticks = math.log(delta_threshold / delta_current) / math.log(1.0 - alpha)
    return max(0.0, ticks * (tick_ms / 1000.0))


def eta_label(eta: EtaState, subsiding: bool = False) -> str:
    if subsiding:
        return "Flood is subsiding"
    if eta.now:
        return "Now"
    if eta.seconds is not None:
        return f"{eta.seconds}s"
    return "No flood expected"
