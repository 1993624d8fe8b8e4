"""Passive display surface.

A display owns no simulation state. It keeps the last snapshot received per
kind, coerced field by field so a malformed or partial payload never replaces
a good value with garbage, and shows a gentle random drift until the first
live message arrives.
"""
import logging
import math
import random
from typing import Any, Callable, Dict, List, Mapping, Optional

from flood_kiosk.domain.sensors import round_half_up
from flood_kiosk.domain.status import DemoPhase, Status
from flood_kiosk.persistence.schemas import (KIND_CONTROL, KIND_RIVER, KIND_SKY, RunScript,
                                             SetRainLevel, TriggerState, parse_command)
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler
from flood_kiosk.transport.bus import Transport

__all__ = ["DisplaySurface", "normalize_sky", "normalize_river", "DEFAULT_SKY", "DEFAULT_RIVER"]

logger = logging.getLogger(__name__)

SKY_DRIFT_MS = 1000
RIVER_DRIFT_MS = 1500

_STATUSES = {s.value for s in Status}
_PHASES = {p.value for p in DemoPhase}

DEFAULT_SKY: Dict[str, Any] = {
    "flood_likelihood_pct": 10,
    "eta_seconds": 600,
    "eta_now": False,
    "status": Status.NORMAL.value,
    "phase": DemoPhase.IDLE.value,
    "display_state": "NORMAL",
}

DEFAULT_RIVER: Dict[str, Any] = {
    "rain": 0,
    "water_level_m": 1.62,
    "flow_rate_ms": 0.82,
    "rainfall_mm_hr": 1.8,
    "temp_c": 28.6,
    "humidity_pct": 74.0,
    "pressure_hpa": 1006.0,
    "discharge_q": 132.8,
    "stage_pct": 90.0,
    "eta_to_overflow_s": None,
}

# (lower, upper) bounds per river field; None means unbounded on that side
_RIVER_BOUNDS = {
    "rain": (0, 100),
    "water_level_m": (0, None),
    "flow_rate_ms": (0, None),
    "rainfall_mm_hr": (0, None),
    "temp_c": (None, None),
    "humidity_pct": (0, 100),
    "pressure_hpa": (0, None),
    "discharge_q": (0, None),
    "stage_pct": (0, None),
    "eta_to_overflow_s": (0, None),
}


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def normalize_sky(incoming: Any, prev: Mapping[str, Any]) -> Dict[str, Any]:
    """Coerce a sky payload; bad or missing fields keep their previous value."""
    data = incoming if isinstance(incoming, Mapping) else {}
    out = dict(prev)

    pct = _finite(data.get("flood_likelihood_pct"))
    if pct is not None:
        out["flood_likelihood_pct"] = round_half_up(min(100.0, max(0.0, pct)))

    if "eta_seconds" in data:
        raw = data["eta_seconds"]
        if raw is None:
            out["eta_seconds"] = None
        else:
            eta = _finite(raw)
            if eta is not None:
                out["eta_seconds"] = max(0, int(math.floor(eta)))

    if isinstance(data.get("eta_now"), bool):
        out["eta_now"] = data["eta_now"]
    if out.get("eta_now"):
        out["eta_seconds"] = None

    status = data.get("status")
    if isinstance(status, str) and status in _STATUSES:
        out["status"] = status
    phase = data.get("phase")
    if isinstance(phase, str) and phase in _PHASES:
        out["phase"] = phase
    if data.get("display_state") in ("NORMAL", "RAIN"):
        out["display_state"] = data["display_state"]
    return out


def normalize_river(incoming: Any, prev: Mapping[str, Any]) -> Dict[str, Any]:
    """Coerce a river payload field by field; out-of-range values keep the previous value."""
    data = incoming if isinstance(incoming, Mapping) else {}
    out = dict(prev)
    for name, (lo, hi) in _RIVER_BOUNDS.items():
        if name not in data:
            continue
        if name == "eta_to_overflow_s" and data[name] is None:
            out[name] = None
            continue
        v = _finite(data[name])
        if v is None or (lo is not None and v < lo) or (hi is not None and v > hi):
            continue
        out[name] = round_half_up(v) if name == "rain" else v
    return out


class DisplaySurface:
    """Full-screen display fed solely by the transport.

    Attributes
    ----------
    sky, river : dict
        Last normalized snapshots (or the drifting defaults).
    video_state : str
        "NORMAL" or "RAIN"; which looped asset the display layer should show.
    """

    def __init__(self, transport: Transport, scheduler: Scheduler,
                 rng: Optional[Callable[[], float]] = None, drift: bool = True):
        self.transport = transport
        self.scheduler = scheduler
        self.rng = rng or random.Random().random
        self.drift = drift
        self.sky: Dict[str, Any] = dict(DEFAULT_SKY)
        self.river: Dict[str, Any] = dict(DEFAULT_RIVER)
        self.video_state = "NORMAL"
        self.rain_level: Optional[float] = None
        self.script: Optional[str] = None
        self.live_sky = False
        self.live_river = False
        self._unsubscribes: List[Callable[[], None]] = []
        self._sky_drift: Optional[CancelToken] = None
        self._river_drift: Optional[CancelToken] = None

    def open(self) -> None:
        if self._unsubscribes:
            return
        if self.drift:
            self._sky_drift = self.scheduler.schedule(SKY_DRIFT_MS, self._drift_sky)
            self._river_drift = self.scheduler.schedule(RIVER_DRIFT_MS, self._drift_river)
        # Sky last: its cached display_state is fresher than the last cached command
        self._unsubscribes = [
            self.transport.subscribe(KIND_CONTROL, self._on_control),
            self.transport.subscribe(KIND_RIVER, self._on_river),
            self.transport.subscribe(KIND_SKY, self._on_sky),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
        self._stop_drift("sky")
        self._stop_drift("river")

    # ---------------- live data ----------------

    def _on_sky(self, data: Any) -> None:
        self.sky = normalize_sky(data, self.sky)
        self.video_state = self.sky["display_state"]
        if not self.live_sky:
            self.live_sky = True
            self._stop_drift("sky")

    def _on_river(self, data: Any) -> None:
        self.river = normalize_river(data, self.river)
        if not self.live_river:
            self.live_river = True
            self._stop_drift("river")

    def _on_control(self, data: Any) -> None:
        command = parse_command(data)
        if isinstance(command, TriggerState):
            if command.state != self.video_state:
                logger.info("Display switching to %s loop", command.state)
            self.video_state = command.state
        elif isinstance(command, SetRainLevel):
            self.rain_level = command.value
        elif isinstance(command, RunScript):
            self.script = None if command.name == "STOP" else command.name

    # ---------------- demo drift ----------------

    def _jitter(self, magnitude: float) -> float:
        return (self.rng() - 0.5) * magnitude

    def _drift_sky(self) -> None:
        pct = self.sky["flood_likelihood_pct"] + self._jitter(2)
        # Keep the ETA high; the fallback never counts down to an event
        self.sky["flood_likelihood_pct"] = round_half_up(max(5.0, min(70.0, pct)))

    def _drift_river(self) -> None:
        r = self.river
        r["water_level_m"] = round(max(0.0, r["water_level_m"] + self._jitter(0.02)), 2)
        r["flow_rate_ms"] = round(max(0.0, r["flow_rate_ms"] + self._jitter(0.04)), 2)
        r["rainfall_mm_hr"] = round(max(0.0, r["rainfall_mm_hr"] + self._jitter(0.5)), 1)
        r["temp_c"] = round(r["temp_c"] + self._jitter(0.2), 1)
        r["humidity_pct"] = float(min(100, max(0, round(r["humidity_pct"] + self._jitter(2)))))
        r["pressure_hpa"] = float(round(r["pressure_hpa"] + self._jitter(1.5)))

    def _stop_drift(self, which: str) -> None:
        attr = f"_{which}_drift"
        token = getattr(self, attr)
        if token is not None:
            token.cancel()
            setattr(self, attr, None)
