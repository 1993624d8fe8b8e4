"""Pure simulation, scoring and classification functions (no I/O, no timers)."""
from .eta import ETA_NONE, ETA_NOW, EtaState, eta_label, eta_to_threshold_seconds
from .likelihood import raw_likelihood, smooth_likelihood
from .sensors import baseline_readings, clamp_rain, sensor_targets, step_sensors
from .simulation import KioskState, advance, initial_state, simulate_series, step_simulation
from .status import DemoPhase, Status, StatusThresholds, bucket, classify, is_near_baseline

__all__ = [
    "ETA_NONE", "ETA_NOW", "EtaState", "eta_label", "eta_to_threshold_seconds",
    "raw_likelihood", "smooth_likelihood",
    "baseline_readings", "clamp_rain", "sensor_targets", "step_sensors",
    "KioskState", "advance", "initial_state", "simulate_series", "step_simulation",
    "DemoPhase", "Status", "StatusThresholds", "bucket", "classify", "is_near_baseline",
]
