"""Operator control surface: owns the simulation state and drives every tick.

Per tick:

1. the demo controller moves rain according to its phase
2. sensors ease, the likelihood is rescored and the status reclassified
3. the demo controller checks its phase exits
4. the windowed countdown and the alert notifier react
5. river and sky snapshots are published for the passive displays

Rain changes are also announced on the ``control`` kind (`SET_RAIN_LEVEL`),
and crossing `RAIN_THRESHOLD` switches the display loops (`TRIGGER_STATE`).
"""
import logging
import math
import random
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from flood_kiosk.domain.eta import eta_label
from flood_kiosk.domain.sensors import clamp_rain
from flood_kiosk.domain.simulation import TICK_MS, KioskState, initial_state, step_simulation
from flood_kiosk.domain.status import (DEFAULT_THRESHOLDS, DemoPhase, Status, StatusThresholds,
                                       classify)
from flood_kiosk.persistence.schemas import (KIND_CONTROL, KIND_RIVER, KIND_SKY, RiverSnapshot,
                                             RunScript, SetRainLevel, SkySnapshot, TriggerState,
                                             command_payload, parse_command)
from flood_kiosk.scheduling.scheduler import CancelToken, Scheduler
from flood_kiosk.services.alerts import TOAST_TTL_MS, AlertNotifier, AlertObservation
from flood_kiosk.services.countdown import WindowedCountdown
from flood_kiosk.services.demo_script import DemoScriptController
from flood_kiosk.transport.bus import Transport

__all__ = ["ControlSurface", "RAIN_THRESHOLD"]

logger = logging.getLogger(__name__)

# Rain at which the displays switch to their rain loops
RAIN_THRESHOLD = 70


class ControlSurface:

    def __init__(self, transport: Transport, scheduler: Scheduler,
                 rng: Optional[Callable[[], float]] = None,
                 tick_ms: float = TICK_MS,
                 thresholds: StatusThresholds = DEFAULT_THRESHOLDS,
                 toast_ttl_ms: float = TOAST_TTL_MS):
        self.transport = transport
        self.scheduler = scheduler
        self.rng = rng or random.Random().random
        self.tick_ms = tick_ms
        self.thresholds = thresholds
        self.state: KioskState = initial_state()
        self.display_state = "NORMAL"
        self.countdown = WindowedCountdown(scheduler)
        self.alerts = AlertNotifier(scheduler, ttl_ms=toast_ttl_ms)
        self.demo = DemoScriptController(
            scheduler, on_phase_change=self._on_phase_change, on_reset=self._on_demo_reset)
        self._tick_token: Optional[CancelToken] = None
        self._unsubscribe_commands: Optional[Callable[[], None]] = None
        self._accept_commands = False

    @property
    def running(self) -> bool:
        return self._tick_token is not None

    # ---------------- lifecycle ----------------

    def start(self) -> None:
        if self._tick_token is not None:
            return
        self._tick_token = self.scheduler.schedule(self.tick_ms, self.tick)
        # Commands are live-only: a cached command from an earlier session is not replayed.
        self._accept_commands = False
        self._unsubscribe_commands = self.transport.subscribe(KIND_CONTROL, self._on_command)
        self._accept_commands = True
        self._publish_snapshots()
        logger.info("Control surface started (tick=%sms, transport=%s)",
                    self.tick_ms, self.transport.mode)

    def stop(self) -> None:
        if self._tick_token is not None:
            self._tick_token.cancel()
            self._tick_token = None
        if self._unsubscribe_commands is not None:
            self._unsubscribe_commands()
            self._unsubscribe_commands = None
        self.demo.close()
        self.countdown.close()
        self.alerts.close()
        logger.info("Control surface stopped")

    # ---------------- operator input ----------------

    def set_rain(self, value: Any) -> int:
        rain = clamp_rain(value)
        previous = self.state.rain
        self.state = self.state.with_rain(rain)
        self._announce_rain(previous)
        return rain

    def start_demo(self) -> None:
        self.demo.start()
        self._commit_phase()

    def stop_demo(self) -> None:
        self.demo.stop()
        self._commit_phase()

    def trigger_display(self, state: str) -> None:
        if state not in ("NORMAL", "RAIN"):
            logger.warning("Ignoring unknown display state %r", state)
            return
        self.display_state = state
        self.transport.publish(KIND_CONTROL, command_payload(TriggerState(state=state)))

    def dismiss_toast(self, toast_id: int) -> bool:
        return self.alerts.dismiss(toast_id)

    # ---------------- tick ----------------

    def tick(self) -> KioskState:
        prev = self.state
        rain = self.demo.drive_rain(prev.rain)
        self.state = step_simulation(prev.with_rain(rain), self.rng, self.thresholds, self.tick_ms)
        # May change phase, rain and ETA through the phase callbacks
        self.demo.evaluate(self.state, self.tick_ms)

        phase = self.demo.phase
        if phase in (DemoPhase.IDLE, DemoPhase.RAMP_UP):
            self.countdown.update(self.state.likelihood)
        status = classify(self.state.likelihood, phase, self.state.near_baseline, self.thresholds)
        self.state = replace(self.state, phase=phase, status=status, eta=self.countdown.state)

        if phase == DemoPhase.IDLE and status == Status.NORMAL and prev.status != Status.NORMAL:
            # Manual cycle finished
            self.alerts.reset()
        self.alerts.observe(AlertObservation(status, self.countdown.running),
                            countdown_seconds=self.countdown.seconds)
        if status != prev.status:
            logger.info("Status %s -> %s (likelihood %.1f%%)",
                        prev.status.value, status.value, self.state.likelihood)

        self._announce_rain(prev.rain)
        self._publish_snapshots()
        logger.debug("tick %d rain=%d lk=%.2f status=%s phase=%s", self.state.tick,
                     self.state.rain, self.state.likelihood, status.value, phase.value)
        return self.state

    # ---------------- snapshots ----------------

    def river_snapshot(self) -> RiverSnapshot:
        r = self.state.readings
        overflow = self.state.overflow_eta_s
        return RiverSnapshot(
            rain=self.state.rain,
            water_level_m=round(r["level"], 3),
            flow_rate_ms=round(r["flow"], 3),
            rainfall_mm_hr=round(r["rain_rate"], 1),
            temp_c=round(r["air_temp"], 1),
            humidity_pct=round(r["humidity"], 1),
            pressure_hpa=round(r["pressure"], 1),
            discharge_q=round(r["discharge_q"], 1),
            stage_pct=round(r["stage_pct"], 1),
            eta_to_overflow_s=None if math.isinf(overflow) else round(overflow, 1),
        )

    def sky_snapshot(self) -> SkySnapshot:
        return SkySnapshot(
            flood_likelihood_pct=round(self.state.likelihood, 1),
            eta_seconds=self.state.eta.seconds,
            eta_now=self.state.eta.now,
            status=self.state.status,
            phase=self.state.phase,
            display_state=self.display_state,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Plain view of the whole surface for renderers and the HTTP API."""
        s = self.state
        return {
            "tick": s.tick,
            "rain": s.rain,
            "readings": dict(s.readings),
            "likelihood": s.likelihood,
            "status": s.status.value,
            "phase": s.phase.value,
            "near_baseline": s.near_baseline,
            "eta": {
                "seconds": s.eta.seconds,
                "now": s.eta.now,
                "label": eta_label(s.eta, subsiding=s.status == Status.SUBSIDING),
            },
            "overflow_eta_s": None if math.isinf(s.overflow_eta_s) else s.overflow_eta_s,
            "display_state": self.display_state,
            "toasts": [
                {"id": t.id, "kind": t.kind.value, "title": t.title, "message": t.message}
                for t in self.alerts.toasts
            ],
        }

    def _publish_snapshots(self) -> None:
        self.transport.publish(KIND_RIVER, self.river_snapshot().model_dump(mode="json"))
        self.transport.publish(KIND_SKY, self.sky_snapshot().model_dump(mode="json"))

    # ---------------- internals ----------------

    def _announce_rain(self, previous: int) -> None:
        rain = self.state.rain
        if rain == previous:
            return
        self.transport.publish(KIND_CONTROL, command_payload(SetRainLevel(value=rain)))
        raining = rain >= RAIN_THRESHOLD
        if raining != (previous >= RAIN_THRESHOLD):
            self.trigger_display("RAIN" if raining else "NORMAL")

    def _commit_phase(self) -> None:
        self.state = replace(self.state, phase=self.demo.phase, eta=self.countdown.state)
        self._publish_snapshots()

    def _on_demo_reset(self) -> None:
        self.alerts.reset()
        self.countdown.clear()

    def _on_phase_change(self, old: DemoPhase, new: DemoPhase) -> None:
        if new == DemoPhase.PEAK_HOLD:
            self.state = self.state.with_rain(100)
            self.countdown.force_now()
        elif old == DemoPhase.PEAK_HOLD:
            self.countdown.clear()
        if new == DemoPhase.IDLE:
            self.countdown.clear()
            self.alerts.reset()
            self.transport.publish(KIND_CONTROL, command_payload(RunScript(name="STOP")))
        elif new == DemoPhase.RAMP_UP:
            self.transport.publish(KIND_CONTROL, command_payload(RunScript(name="PM_MODE")))

    def _on_command(self, data: Any) -> None:
        if not self._accept_commands:
            return
        command = parse_command(data)
        if command is None:
            return
        if isinstance(command, SetRainLevel):
            self.set_rain(command.value)
        elif isinstance(command, RunScript):
            if command.name == "PM_MODE":
                self.start_demo()
            else:
                self.stop_demo()
        # TRIGGER_STATE is for the displays
