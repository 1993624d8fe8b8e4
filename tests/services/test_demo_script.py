import pytest

from flood_kiosk.domain.simulation import KioskState
from flood_kiosk.domain.status import DemoPhase, Status
from flood_kiosk.persistence.snapshot_store import MemorySnapshotStore
from flood_kiosk.services.alerts import AlertKind
from flood_kiosk.services.control_surface import ControlSurface
from flood_kiosk.services.demo_script import (
    MAX_RAMP_UP_MS,
    PEAK_HOLD_MS,
    RAMP_DOWN_STEP,
    RAMP_UP_STEP,
    DemoScriptController,
)
from flood_kiosk.transport.bus import Transport


# ---------------- controller alone ----------------

@pytest.fixture
def phases():
    return []


@pytest.fixture
def controller(scheduler, phases):
    return DemoScriptController(scheduler, on_phase_change=lambda old, new: phases.append(new))


def test_drive_rain_per_phase(controller):
    assert controller.drive_rain(30) == 30
    controller.start()
    assert controller.drive_rain(30) == 30 + RAMP_UP_STEP
    assert controller.drive_rain(98) == 100
    controller.phase = DemoPhase.PEAK_HOLD
    assert controller.drive_rain(40) == 100
    controller.phase = DemoPhase.RAMP_DOWN
    assert controller.drive_rain(30) == 30 - RAMP_DOWN_STEP
    assert controller.drive_rain(2) == 0


def test_ramp_up_ends_on_rain_cap(controller, phases):
    controller.start()
    controller.evaluate(KioskState(rain=99), 250)
    assert controller.phase == DemoPhase.PEAK_HOLD
    assert phases == [DemoPhase.RAMP_UP, DemoPhase.PEAK_HOLD]


def test_ramp_up_ends_on_peak_likelihood(controller):
    controller.start()
    controller.evaluate(KioskState(rain=40, likelihood=99.0, status=Status.DANGER), 250)
    assert controller.phase == DemoPhase.PEAK_HOLD


def test_ramp_up_ends_after_danger_dwell(controller):
    controller.start()
    danger = KioskState(rain=40, likelihood=85.0, status=Status.DANGER)
    for _ in range(11):
        controller.evaluate(danger, 250)
    assert controller.phase == DemoPhase.RAMP_UP
    controller.evaluate(danger, 250)
    assert controller.phase == DemoPhase.PEAK_HOLD


def test_danger_dwell_must_be_continuous(controller):
    controller.start()
    danger = KioskState(rain=40, likelihood=85.0, status=Status.DANGER)
    warning = KioskState(rain=40, likelihood=78.0, status=Status.WARNING)
    for _ in range(3):
        for _ in range(10):
            controller.evaluate(danger, 250)
        controller.evaluate(warning, 250)
    assert controller.phase == DemoPhase.RAMP_UP


def test_ramp_up_safety_timeout(controller):
    controller.start()
    calm = KioskState(rain=10)
    for _ in range(int(MAX_RAMP_UP_MS / 250) - 1):
        controller.evaluate(calm, 250)
    assert controller.phase == DemoPhase.RAMP_UP
    controller.evaluate(calm, 250)
    assert controller.phase == DemoPhase.PEAK_HOLD


def test_peak_hold_timer_moves_to_ramp_down(controller, scheduler):
    controller.start()
    controller.evaluate(KioskState(rain=100), 250)
    scheduler.advance(PEAK_HOLD_MS - 1)
    assert controller.phase == DemoPhase.PEAK_HOLD
    scheduler.advance(1)
    assert controller.phase == DemoPhase.RAMP_DOWN
    assert scheduler.pending() == 0


def test_ramp_down_waits_for_baseline(controller, scheduler):
    controller.start()
    controller.evaluate(KioskState(rain=100), 250)
    scheduler.advance(PEAK_HOLD_MS)
    controller.evaluate(KioskState(rain=0, near_baseline=False), 250)
    assert controller.phase == DemoPhase.RAMP_DOWN
    controller.evaluate(KioskState(rain=3, near_baseline=True), 250)
    assert controller.phase == DemoPhase.RAMP_DOWN
    controller.evaluate(KioskState(rain=0, near_baseline=True), 250)
    assert controller.phase == DemoPhase.IDLE


def test_invalid_transition_is_ignored(controller, phases):
    controller._transition(DemoPhase.RAMP_DOWN)
    assert controller.phase == DemoPhase.IDLE
    assert phases == []


def test_stop_cancels_hold_timer(controller, scheduler):
    controller.start()
    controller.evaluate(KioskState(rain=100), 250)
    assert scheduler.pending() == 1
    controller.stop()
    assert controller.phase == DemoPhase.IDLE
    assert scheduler.pending() == 0


# ---------------- driven by the control surface ----------------

def make_control(scheduler, rng, channel):
    transport = Transport(channel, store=MemorySnapshotStore(), scheduler=scheduler)
    control = ControlSurface(transport, scheduler, rng=rng)
    control.start()
    return control


def run_until_idle(control, scheduler, max_ms=120_000):
    """Advance tick by tick; returns [(time_ms, phase)] for every phase change."""
    changes = [(scheduler.now_ms(), control.demo.phase)]
    deadline = scheduler.now_ms() + max_ms
    while scheduler.now_ms() < deadline:
        scheduler.advance(control.tick_ms)
        phase = control.demo.phase
        if phase != changes[-1][1]:
            changes.append((scheduler.now_ms(), phase))
        if phase == DemoPhase.IDLE:
            break
    return changes


def test_full_demo_cycle(scheduler, rng):
    control = make_control(scheduler, rng, "demo-cycle")
    control.start_demo()

    ramp_rains = []
    statuses = set()
    danger_toasts = set()
    changes = [(scheduler.now_ms(), control.demo.phase)]
    while control.demo.phase != DemoPhase.IDLE or len(changes) == 1:
        scheduler.advance(control.tick_ms)
        phase = control.demo.phase
        if phase == DemoPhase.RAMP_UP:
            ramp_rains.append(control.state.rain)
        if phase != changes[-1][1]:
            changes.append((scheduler.now_ms(), phase))
        statuses.add(control.state.status)
        danger_toasts |= {t.id for t in control.alerts.toasts if t.kind == AlertKind.DANGER_ENTERED}
        assert scheduler.now_ms() < 120_000

    assert [p for _, p in changes] == [
        DemoPhase.RAMP_UP, DemoPhase.PEAK_HOLD, DemoPhase.RAMP_DOWN, DemoPhase.IDLE]
    assert all(b - a == RAMP_UP_STEP for a, b in zip(ramp_rains, ramp_rains[1:]))
    peak_at, down_at = changes[1][0], changes[2][0]
    assert down_at - peak_at == PEAK_HOLD_MS
    assert Status.SUBSIDING in statuses
    assert len(danger_toasts) == 1

    assert control.state.rain == 0
    assert control.state.status == Status.NORMAL
    assert not control.alerts.fired(AlertKind.DANGER_ENTERED)
    assert control.transport.latest("control").data == {"type": "SCRIPT", "name": "STOP"}

    # nothing left running but the tick loop once the toasts have expired
    scheduler.advance(10_000)
    assert scheduler.pending() == 1


def test_peak_hold_pins_rain_and_eta(scheduler, rng):
    control = make_control(scheduler, rng, "demo-peak")
    control.start_demo()
    assert scheduler.run_until(lambda: control.demo.phase == DemoPhase.PEAK_HOLD, 250, 30_000)
    for _ in range(10):
        scheduler.advance(250)
        assert control.state.rain == 100
        assert control.state.eta.now
        assert control.sky_snapshot().eta_now


def test_double_start_matches_single_start(scheduler, rng):
    once = make_control(scheduler, rng, "demo-once")
    twice = make_control(scheduler, rng, "demo-twice")
    once.start_demo()
    twice.start_demo()
    twice.start_demo()
    assert twice.demo.phase == DemoPhase.RAMP_UP
    scheduler.advance(20_000)
    assert once.demo.phase == twice.demo.phase
    assert once.state == twice.state


def test_restart_during_peak_hold_leaves_no_stale_timer(scheduler, rng):
    control = make_control(scheduler, rng, "demo-restart")
    control.start_demo()
    assert scheduler.run_until(lambda: control.demo.phase == DemoPhase.PEAK_HOLD, 250, 30_000)
    scheduler.advance(5000)

    control.start_demo()
    assert control.demo.phase == DemoPhase.RAMP_UP
    # rain is still at the cap, so the very next tick re-enters the hold
    scheduler.advance(250)
    assert control.demo.phase == DemoPhase.PEAK_HOLD
    scheduler.advance(PEAK_HOLD_MS - 1000)
    assert control.demo.phase == DemoPhase.PEAK_HOLD
    scheduler.advance(1000)
    assert control.demo.phase == DemoPhase.RAMP_DOWN


def test_stop_leaves_rain_where_it_is(scheduler, rng):
    control = make_control(scheduler, rng, "demo-stop")
    control.start_demo()
    scheduler.advance(2000)
    rain = control.state.rain
    assert rain == 8 * RAMP_UP_STEP
    control.stop_demo()
    assert control.demo.phase == DemoPhase.IDLE
    scheduler.advance(2000)
    assert control.state.rain == rain
    assert control.state.phase == DemoPhase.IDLE


def test_demo_cycle_helper_reaches_idle(scheduler, rng):
    control = make_control(scheduler, rng, "demo-helper")
    control.start_demo()
    changes = run_until_idle(control, scheduler)
    assert changes[-1][1] == DemoPhase.IDLE


def test_restart_during_peak_hold_raises_no_new_danger_toast(scheduler, rng):
    control = make_control(scheduler, rng, "demo-restart-alerts")
    control.start_demo()
    assert scheduler.run_until(lambda: control.demo.phase == DemoPhase.PEAK_HOLD, 250, 30_000)
    assert control.state.status == Status.DANGER

    control.start_demo()
    assert control.demo.phase == DemoPhase.RAMP_UP
    scheduler.advance(1000)
    assert control.state.status == Status.DANGER
    assert not control.alerts.fired(AlertKind.DANGER_ENTERED)
