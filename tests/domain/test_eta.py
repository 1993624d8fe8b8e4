import math

import pytest

from flood_kiosk.domain.eta import (
    ETA_NONE,
    ETA_NOW,
    EtaState,
    eta_label,
    eta_to_threshold_seconds,
)


def test_eta_matches_simulated_easing():
    current, target, threshold, alpha, tick_ms = 1.2, 1.95, 1.8, 0.2, 250
    eta = eta_to_threshold_seconds(current, target, threshold, alpha, tick_ms)

    ticks = 0
    v = current
    while v < threshold:
        v += alpha * (target - v)
        ticks += 1
    # the closed form is the continuous crossing point; the discrete walk lands on the next tick
    assert (ticks - 1) * tick_ms / 1000.0 <= eta <= ticks * tick_ms / 1000.0


def test_eta_infinite_when_target_does_not_reach_threshold():
    assert math.isinf(eta_to_threshold_seconds(1.2, 1.8, 1.8, 0.2, 250))
    assert math.isinf(eta_to_threshold_seconds(1.2, 1.5, 1.8, 0.2, 250))


def test_eta_zero_when_already_past_threshold():
    assert eta_to_threshold_seconds(1.9, 1.95, 1.8, 0.2, 250) == 0.0
    assert eta_to_threshold_seconds(1.8, 1.95, 1.8, 0.2, 250) == 0.0


@pytest.mark.parametrize("args", [
    (float("nan"), 1.95, 1.8, 0.2, 250),
    (1.2, 1.95, 1.8, 0.0, 250),
    (1.2, 1.95, 1.8, 1.0, 250),
])
def test_eta_degenerate_inputs(args):
    assert math.isinf(eta_to_threshold_seconds(*args))


def test_eta_state_is_exclusive():
    with pytest.raises(ValueError):
        EtaState(seconds=5, now=True)
    with pytest.raises(ValueError):
        EtaState(seconds=-1)
    assert EtaState(seconds=3).counting
    assert not ETA_NOW.counting
    assert not ETA_NONE.counting


def test_eta_labels():
    assert eta_label(ETA_NONE) == "No flood expected"
    assert eta_label(EtaState(seconds=12)) == "12s"
    assert eta_label(ETA_NOW) == "Now"
    assert eta_label(ETA_NOW, subsiding=True) == "Flood is subsiding"


def test_eta_decreases_as_value_approaches_threshold():
    etas = [eta_to_threshold_seconds(v, 1.95, 1.8, 0.2, 250) for v in (1.2, 1.4, 1.6, 1.7, 1.79)]
    assert all(math.isfinite(e) for e in etas)
    assert etas == sorted(etas, reverse=True)
    assert etas[-1] < etas[0]
