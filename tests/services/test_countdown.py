import math

import pytest

from flood_kiosk.domain.eta import ETA_NONE, ETA_NOW, EtaState
from flood_kiosk.services.countdown import WindowedCountdown


@pytest.fixture
def countdown(scheduler):
    return WindowedCountdown(scheduler)


def test_no_countdown_below_window(countdown, scheduler):
    for lk in (0, 50, 94.9):
        assert countdown.update(lk) == ETA_NONE
    assert scheduler.pending() == 0


def test_countdown_starts_at_20_and_ticks_each_second(countdown, scheduler):
    assert countdown.update(96) == EtaState(seconds=20)
    scheduler.advance(1000)
    assert countdown.update(96) == EtaState(seconds=19)
    scheduler.advance(5000)
    assert countdown.state == EtaState(seconds=14)


def test_countdown_pins_at_one(countdown, scheduler):
    countdown.update(97)
    scheduler.advance(60_000)
    assert countdown.update(97) == EtaState(seconds=1)


def test_only_one_timer_while_in_window(countdown, scheduler):
    started = []
    countdown.on_start = started.append
    for _ in range(10):
        countdown.update(96)
    assert scheduler.pending() == 1
    assert started == [20]


def test_peak_switches_to_now_and_releases_timer(countdown, scheduler):
    countdown.update(96)
    assert countdown.update(99) == ETA_NOW
    assert scheduler.pending() == 0
    assert not countdown.running


def test_now_holds_inside_window_and_clears_below(countdown):
    countdown.update(100)
    assert countdown.update(97) == ETA_NOW
    assert countdown.update(94) == ETA_NONE


def test_falling_out_of_window_cancels(countdown, scheduler):
    countdown.update(96)
    assert countdown.update(90) == ETA_NONE
    assert scheduler.pending() == 0
    # re-entering starts a fresh countdown from the top
    scheduler.advance(3000)
    assert countdown.update(96) == EtaState(seconds=20)


def test_clear_and_force_now(countdown, scheduler):
    countdown.update(96)
    countdown.force_now()
    assert countdown.state == ETA_NOW
    countdown.clear()
    assert countdown.state == ETA_NONE
    assert scheduler.pending() == 0


def test_non_finite_likelihood_keeps_state(countdown):
    countdown.update(96)
    assert countdown.update(math.nan) == EtaState(seconds=20)


def test_window_must_be_ordered(scheduler):
    with pytest.raises(ValueError):
        WindowedCountdown(scheduler, start_pct=99, now_pct=95)
