import asyncio

import pytest

from flood_kiosk.scheduling.scheduler import AsyncioScheduler, ManualScheduler


def test_periodic_timer_fires_every_period(scheduler):
    calls = []
    scheduler.schedule(250, lambda: calls.append(scheduler.now_ms()))
    scheduler.advance(1000)
    assert calls == [250, 500, 750, 1000]


def test_one_shot_fires_once(scheduler):
    calls = []
    token = scheduler.after(100, lambda: calls.append("x"))
    scheduler.advance(500)
    assert calls == ["x"]
    assert not token.active
    assert scheduler.pending() == 0


def test_cancelled_timers_never_fire(scheduler):
    calls = []
    periodic = scheduler.schedule(100, lambda: calls.append("p"))
    once = scheduler.after(100, lambda: calls.append("o"))
    periodic.cancel()
    once.cancel()
    once.cancel()
    scheduler.advance(1000)
    assert calls == []
    assert scheduler.pending() == 0


def test_callback_can_cancel_itself(scheduler):
    calls = []
    token = None

    def fn():
        calls.append(scheduler.now_ms())
        if len(calls) == 3:
            token.cancel()

    token = scheduler.schedule(100, fn)
    scheduler.advance(1000)
    assert calls == [100, 200, 300]


def test_same_instant_callbacks_run_in_schedule_order(scheduler):
    order = []
    scheduler.after(100, lambda: order.append("a"))
    scheduler.after(100, lambda: order.append("b"))
    scheduler.schedule(100, lambda: order.append("c"))
    scheduler.advance(100)
    assert order == ["a", "b", "c"]


def test_failing_callback_is_logged_not_raised(scheduler, caplog):
    calls = []

    def boom():
        raise RuntimeError("boom")

    scheduler.schedule(100, boom)
    scheduler.schedule(100, lambda: calls.append(1))
    scheduler.advance(300)
    assert calls == [1, 1, 1]
    assert "failed" in caplog.text


def test_cancel_all_clears_pending(scheduler):
    scheduler.schedule(100, lambda: None)
    scheduler.after(5000, lambda: None)
    assert scheduler.pending() == 2
    scheduler.cancel_all()
    assert scheduler.pending() == 0


def test_run_until(scheduler):
    ticks = []
    scheduler.schedule(250, lambda: ticks.append(1))
    assert scheduler.run_until(lambda: len(ticks) >= 4, 250, 10_000)
    assert scheduler.now_ms() == 1000
    assert not scheduler.run_until(lambda: False, 250, 500)


def test_non_positive_period_rejected(scheduler):
    with pytest.raises(ValueError):
        scheduler.schedule(0, lambda: None)


def test_manual_scheduler_start_time():
    assert ManualScheduler(start_ms=1234).now_ms() == 1234


def test_asyncio_scheduler_runs_on_loop():
    async def scenario():
        sched = AsyncioScheduler()
        periodic, once = [], []
        token = sched.schedule(10, lambda: periodic.append(1))
        sched.after(5, lambda: once.append(1))
        cancelled = sched.after(5, lambda: once.append("never"))
        cancelled.cancel()
        await asyncio.sleep(0.08)
        token.cancel()
        count = len(periodic)
        await asyncio.sleep(0.03)
        return periodic, count, once

    periodic, count, once = asyncio.run(scenario())
    assert count >= 2
    assert len(periodic) == count
    assert once == [1]
