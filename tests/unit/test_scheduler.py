import threading
import time

import pytest

from lidarsim.core.scheduler import PeriodicTask, TaskState


def _wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class CountingBody:
    def __init__(self, work_s: float = 0.0) -> None:
        self.work_s = work_s
        self.active = 0
        self.max_active = 0
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> None:
        with self._lock:
            self.active += 1
            self.calls += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(self.work_s)
        with self._lock:
            self.active -= 1


def test_first_tick_is_immediate_and_repeats() -> None:
    body = CountingBody()
    task = PeriodicTask("t", 0.02, body)
    assert task.state is TaskState.STOPPED
    task.start()
    try:
        assert task.state is TaskState.RUNNING
        assert _wait_for(lambda: body.calls >= 5)
    finally:
        task.stop()
        task.join(1.0)
    assert task.state is TaskState.STOPPED


def test_stop_halts_ticks() -> None:
    body = CountingBody()
    task = PeriodicTask("t", 0.01, body)
    task.start()
    assert _wait_for(lambda: body.calls >= 2)
    task.stop()
    assert task.join(1.0)
    calls = body.calls
    time.sleep(0.05)
    assert body.calls == calls
    assert not task.is_running


def test_overrunning_body_is_never_reentered() -> None:
    body = CountingBody(work_s=0.03)
    task = PeriodicTask("t", 0.005, body)
    task.start()
    try:
        assert _wait_for(lambda: body.calls >= 4)
    finally:
        task.stop()
        task.join(1.0)
    assert body.max_active == 1


def test_restart_never_overlaps_bodies() -> None:
    body = CountingBody(work_s=0.02)
    task = PeriodicTask("t", 0.01, body)
    for _ in range(5):
        task.start()
        time.sleep(0.005)
    assert _wait_for(lambda: body.calls >= 5)
    task.stop()
    task.join(1.0)
    assert body.max_active == 1


def test_restart_cancels_pending_tick() -> None:
    body = CountingBody()
    task = PeriodicTask("t", 60.0, body)
    task.start()
    assert _wait_for(lambda: body.calls == 1)
    task.start()
    # the restarted timer fires immediately instead of waiting out the old period
    assert _wait_for(lambda: body.calls == 2)
    task.stop()
    assert task.join(1.0)


def test_failing_body_keeps_ticking() -> None:
    calls = []

    def body() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    task = PeriodicTask("t", 0.01, body)
    task.start()
    try:
        assert _wait_for(lambda: len(calls) >= 3)
    finally:
        task.stop()
        task.join(1.0)
    assert task.failures == 1


def test_set_period_restarts_running_task() -> None:
    body = CountingBody()
    task = PeriodicTask("t", 60.0, body)
    task.start()
    assert _wait_for(lambda: body.calls == 1)
    task.set_period(0.01)
    assert task.period_s == pytest.approx(0.01)
    assert _wait_for(lambda: body.calls >= 4)
    task.stop()
    task.join(1.0)


def test_tick_runs_synchronously() -> None:
    body = CountingBody()
    task = PeriodicTask("t", 1.0, body)
    task.tick()
    assert body.calls == 1
    assert task.ticks == 1
    assert not task.is_running


def test_invalid_period() -> None:
    with pytest.raises(ValueError):
        PeriodicTask("t", 0.0, lambda: None)
