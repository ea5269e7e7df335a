from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Optional

from .utils import get_logger

_log = get_logger()


class TaskState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PeriodicTask:
    """Runs ``body`` every ``period_s`` seconds on a daemon thread.

    - The first tick fires immediately after :meth:`start`.
    - The body never runs concurrently with itself, also across restarts.
    - A tick that overruns its period delays the next one; missed ticks are
      not queued.
    - :meth:`start` on a running task cancels the pending tick and restarts
      the timer.
    - :meth:`stop` takes effect at the next tick boundary; a body already in
      flight completes.
    """

    def __init__(
        self,
        name: str,
        period_s: float,
        body: Callable[[], object],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if period_s <= 0.0:
            raise ValueError("period_s must be positive.")
        self.name = name
        self._period_s = float(period_s)
        self._body = body
        self._clock = clock
        self._control = threading.Lock()
        self._body_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.failures = 0

    @property
    def period_s(self) -> float:
        return self._period_s

    @property
    def state(self) -> TaskState:
        with self._control:
            running = self._stop_event is not None and not self._stop_event.is_set()
        return TaskState.RUNNING if running else TaskState.STOPPED

    @property
    def is_running(self) -> bool:
        return self.state is TaskState.RUNNING

    def set_period(self, period_s: float) -> None:
        """Change the period; a running task restarts its timer."""
        if period_s <= 0.0:
            raise ValueError("period_s must be positive.")
        self._period_s = float(period_s)
        if self.is_running:
            self.start()

    def start(self) -> None:
        with self._control:
            if self._stop_event is not None:
                self._stop_event.set()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run, args=(stop_event,), name=f"lidarsim-{self.name}", daemon=True
            )
            self._stop_event = stop_event
            self._thread = thread
        thread.start()
        _log.debug("Task '%s' started (period %.3fs)", self.name, self._period_s)

    def stop(self) -> None:
        with self._control:
            if self._stop_event is not None:
                self._stop_event.set()
        _log.debug("Task '%s' stopped", self.name)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current worker thread to exit. Returns False on timeout."""
        with self._control:
            thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def tick(self) -> None:
        """Run the body once on the calling thread, serialised with the worker."""
        with self._body_lock:
            self._execute()

    def _execute(self) -> None:
        try:
            self._body()
        except Exception:
            self.failures += 1
            _log.exception("Task '%s' tick failed", self.name)
        finally:
            self.ticks += 1

    def _run(self, stop_event: threading.Event) -> None:
        next_tick = self._clock()
        while not stop_event.is_set():
            with self._body_lock:
                if stop_event.is_set():
                    break
                self._execute()
            next_tick += self._period_s
            now = self._clock()
            if next_tick < now:
                next_tick = now
            stop_event.wait(next_tick - now)
