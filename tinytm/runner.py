from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .engine import Status
from .machine import StepLimitExceeded
from .visualizer import MachineNotReady, SimulatorSession

logger = logging.getLogger(__name__)


class RunHandle:
    """A cancellable background loop calling ``tick`` every ``interval`` seconds.

    The loop ends when ``tick`` returns ``False`` or raises, or when
    :meth:`cancel` is called.
    """

    def __init__(self, tick: Callable[[], bool], interval: float, name: str = "tinytm-run") -> None:
        self.interval = interval
        self._tick = tick
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self.error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        try:
            while not self._cancelled.wait(self.interval):
                if not self._tick():
                    break
        except (StepLimitExceeded, MachineNotReady) as exc:
            logger.warning("run stopped: %s", exc)
            self.error = exc
        finally:
            self._done.set()

    @property
    def active(self) -> bool:
        return not self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        return self._done.is_set()


class RunScheduler:
    """Drives a :class:`SimulatorSession` at a fixed cadence ("Run" mode)."""

    def __init__(self, session: SimulatorSession, interval_ms: int = 200) -> None:
        self.session = session
        self.interval_ms = interval_ms
        self._handle: Optional[RunHandle] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        handle = self._handle
        return handle is not None and handle.active

    @property
    def last_error(self) -> Optional[BaseException]:
        handle = self._handle
        return handle.error if handle is not None else None

    def _tick(self) -> bool:
        states = self.session.step_forward(1)
        if not states or self.session.is_finished():
            return False
        return self.session.hit_breakpoint is None

    def run(self, interval_ms: Optional[int] = None) -> bool:
        with self._lock:
            if self.running:
                return False
            if self.session.is_finished() or not self.session.is_ready():
                return False
            if interval_ms is not None:
                self.interval_ms = interval_ms
            self.session.set_status(Status.RUNNING, "Running...")
            self._handle = RunHandle(self._tick, self.interval_ms / 1000.0)
            logger.debug("run started at %d ms/step", self.interval_ms)
            return True

    def pause(self) -> bool:
        with self._lock:
            handle = self._handle
            if handle is None or not handle.active:
                return False
            handle.cancel()
        handle.join()
        self.session.set_status(Status.IDLE, "Paused.")
        logger.debug("run paused")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        handle = self._handle
        if handle is None:
            return True
        return handle.join(timeout)

    def reset(self) -> None:
        self.close()
        self.session.restart()

    def close(self) -> None:
        with self._lock:
            handle = self._handle
            self._handle = None
        if handle is not None:
            handle.cancel()
            handle.join()


__all__ = ["RunHandle", "RunScheduler"]
