"""
Periodic sweep scheduler.

Re-runs a sweep on a fixed cadence while the session is connected. The next
interval only starts once the current cycle (including its settle delays)
has finished, so two sweeps never overlap. Suspending the poller cancels the
in-flight cycle at its next step boundary and waits for it, which hands the
session to the caller (auto-tune, raw commands).
"""

import threading
from collections.abc import Callable
from contextlib import contextmanager
from enum import Enum
from typing import Any

from .config.constants import POLL_INTERVAL_SEC, WORKER_SHUTDOWN_TIMEOUT_SEC
from .drivers.session import InstrumentSession
from .errors import InstrumentError, describe_error
from .sweep import FrequencyRange, SweepEngine, SweepProgress, SweepResult


class PollerState(Enum):
    """Poller lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"
    SUSPENDED = "suspended"


class Poller:
    """
    Cancellable periodic sweep runner.

    Usage:
        poller = Poller(session, engine, on_result=show, on_status=print)
        poller.frequency_range = FrequencyRange(2.40e9, 2.42e9, 10e6)
        poller.start()

        with poller.suspended():
            tuner.run(poller.frequency_range)

        poller.stop()
    """

    def __init__(
        self,
        session: InstrumentSession,
        engine: SweepEngine,
        interval_sec: float = POLL_INTERVAL_SEC,
        on_result: Callable[[SweepResult], None] | None = None,
        on_marker: Callable[[float], None] | None = None,
        on_progress: Callable[[SweepProgress], None] | None = None,
        on_status: Callable[[str], None] | None = None,
    ):
        """
        Initialize poller.

        Args:
            session: Session checked for connection before each cycle
            engine: Engine running the sweeps
            interval_sec: Wait between the end of one cycle and the next
            on_result: Receives each cycle's SweepResult
            on_marker: Receives the marker frequency (Hz) after each sweep
            on_progress: Receives per-step progress
            on_status: Receives human-readable status and error strings
        """
        self.session = session
        self.engine = engine
        self.interval_sec = interval_sec
        self.on_result = on_result
        self.on_marker = on_marker
        self.on_progress = on_progress
        self.on_status = on_status

        self._cond = threading.Condition()
        self._state = PollerState.STOPPED
        self._range: FrequencyRange | None = None
        self._busy = False
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None
        self._resume_to_running = False
        self._generation = 0
        self.cycles = 0

    @property
    def state(self) -> PollerState:
        """Current poller state."""
        return self._state

    @property
    def frequency_range(self) -> FrequencyRange | None:
        """Range swept on each cycle (None skips cycles)."""
        with self._cond:
            return self._range

    @frequency_range.setter
    def frequency_range(self, value: FrequencyRange | None) -> None:
        with self._cond:
            self._range = value

    def is_busy(self) -> bool:
        """Check whether a cycle is currently running."""
        return self._busy

    def start(self) -> None:
        """Start polling. No-op if already running or suspended."""
        with self._cond:
            if self._state is not PollerState.STOPPED:
                return
            self._state = PollerState.RUNNING
            self._cancel.clear()
            self._generation += 1
            self._thread = threading.Thread(
                target=self._poll_loop,
                args=(self._generation,),
                name="peaktune-poller",
                daemon=True,
            )
            self._thread.start()

    def stop(self, timeout: float = WORKER_SHUTDOWN_TIMEOUT_SEC) -> None:
        """
        Stop polling and wait for the thread to exit.

        An in-flight cycle is cancelled at its next step boundary.

        Args:
            timeout: Maximum time to wait for thread shutdown in seconds
        """
        with self._cond:
            if self._state is PollerState.STOPPED:
                return
            self._state = PollerState.STOPPED
            self._resume_to_running = False
            self._cancel.set()
            self._cond.notify_all()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def suspend(self, timeout: float | None = None) -> bool:
        """
        Suspend polling and wait for any in-flight cycle to finish.

        Args:
            timeout: Maximum wait for the in-flight cycle (None waits forever)

        Returns:
            True if the poller was running and is now suspended
        """
        with self._cond:
            if self._state is not PollerState.RUNNING:
                return False
            self._state = PollerState.SUSPENDED
            self._resume_to_running = True
            self._cancel.set()
            self._cond.notify_all()
            if threading.current_thread() is not self._thread:
                self._cond.wait_for(lambda: not self._busy, timeout=timeout)
            return True

    def resume(self) -> None:
        """Return to RUNNING if the poller was running when suspended."""
        with self._cond:
            if self._state is not PollerState.SUSPENDED:
                return
            if self._resume_to_running:
                self._state = PollerState.RUNNING
                self._resume_to_running = False
                self._cond.notify_all()

    @contextmanager
    def suspended(self):
        """Suspend for the duration of a block, resuming only if it was running."""
        was_running = self.suspend()
        try:
            yield self
        finally:
            if was_running:
                self.resume()

    def cancel_current(self) -> None:
        """Cancel the in-flight cycle (if any) without changing state."""
        self._cancel.set()

    def _poll_loop(self, generation: int) -> None:
        """Poller thread: wait one interval, run a cycle, repeat."""
        while True:
            with self._cond:
                # A restarted poller owns a new thread; old ones just exit
                stopped = self._cond.wait_for(
                    lambda: self._state is PollerState.STOPPED
                    or self._generation != generation,
                    timeout=self.interval_sec,
                )
                if stopped:
                    break
                if self._state is not PollerState.RUNNING:
                    continue
                self._busy = True
                self._cancel.clear()
                frequency_range = self._range

            try:
                self._run_cycle(frequency_range)
            except Exception as e:
                # Poller must survive anything a cycle or callback raises
                self._emit(self.on_status, f"Poll cycle failed: {e}")
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _run_cycle(self, frequency_range: FrequencyRange | None) -> None:
        """One tick: sweep, then marker frequency. Skipped while disconnected."""
        if frequency_range is None or not self.session.is_connected():
            return

        try:
            result = self.engine.run(
                frequency_range,
                progress_callback=self.on_progress,
                cancel_event=self._cancel,
            )
        except InstrumentError as e:
            self._emit(self.on_status, describe_error(e))
            return

        self.cycles += 1
        self._emit(self.on_result, result)

        if result.error is not None:
            self._emit(self.on_status, describe_error(result.error))
            return
        if result.cancelled:
            return

        try:
            marker_hz = self.session.read_marker_frequency_hz()
        except InstrumentError as e:
            self._emit(self.on_status, f"Marker Freq: {describe_error(e)}")
            return
        self._emit(self.on_marker, marker_hz)

    @staticmethod
    def _emit(callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback:
            callback(value)
