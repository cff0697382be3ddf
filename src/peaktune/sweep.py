"""
Frequency sweep and auto-tune engine.

A sweep steps the instrument across a FrequencyRange, reading the peak marker
power after each retune. The auto-tuner runs the same loop, keeps the best
reading and leaves the instrument tuned to it.
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

import numpy as np

from .config.constants import SETTLE_DELAY_SEC, STEP_COUNT_EPSILON
from .drivers.session import InstrumentSession
from .errors import (
    InstrumentError,
    InvalidRangeError,
    NoValidSamplesError,
    NotConnectedError,
    ResponseParseError,
    describe_error,
)
from .utils.units import to_hz


@dataclass(frozen=True)
class FrequencyRange:
    """Sweep bounds in Hz. Stop is inclusive."""

    start_hz: float
    stop_hz: float
    step_hz: float

    def __post_init__(self):
        values = (self.start_hz, self.stop_hz, self.step_hz)
        if not all(math.isfinite(v) for v in values):
            raise InvalidRangeError("Frequencies must be finite numbers")
        if self.start_hz >= self.stop_hz:
            raise InvalidRangeError(
                "Start frequency must be less than Stop frequency"
            )
        if self.step_hz <= 0:
            raise InvalidRangeError("Step frequency must be positive")

    @classmethod
    def from_units(
        cls, start: float, stop: float, step: float, unit: str | None = "MHz"
    ) -> "FrequencyRange":
        """
        Build a range from values given in a display unit.

        Args:
            start: Start frequency in ``unit``
            stop: Stop frequency in ``unit``
            step: Step size in ``unit``
            unit: "Hz", "kHz", "MHz" or "GHz"

        Raises:
            InvalidRangeError: If the range is empty or the step is not positive
        """
        return cls(
            start_hz=to_hz(start, unit),
            stop_hz=to_hz(stop, unit),
            step_hz=to_hz(step, unit),
        )

    @property
    def step_count(self) -> int:
        """Number of steps, both ends included."""
        ratio = (self.stop_hz - self.start_hz) / self.step_hz
        return int(math.floor(ratio + STEP_COUNT_EPSILON * max(1.0, ratio))) + 1

    @property
    def center_hz(self) -> float:
        """Midpoint of the range."""
        return (self.start_hz + self.stop_hz) / 2

    def frequency_at(self, index: int) -> float:
        """Frequency of step ``index``, derived from the index (no accumulation)."""
        return self.start_hz + index * self.step_hz

    def frequencies(self) -> np.ndarray:
        """All step frequencies in Hz."""
        return self.start_hz + np.arange(self.step_count) * self.step_hz


@dataclass(frozen=True)
class Sample:
    """One reading: frequency in Hz and peak power in dBm."""

    frequency_hz: float
    power_dbm: float


@dataclass(frozen=True)
class SweepProgress:
    """Progress of one executed step."""

    index: int
    total: int
    frequency_hz: float
    power_dbm: float | None = None
    status: str | None = None

    @property
    def progress_pct(self) -> float:
        return 100.0 * (self.index + 1) / self.total if self.total else 100.0


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep pass."""

    samples: tuple[Sample, ...] = ()
    best_sample: Sample | None = None
    statuses: tuple[str, ...] = ()
    error: InstrumentError | None = None
    cancelled: bool = False
    tuned: bool = False
    frequency_range: FrequencyRange | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        """True if the pass ran to the end without a fatal error."""
        return self.error is None and not self.cancelled

    def frequencies(self) -> np.ndarray:
        """Sample frequencies in Hz."""
        return np.array([s.frequency_hz for s in self.samples], dtype=float)

    def powers(self) -> np.ndarray:
        """Sample powers in dBm."""
        return np.array([s.power_dbm for s in self.samples], dtype=float)


ProgressCallback = Callable[[SweepProgress], None]


class SweepEngine:
    """
    Executes single sweep passes on an instrument session.

    Usage:
        engine = SweepEngine(session)
        result = engine.run(FrequencyRange(2.40e9, 2.42e9, 10e6))
        for sample in result.samples:
            print(sample.frequency_hz, sample.power_dbm)
    """

    def __init__(
        self,
        session: InstrumentSession,
        settle_delay_sec: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize sweep engine.

        Args:
            session: Connected (or later connected) instrument session
            settle_delay_sec: Wait after each retune (session config if None)
            sleep: Sleep function used when no cancel event is given
        """
        self.session = session
        if settle_delay_sec is None:
            settle_delay_sec = getattr(
                session.config, "settle_delay_sec", SETTLE_DELAY_SEC
            )
        self.settle_delay_sec = settle_delay_sec
        self._sleep = sleep

    def run(
        self,
        frequency_range: FrequencyRange,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SweepResult:
        """
        Run one sweep pass.

        Args:
            frequency_range: Range to sweep
            progress_callback: Called after every step, in step order
            cancel_event: Set to stop the pass at the next step boundary

        Returns:
            SweepResult with the samples collected (partial on abort)

        Raises:
            SessionBusyError: If another sweep already holds the session
        """
        with self.session.exclusive():
            return self._sweep(frequency_range, progress_callback, cancel_event)

    def _sweep(
        self,
        frequency_range: FrequencyRange,
        progress_callback: ProgressCallback | None,
        cancel_event: threading.Event | None,
        track_best: bool = False,
    ) -> SweepResult:
        """Step loop. Caller must hold the session exclusively."""
        if not self.session.is_connected():
            return SweepResult(
                error=NotConnectedError(), frequency_range=frequency_range
            )

        samples: list[Sample] = []
        statuses: list[str] = []
        best: Sample | None = None
        error: InstrumentError | None = None
        cancelled = False
        total = frequency_range.step_count

        for index in range(total):
            if self._should_stop(cancel_event):
                cancelled = True
                break

            freq = frequency_range.frequency_at(index)
            try:
                self.session.set_frequency(freq)
                if self._settle(cancel_event):
                    cancelled = True
                    break
                power = self.session.read_peak_power()
            except ResponseParseError as e:
                status = f"Invalid response at {freq:g} Hz: '{e.raw}'"
                statuses.append(status)
                self._notify(
                    progress_callback,
                    SweepProgress(index, total, freq, status=status),
                )
                continue
            except InstrumentError as e:
                error = e
                self._notify(
                    progress_callback,
                    SweepProgress(index, total, freq, status=describe_error(e)),
                )
                break

            sample = Sample(frequency_hz=freq, power_dbm=power)
            samples.append(sample)
            # Strictly greater: first sample wins ties
            if track_best and (best is None or power > best.power_dbm):
                best = sample
            self._notify(
                progress_callback,
                SweepProgress(index, total, freq, power_dbm=power),
            )

        return SweepResult(
            samples=tuple(samples),
            best_sample=best,
            statuses=tuple(statuses),
            error=error,
            cancelled=cancelled,
            frequency_range=frequency_range,
        )

    def _should_stop(self, cancel_event: threading.Event | None) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return not self.session.is_connected()

    def _settle(self, cancel_event: threading.Event | None) -> bool:
        """Wait the settle delay. Returns True if cancelled meanwhile."""
        if self.settle_delay_sec <= 0:
            return False
        if cancel_event is not None:
            return cancel_event.wait(self.settle_delay_sec)
        self._sleep(self.settle_delay_sec)
        return False

    @staticmethod
    def _notify(callback: ProgressCallback | None, progress: SweepProgress) -> None:
        if callback:
            callback(progress)


class AutoTuner:
    """Sweeps a range and leaves the instrument tuned to the strongest peak."""

    def __init__(self, engine: SweepEngine):
        """
        Initialize auto-tuner.

        Args:
            engine: Sweep engine providing the step loop and session
        """
        self.engine = engine

    @property
    def session(self) -> InstrumentSession:
        return self.engine.session

    def run(
        self,
        frequency_range: FrequencyRange,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SweepResult:
        """
        Find the maximum-power frequency and tune the instrument to it.

        Args:
            frequency_range: Range to search
            progress_callback: Called after every step, in step order
            cancel_event: Set to stop the search at the next step boundary

        Returns:
            SweepResult with best_sample set. ``tuned`` is True when the
            instrument was commanded to the best frequency; ``error`` holds
            NoValidSamplesError if nothing could be read.

        Raises:
            SessionBusyError: If another sweep already holds the session
        """
        with self.session.exclusive():
            return self._tune(frequency_range, progress_callback, cancel_event)

    def _tune(self, frequency_range, progress_callback, cancel_event) -> SweepResult:
        result = self.engine._sweep(
            frequency_range, progress_callback, cancel_event, track_best=True
        )

        if result.error is not None:
            return result

        if result.best_sample is None:
            return replace(result, error=NoValidSamplesError())

        # A cancelled pass still tunes if the session is up
        if not self.session.is_connected():
            return result

        try:
            self.session.set_frequency(result.best_sample.frequency_hz)
        except InstrumentError as e:
            return replace(result, error=e)

        return replace(result, tuned=True)
