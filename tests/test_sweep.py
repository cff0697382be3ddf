"""
Tests for the sweep engine and auto-tuner.

Uses the mock analyzer with per-frequency scripted marker power replies.
"""

import math
import threading

import numpy as np
import pytest

from peaktune.errors import (
    InstrumentIOError,
    InstrumentTimeoutError,
    InvalidRangeError,
    NoValidSamplesError,
    NotConnectedError,
    SessionBusyError,
    describe_error,
)
from peaktune.sweep import (
    AutoTuner,
    FrequencyRange,
    Sample,
    SweepEngine,
    SweepProgress,
    SweepResult,
)

SCENARIO_RANGE = FrequencyRange(start_hz=2.400e9, stop_hz=2.420e9, step_hz=10e6)


@pytest.fixture
def tuner(engine):
    return AutoTuner(engine)


@pytest.mark.unit
class TestFrequencyRange:
    """Test range validation and step generation."""

    @pytest.mark.parametrize(
        "start,stop,step,expected",
        [
            (2.400e9, 2.420e9, 10e6, 3),
            (2.400e9, 2.425e9, 10e6, 3),
            (0.0, 1.0, 0.1, 11),
            (0.0, 0.3, 0.1, 4),
            (1e6, 2e6, 3e5, 4),
            (100.0, 101.0, 5.0, 1),
        ],
    )
    def test_step_count(self, start, stop, step, expected):
        """Test step count is floor((stop - start) / step) + 1."""
        assert FrequencyRange(start, stop, step).step_count == expected

    @pytest.mark.parametrize(
        "start,stop,step",
        [
            (0.0, 0.3, 0.1),
            (0.0, 1.0, 0.1),
            (2.4e9, 2.5e9, 1e6),
            (1.0, 7.0, 0.7),
            (9e3, 3e9, 1.5e6),
        ],
    )
    def test_frequencies_are_index_based(self, start, stop, step):
        """
        Test every frequency equals start + i * step exactly.

        Frequencies come from the step index rather than a running sum, so
        e.g. 0 -> 0.3 in 0.1 steps yields four points including 0.3, where
        accumulating 0.1 three times overshoots the stop bound and drops it.
        """
        frequency_range = FrequencyRange(start, stop, step)
        freqs = frequency_range.frequencies()

        assert len(freqs) == frequency_range.step_count
        for i, freq in enumerate(freqs):
            assert freq == start + i * step
            assert frequency_range.frequency_at(i) == start + i * step
        assert np.all(np.diff(freqs) > 0)
        assert len(set(freqs.tolist())) == len(freqs)

    def test_running_sum_would_drop_last_step(self):
        """Test the case where accumulating the step drifts past stop."""
        accumulated = 0.0
        running_sum_steps = 0
        while accumulated <= 0.3:
            running_sum_steps += 1
            accumulated += 0.1

        assert running_sum_steps == 3
        assert FrequencyRange(0.0, 0.3, 0.1).step_count == 4

    @pytest.mark.parametrize(
        "start,stop,step",
        [
            (2.42e9, 2.40e9, 10e6),
            (2.40e9, 2.40e9, 10e6),
            (2.40e9, 2.42e9, 0.0),
            (2.40e9, 2.42e9, -1e6),
            (math.nan, 2.42e9, 10e6),
            (2.40e9, math.inf, 10e6),
        ],
    )
    def test_invalid_ranges(self, start, stop, step):
        """Test empty, inverted and non-finite ranges are rejected."""
        with pytest.raises(InvalidRangeError):
            FrequencyRange(start, stop, step)

    def test_invalid_range_is_value_error(self):
        """Test InvalidRangeError can be caught as ValueError."""
        with pytest.raises(ValueError, match="Start frequency must be less"):
            FrequencyRange(2.0, 1.0, 0.1)

    def test_from_units(self):
        """Test conversion from display units."""
        frequency_range = FrequencyRange.from_units(2400, 2420, 10, "MHz")
        assert frequency_range == SCENARIO_RANGE

        ghz = FrequencyRange.from_units(2.4, 2.5, 0.05, "GHz")
        assert ghz.start_hz == 2.4e9
        assert ghz.step_hz == 0.05e9

    def test_from_units_unknown_unit_uses_mhz(self):
        """Test unknown unit labels fall back to MHz."""
        frequency_range = FrequencyRange.from_units(1, 2, 1, "furlongs")
        assert frequency_range.start_hz == 1e6
        assert frequency_range.stop_hz == 2e6

    def test_center(self):
        """Test midpoint of the range."""
        assert SCENARIO_RANGE.center_hz == 2.410e9


@pytest.mark.unit
class TestSweepValueObjects:
    """Test progress and result helpers."""

    def test_progress_pct(self):
        """Test progress percentage from step index."""
        assert SweepProgress(0, 4, 1e9).progress_pct == 25.0
        assert SweepProgress(3, 4, 1e9).progress_pct == 100.0

    def test_result_arrays(self):
        """Test numpy views of samples."""
        result = SweepResult(samples=(Sample(1e9, -10.0), Sample(2e9, -20.0)))
        np.testing.assert_array_equal(result.frequencies(), [1e9, 2e9])
        np.testing.assert_array_equal(result.powers(), [-10.0, -20.0])
        assert result.ok

    def test_empty_result(self):
        """Test empty result arrays."""
        result = SweepResult()
        assert result.frequencies().size == 0
        assert result.best_sample is None


@pytest.mark.unit
class TestSweepEngine:
    """Test sweep passes against the mock analyzer."""

    def test_scenario_three_steps(self, engine, mock_analyzer):
        """Test three steps with scripted replies produce ordered samples."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-42.0", 2.410e9: "-38.5", 2.420e9: "-40.1"}
        )

        result = engine.run(SCENARIO_RANGE)

        assert result.samples == (
            Sample(2.400e9, -42.0),
            Sample(2.410e9, -38.5),
            Sample(2.420e9, -40.1),
        )
        assert result.ok
        assert result.error is None
        assert result.frequency_range == SCENARIO_RANGE

    def test_command_sequence(self, engine, mock_analyzer):
        """Test each step retunes, moves the marker and reads power."""
        mock_analyzer.reset_history()
        engine.run(FrequencyRange(1e6, 2e6, 1e6))

        assert mock_analyzer.command_history == [
            ":FREQ 1000000",
            ":CALC:MARK1:MAX",
            ":CALC:MARK1:Y?",
            ":FREQ 2000000",
            ":CALC:MARK1:MAX",
            ":CALC:MARK1:Y?",
        ]

    def test_unparseable_step_is_skipped(self, engine, mock_analyzer):
        """Test an invalid reply omits that step and the sweep continues."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-42.0", 2.410e9: "ERR", 2.420e9: "-40.1"}
        )

        result = engine.run(SCENARIO_RANGE)

        assert [s.frequency_hz for s in result.samples] == [2.400e9, 2.420e9]
        assert len(result.statuses) == 1
        assert "ERR" in result.statuses[0]
        assert result.error is None
        assert len(mock_analyzer.frequency_commands()) == 3

    def test_progress_in_step_order(self, engine, mock_analyzer):
        """Test a progress update per step, in order, including skipped steps."""
        mock_analyzer.set_peak_powers({2.410e9: "garbage"})
        updates: list[SweepProgress] = []

        engine.run(SCENARIO_RANGE, progress_callback=updates.append)

        assert [u.index for u in updates] == [0, 1, 2]
        assert all(u.total == 3 for u in updates)
        assert [u.frequency_hz for u in updates] == [2.400e9, 2.410e9, 2.420e9]
        assert updates[1].power_dbm is None
        assert updates[1].status is not None
        assert updates[2].power_dbm == -60.0

    def test_plain_sweep_has_no_best_sample(self, engine):
        """Test best tracking only happens for auto-tune."""
        result = engine.run(SCENARIO_RANGE)
        assert result.best_sample is None
        assert not result.tuned

    def test_not_connected(self, session):
        """Test sweeping a disconnected session returns NotConnectedError."""
        result = SweepEngine(session, settle_delay_sec=0.0).run(SCENARIO_RANGE)

        assert isinstance(result.error, NotConnectedError)
        assert result.samples == ()
        assert not result.ok

    def test_timeout_aborts_pass(self, engine, mock_analyzer, connected_session):
        """Test a read timeout ends the pass but keeps the session."""
        mock_analyzer.set_peak_powers({2.410e9: None})

        result = engine.run(SCENARIO_RANGE)

        assert isinstance(result.error, InstrumentTimeoutError)
        assert [s.frequency_hz for s in result.samples] == [2.400e9]
        assert connected_session.is_connected()
        assert describe_error(result.error) == "Instrument read timed out"

    def test_failing_step_reports_progress(self, engine, mock_analyzer):
        """Test the step that aborts the pass still gets a progress update."""
        mock_analyzer.set_peak_powers({2.410e9: None})
        updates: list[SweepProgress] = []

        engine.run(SCENARIO_RANGE, progress_callback=updates.append)

        assert [u.index for u in updates] == [0, 1]
        assert updates[1].frequency_hz == 2.410e9
        assert updates[1].power_dbm is None
        assert updates[1].status == "Instrument read timed out"

    def test_io_error_aborts_and_disconnects(
        self, engine, mock_analyzer, connected_session
    ):
        """Test an I/O failure ends the pass and drops the connection."""

        def break_link(command):
            if command == ":FREQ 2410000000":
                mock_analyzer.fail_reads = True

        mock_analyzer.on_write = break_link

        result = engine.run(SCENARIO_RANGE)

        assert isinstance(result.error, InstrumentIOError)
        assert len(result.samples) == 1
        assert not connected_session.is_connected()

    def test_cancel_at_step_boundary(self, engine):
        """Test a set cancel event stops the pass before the next step."""
        cancel = threading.Event()

        def on_progress(progress):
            if progress.index == 0:
                cancel.set()

        result = engine.run(
            SCENARIO_RANGE, progress_callback=on_progress, cancel_event=cancel
        )

        assert result.cancelled
        assert not result.ok
        assert len(result.samples) == 1
        assert result.error is None

    def test_disconnect_stops_pass(self, engine, connected_session):
        """Test disconnect during a pass is observed at the next step."""

        def on_progress(progress):
            if progress.index == 1:
                connected_session.disconnect()

        result = engine.run(SCENARIO_RANGE, progress_callback=on_progress)

        assert result.cancelled
        assert len(result.samples) == 2

    def test_settle_delay_uses_sleep(self, connected_session):
        """Test settle delay after each retune."""
        sleeps = []
        engine = SweepEngine(connected_session, settle_delay_sec=0.2, sleep=sleeps.append)

        engine.run(SCENARIO_RANGE)

        assert sleeps == [0.2, 0.2, 0.2]

    def test_settle_delay_default_from_config(self, connected_session):
        """Test settle delay defaults to the session config."""
        connected_session.config.settle_delay_sec = 0.05
        assert SweepEngine(connected_session).settle_delay_sec == 0.05

    def test_cancel_during_settle(self, connected_session):
        """Test cancel set while settling ends the pass without reading."""
        cancel = threading.Event()
        engine = SweepEngine(connected_session, settle_delay_sec=5.0)
        timer = threading.Timer(0.1, cancel.set)
        timer.start()

        try:
            result = engine.run(SCENARIO_RANGE, cancel_event=cancel)
        finally:
            timer.cancel()

        assert result.cancelled
        assert result.samples == ()

    def test_precancelled_pass_does_nothing(self, engine, mock_analyzer):
        """Test an already-set cancel event sends no commands."""
        cancel = threading.Event()
        cancel.set()
        mock_analyzer.reset_history()

        result = engine.run(SCENARIO_RANGE, cancel_event=cancel)

        assert result.cancelled
        assert mock_analyzer.command_history == []

    def test_second_sweep_rejected_while_running(self, engine):
        """Test a concurrent sweep on the same session is rejected."""
        in_sweep = threading.Event()
        release = threading.Event()
        results = []

        def on_progress(progress):
            if progress.index == 0:
                in_sweep.set()
                release.wait(2.0)

        thread = threading.Thread(
            target=lambda: results.append(
                engine.run(SCENARIO_RANGE, progress_callback=on_progress)
            )
        )
        thread.start()
        assert in_sweep.wait(2.0)
        try:
            with pytest.raises(SessionBusyError):
                engine.run(SCENARIO_RANGE)
            with pytest.raises(SessionBusyError):
                AutoTuner(engine).run(SCENARIO_RANGE)
        finally:
            release.set()
            thread.join(2.0)

        assert len(results[0].samples) == 3


@pytest.mark.unit
class TestAutoTuner:
    """Test best-peak search and final retune."""

    def test_scenario_best_sample_and_retune(self, tuner, mock_analyzer):
        """Test best sample is the maximum and the analyzer is left on it."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-42.0", 2.410e9: "-38.5", 2.420e9: "-40.1"}
        )

        result = tuner.run(SCENARIO_RANGE)

        assert result.best_sample == Sample(2.410e9, -38.5)
        assert result.tuned
        assert result.error is None
        assert mock_analyzer.frequency_commands()[-1] == ":FREQ 2410000000"
        assert mock_analyzer.frequency_hz == 2.410e9

    def test_best_among_valid_samples(self, tuner, mock_analyzer):
        """Test an unparseable step is ignored when choosing the best."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-42.0", 2.410e9: "ERR", 2.420e9: "-40.1"}
        )

        result = tuner.run(SCENARIO_RANGE)

        assert len(result.samples) == 2
        assert result.best_sample == Sample(2.420e9, -40.1)
        assert result.tuned

    def test_tie_keeps_earlier_frequency(self, tuner, mock_analyzer):
        """Test equal maxima resolve to the lower frequency."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-30.0", 2.410e9: "-45.0", 2.420e9: "-30.0"}
        )

        result = tuner.run(SCENARIO_RANGE)

        assert result.best_sample == Sample(2.400e9, -30.0)

    def test_no_valid_samples(self, tuner, mock_analyzer):
        """Test auto-tune fails without retuning when nothing parses."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "ERR", 2.410e9: "ERR", 2.420e9: "ERR"}
        )

        result = tuner.run(SCENARIO_RANGE)

        assert isinstance(result.error, NoValidSamplesError)
        assert not result.tuned
        assert result.best_sample is None
        # Only the sweep's own retunes, no final one
        assert len(mock_analyzer.frequency_commands()) == 3
        assert describe_error(result.error) == "No valid samples"

    def test_fatal_error_skips_retune(self, tuner, mock_analyzer):
        """Test a timeout aborts auto-tune without a final retune."""
        mock_analyzer.set_peak_powers({2.410e9: None})

        result = tuner.run(SCENARIO_RANGE)

        assert isinstance(result.error, InstrumentTimeoutError)
        assert not result.tuned
        assert len(mock_analyzer.frequency_commands()) == 2

    def test_cancelled_pass_still_tunes(self, tuner, mock_analyzer):
        """Test a cancelled search tunes to the best sample found so far."""
        mock_analyzer.set_peak_powers(
            {2.400e9: "-42.0", 2.410e9: "-38.5", 2.420e9: "-10.0"}
        )
        cancel = threading.Event()

        def on_progress(progress):
            if progress.index == 1:
                cancel.set()

        result = tuner.run(SCENARIO_RANGE, progress_callback=on_progress, cancel_event=cancel)

        assert result.cancelled
        assert result.tuned
        assert result.best_sample == Sample(2.410e9, -38.5)
        assert mock_analyzer.frequency_hz == 2.410e9

    def test_disconnected_pass_does_not_tune(self, tuner, connected_session):
        """Test disconnect mid-search leaves no retune attempt."""

        def on_progress(progress):
            if progress.index == 0:
                connected_session.disconnect()

        result = tuner.run(SCENARIO_RANGE, progress_callback=on_progress)

        assert result.cancelled
        assert not result.tuned
        assert result.best_sample is not None
        assert result.error is None
