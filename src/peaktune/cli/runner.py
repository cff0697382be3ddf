"""CLI runner for peaktune."""

import argparse
import threading

from ..config.settings import AppSettings, SettingsManager
from ..drivers import InstrumentConfig, InstrumentSession
from ..errors import InstrumentError, describe_error
from ..poller import Poller
from ..sweep import AutoTuner, FrequencyRange, SweepEngine, SweepProgress, SweepResult
from ..utils.units import format_frequency
from .parser import apply_cli_settings
from .plotting import export_sweep_plot


def create_instrument_config(settings: AppSettings) -> InstrumentConfig:
    """Create instrument config from settings."""
    return InstrumentConfig(
        host=settings.last_host,
        poll_interval_sec=settings.poll_interval_sec,
    )


def create_frequency_range(settings: AppSettings) -> FrequencyRange:
    """Create the sweep range from settings (values in settings.freq_unit)."""
    return FrequencyRange.from_units(
        settings.start_freq,
        settings.stop_freq,
        settings.step_freq,
        unit=settings.freq_unit,
    )


def _print_progress(progress: SweepProgress, unit: str) -> None:
    freq = format_frequency(progress.frequency_hz, unit, 6)
    if progress.status:
        print(f"  [{progress.index + 1}/{progress.total}] {progress.status}")
    else:
        print(
            f"  [{progress.index + 1}/{progress.total}] {freq}: "
            f"{progress.power_dbm:.3f} dBm"
        )


def _print_result(result: SweepResult, unit: str) -> None:
    if result.cancelled:
        print(f"Sweep cancelled after {len(result.samples)} samples")
    else:
        print(f"Sweep complete: {len(result.samples)} samples")
    if result.best_sample is not None:
        best = result.best_sample
        print(
            f"Best Freq = {format_frequency(best.frequency_hz, unit, 6)}, "
            f"Peak = {best.power_dbm:.3f} dBm"
        )
    if result.error is not None:
        print(f"Error: {describe_error(result.error)}")


def _run_polling(
    session: InstrumentSession,
    engine: SweepEngine,
    frequency_range: FrequencyRange,
    cycles: int,
    interval_sec: float,
    unit: str,
) -> SweepResult | None:
    """Run the poller until ``cycles`` sweeps completed or the link drops."""
    results: list[SweepResult] = []
    done = threading.Event()

    def on_result(result: SweepResult) -> None:
        results.append(result)
        print(f"Cycle {len(results)}:")
        _print_result(result, unit)
        if len(results) >= cycles:
            done.set()

    poller = Poller(
        session,
        engine,
        interval_sec=interval_sec,
        on_result=on_result,
        on_marker=lambda hz: print(f"  Marker Freq: {format_frequency(hz, unit, 6)}"),
        on_status=lambda status: print(f"  {status}"),
    )
    poller.frequency_range = frequency_range
    poller.start()
    try:
        while not done.wait(0.5):
            if not session.is_connected():
                print("Error: Connection lost")
                break
    finally:
        poller.stop()

    return results[-1] if results else None


def run_cli(args: argparse.Namespace) -> int:
    """Run the requested actions in CLI mode."""
    try:
        # Load settings
        settings_manager = SettingsManager()
        settings = settings_manager.load()

        # Apply CLI arguments to settings
        settings = apply_cli_settings(args, settings)

        # Validate required settings
        if not settings.last_host:
            print("Error: No host IP configured. Use --host option or run GUI first.")
            return 1

        try:
            frequency_range = create_frequency_range(settings)
        except InstrumentError as e:
            print(f"Error: {describe_error(e)}")
            return 1

        config = create_instrument_config(settings)
        if args.timeout:
            config.read_timeout_sec = args.timeout
        unit = settings.freq_unit

        print(f"Connecting to analyzer at {settings.last_host}...")
        session = InstrumentSession(config)

        def progress_callback(message: str, progress: float):
            print(f"  {message} ({progress:.0f}%)")

        try:
            idn = session.connect(progress_callback=progress_callback)
        except InstrumentError as e:
            print(f"Error: {describe_error(e)}")
            return 1
        print(f"Connected: {idn}")

        if not args.no_save:
            settings_manager.add_host_to_history(settings.last_host)
            settings_manager.save(settings)

        engine = SweepEngine(session)
        result = None
        exit_code = 0

        try:
            if args.send is not None:
                reply = session.send_raw(args.send)
                print(reply if reply is not None else "OK")

            if args.sweep:
                print("Starting sweep...")
                result = engine.run(
                    frequency_range,
                    progress_callback=lambda p: _print_progress(p, unit),
                )
                _print_result(result, unit)

            if args.auto_tune:
                print("Starting Auto Tune...")
                result = AutoTuner(engine).run(
                    frequency_range,
                    progress_callback=lambda p: _print_progress(p, unit),
                )
                _print_result(result, unit)
                if result.tuned:
                    print("Analyzer tuned to best frequency")

            if args.poll:
                result = _run_polling(
                    session,
                    engine,
                    frequency_range,
                    args.poll,
                    config.poll_interval_sec,
                    unit,
                )

            if result is not None and result.error is not None:
                exit_code = 1

        except InstrumentError as e:
            print(f"Error: {describe_error(e)}")
            exit_code = 1
        except ValueError as e:
            print(f"Error: {e}")
            exit_code = 1
        finally:
            session.disconnect()

        if args.plot and result is not None and result.samples:
            plot_path = export_sweep_plot(result, args.plot, freq_unit=unit)
            print(f"Plot saved: {plot_path}")

        return exit_code

    except Exception as e:
        print(f"Error: {e}")
        return 1
