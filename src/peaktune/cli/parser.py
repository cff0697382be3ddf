"""Command-line argument parser for peaktune."""

import argparse

from ..config.constants import FREQ_UNIT_CONVERSIONS
from ..config.settings import AppSettings


def create_cli_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="peaktune - SCPI spectrum analyzer peak tuner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One sweep with last settings, plot saved as PNG
  peaktune --sweep --plot sweep.png

  # Find the strongest peak between 2.40 and 2.48 GHz and tune to it
  peaktune --host 192.168.1.50 --start 2.40 --stop 2.48 --step 0.005 \\
      --freq-unit GHz --auto-tune

  # Send a raw SCPI command
  peaktune --send ":CALC:MARK1:X?"

  # Five polling cycles
  peaktune --poll 5

  # GUI mode (default)
  peaktune
        """,
    )

    # Connection parameters
    conn_group = parser.add_argument_group("connection settings")
    conn_group.add_argument(
        "--host", help="Analyzer IP address (e.g., 192.168.1.50)"
    )
    conn_group.add_argument(
        "--timeout",
        type=float,
        help="Read timeout in seconds (default: 1.0)",
    )

    # Frequency parameters
    freq_group = parser.add_argument_group("frequency settings")
    freq_group.add_argument(
        "--start", type=float, help="Start frequency in --freq-unit (default: 2400)"
    )
    freq_group.add_argument(
        "--stop", type=float, help="Stop frequency in --freq-unit (default: 2420)"
    )
    freq_group.add_argument(
        "--step", type=float, help="Step size in --freq-unit (default: 10)"
    )
    freq_group.add_argument(
        "--freq-unit",
        choices=list(FREQ_UNIT_CONVERSIONS),
        help="Unit of --start/--stop/--step (default: MHz)",
    )

    # Actions
    action_group = parser.add_argument_group("actions")
    action_group.add_argument(
        "--sweep", action="store_true", help="Run one sweep and print the samples"
    )
    action_group.add_argument(
        "--auto-tune",
        action="store_true",
        help="Sweep, then tune the analyzer to the strongest peak",
    )
    action_group.add_argument(
        "--send", metavar="CMD", help="Send a raw SCPI command (queries print the reply)"
    )
    action_group.add_argument(
        "--poll",
        type=int,
        metavar="N",
        help="Run N polling cycles (sweep + marker frequency)",
    )

    # Output parameters
    output_group = parser.add_argument_group("output settings")
    output_group.add_argument(
        "--plot", metavar="PATH", help="Save a plot of the last sweep to PATH"
    )
    output_group.add_argument(
        "--no-save",
        action="store_true",
        help="Do not persist the effective settings",
    )

    return parser


def has_cli_action(args: argparse.Namespace) -> bool:
    """Check whether any CLI action was requested (otherwise run the GUI)."""
    return bool(
        args.sweep or args.auto_tune or args.send is not None or args.poll
    )


def apply_cli_settings(args: argparse.Namespace, settings: AppSettings) -> AppSettings:
    """Apply CLI arguments to settings object."""
    # Connection settings
    if args.host:
        settings.last_host = args.host.strip()

    # Frequency settings
    if args.freq_unit:
        settings.freq_unit = args.freq_unit
    if args.start is not None:
        settings.start_freq = args.start
    if args.stop is not None:
        settings.stop_freq = args.stop
    if args.step is not None:
        settings.step_freq = args.step

    # Output settings
    if args.plot:
        settings.plot_path = args.plot

    return settings
