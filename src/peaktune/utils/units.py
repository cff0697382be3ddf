"""Frequency unit helpers applied at the user-facing boundary."""

from ..config.constants import FALLBACK_UNIT_MULTIPLIER, FREQ_UNIT_CONVERSIONS


def get_unit_multiplier(unit: str | None) -> float:
    """
    Map a frequency unit label to its multiplier in Hz.

    Unknown labels fall back to the MHz multiplier.

    Args:
        unit: One of "Hz", "kHz", "MHz", "GHz"

    Returns:
        Multiplier converting a value in ``unit`` to Hz
    """
    return FREQ_UNIT_CONVERSIONS.get(unit, FALLBACK_UNIT_MULTIPLIER)


def to_hz(value: float, unit: str | None) -> float:
    """Convert a value expressed in ``unit`` to Hz."""
    return float(value) * get_unit_multiplier(unit)


def from_hz(value_hz: float, unit: str | None) -> float:
    """Convert a value in Hz to ``unit``."""
    return float(value_hz) / get_unit_multiplier(unit)


def format_frequency(value_hz: float, unit: str | None, digits: int = 3) -> str:
    """Format a frequency for display, e.g. ``2410.000 MHz``."""
    label = unit if unit in FREQ_UNIT_CONVERSIONS else "MHz"
    return f"{from_hz(value_hz, unit):.{digits}f} {label}"
