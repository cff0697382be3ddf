"""
SCPI command constants for spectrum analyzer control.

This module centralizes all SCPI commands sent to the instrument,
making it easier to maintain and adapt for different instruments.
"""

# Standard SCPI commands (IEEE 488.2)
CMD_IDN = "*IDN?"

# Marker commands
CMD_MARKER_TO_PEAK = ":CALC:MARK1:MAX"
CMD_GET_MARKER_Y = ":CALC:MARK1:Y?"
CMD_GET_MARKER_X = ":CALC:MARK1:X?"


def format_number(value: float) -> str:
    """Format a number with invariant decimal notation (no locale, no exponent for Hz)."""
    return f"{float(value):.15g}"


def cmd_set_frequency(freq_hz: float) -> str:
    """Set instrument frequency."""
    return f":FREQ {format_number(freq_hz)}"


def is_query(command: str) -> bool:
    """Queries end with '?' and elicit exactly one reply line."""
    return command.strip().endswith("?")
