"""Utility modules for logging and unit handling."""

from .logging_wrapper import LoggingTransportWrapper
from .units import format_frequency, from_hz, get_unit_multiplier, to_hz

__all__ = [
    "LoggingTransportWrapper",
    "format_frequency",
    "from_hz",
    "get_unit_multiplier",
    "to_hz",
]
