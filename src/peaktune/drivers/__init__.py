"""
Instrument drivers package.

Transport owns the raw socket, the session builds instrument-level
operations on top of it.
"""

from .base import InstrumentConfig, SessionState
from .session import InstrumentSession, parse_scpi_float
from .transport import ScpiTransport

__all__ = [
    "InstrumentConfig",
    "SessionState",
    "InstrumentSession",
    "ScpiTransport",
    "parse_scpi_float",
]
