"""
Test fixtures and mocks for peaktune tests.

This module provides:
- A mock pyvisa resource simulating a spectrum analyzer
- A loopback TCP instrument for transport tests
"""

from .fake_instrument import FakeInstrumentServer
from .mock_visa import NO_REPLY, MockResourceManager, MockVisaResource

__all__ = [
    "FakeInstrumentServer",
    "MockResourceManager",
    "MockVisaResource",
    "NO_REPLY",
]
