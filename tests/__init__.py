"""
Test suite for peaktune - SCPI spectrum analyzer peak tuner.

This package contains tests including:
- Unit tests for individual components
- Integration tests against a mocked pyvisa analyzer and a loopback TCP instrument
- Crash/edge case tests for robustness
"""
