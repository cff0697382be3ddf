"""
Configuration constants for the analyzer control application.

This module centralizes all hardcoded values to make the application
easier to maintain and configure.
"""

# Network defaults
SCPI_RAW_PORT = 5025
DEFAULT_VISA_PROTOCOL = "TCPIP0"
DEFAULT_VISA_SUFFIX = "SOCKET"

# Line terminator used for both commands and replies
SCPI_TERMINATION = "\n"
SCPI_ENCODING = "ascii"

# Timeout values (in seconds)
READ_TIMEOUT_SEC = 1.0
CONNECT_TIMEOUT_SEC = 5.0

# Window for discarding replies that arrive after a read timed out
STALE_REPLY_DRAIN_SEC = 0.05
STALE_REPLY_MAX_LINES = 32

# Instrument needs this long to retune before the marker is read
SETTLE_DELAY_SEC = 0.2

# Periodic sweep cadence
POLL_INTERVAL_SEC = 1.0

# Frequency defaults (in the default unit)
DEFAULT_FREQ_UNIT = "MHz"
DEFAULT_START_FREQ = 2400.0
DEFAULT_STOP_FREQ = 2420.0
DEFAULT_STEP_FREQ = 10.0

# Frequency unit conversion factors
FREQ_UNIT_CONVERSIONS = {
    "Hz": 1.0,
    "kHz": 1e3,
    "MHz": 1e6,
    "GHz": 1e9,
}

# Used when an unknown unit label is given
FALLBACK_UNIT_MULTIPLIER = 1e6

# Relative tolerance when counting sweep steps
STEP_COUNT_EPSILON = 1e-9

# SCPI response truncation
SCPI_RESPONSE_TRUNCATE_LENGTH = 200

# Message poll interval (seconds)
MESSAGE_POLL_INTERVAL_SEC = 0.05

# Worker/poller thread shutdown timeout (seconds)
WORKER_SHUTDOWN_TIMEOUT_SEC = 5.0

# History limits
MAX_HOST_HISTORY = 10

# Plot settings
DEFAULT_PLOT_DPI = 150
PLOT_Y_LIMITS_DBM = (-100.0, 0.0)
