"""
Connection configuration and session state for SCPI instruments.
"""

from dataclasses import dataclass
from enum import Enum

from ..config.constants import (
    CONNECT_TIMEOUT_SEC,
    DEFAULT_VISA_PROTOCOL,
    DEFAULT_VISA_SUFFIX,
    POLL_INTERVAL_SEC,
    READ_TIMEOUT_SEC,
    SCPI_RAW_PORT,
    SETTLE_DELAY_SEC,
)


@dataclass
class InstrumentConfig:
    """Instrument connection and timing parameters."""

    host: str = ""
    port: int = SCPI_RAW_PORT
    protocol: str = DEFAULT_VISA_PROTOCOL
    suffix: str = DEFAULT_VISA_SUFFIX

    # Timing
    connect_timeout_sec: float = CONNECT_TIMEOUT_SEC
    read_timeout_sec: float = READ_TIMEOUT_SEC
    settle_delay_sec: float = SETTLE_DELAY_SEC
    poll_interval_sec: float = POLL_INTERVAL_SEC

    def build_address(self) -> str:
        """Build VISA raw socket resource address string."""
        host = self.host.strip()
        if not host:
            raise ValueError("Host IP address must be configured before connecting")
        return f"{self.protocol}::{host}::{self.port}::{self.suffix}"


class SessionState(Enum):
    """Connection state of an instrument session."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
