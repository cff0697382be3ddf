"""
Logging wrapper for SCPI transports.

Automatically logs all SCPI lines exchanged with the instrument for debugging
and monitoring.
"""

from typing import Callable

from ..config.constants import SCPI_RESPONSE_TRUNCATE_LENGTH
from ..drivers.transport import ScpiTransport


class LoggingTransportWrapper:
    """Wrapper that intercepts transport methods to log SCPI traffic."""

    def __init__(
        self, transport: ScpiTransport, log_callback: Callable[[str, str], None]
    ):
        """
        Initialize logging wrapper.

        Args:
            transport: Transport instance to wrap
            log_callback: Callback function(message, level) for logging
        """
        self._transport = transport
        self._log = log_callback

    def send(self, command: str) -> None:
        """Send a command, logging it as tx."""
        self._log(command, "tx")
        self._transport.send(command)

    def read_line(self, timeout: float | None = None) -> str:
        """Read a reply line, logging it as rx (truncated if needed)."""
        response = self._transport.read_line(timeout)
        if len(response) > SCPI_RESPONSE_TRUNCATE_LENGTH:
            self._log(f"{response[:SCPI_RESPONSE_TRUNCATE_LENGTH]}...", "rx")
        else:
            self._log(response, "rx")
        return response

    def query(self, command: str, timeout: float | None = None) -> str:
        """Send a query and read its reply, both logged."""
        self.send(command)
        return self.read_line(timeout)

    def __getattr__(self, name):
        """Pass through all other attributes to wrapped transport."""
        return getattr(self._transport, name)
