"""
Line-oriented SCPI transport over a raw TCP socket.

Uses a pyvisa SOCKET resource so that termination handling, partial reads and
timeouts are managed by the VISA session. One request is outstanding at a
time; the caller is responsible for pairing each query with one read.
A reply that arrives after its read timed out is discarded before the next
command goes out.
"""

import pyvisa

from ..config.constants import (
    SCPI_ENCODING,
    SCPI_TERMINATION,
    STALE_REPLY_DRAIN_SEC,
    STALE_REPLY_MAX_LINES,
)
from ..errors import InstrumentIOError, InstrumentTimeoutError, NotConnectedError
from .base import InstrumentConfig


class ScpiTransport:
    """Owns the instrument connection and exchanges ASCII lines with it."""

    def __init__(self, config: InstrumentConfig | None = None):
        """
        Initialize transport.

        Args:
            config: Connection configuration (uses defaults if None)
        """
        self.config = config or InstrumentConfig()
        self.inst: pyvisa.resources.MessageBasedResource | None = None
        self._stale = False

    def open(self) -> None:
        """
        Open the socket resource.

        Raises:
            ValueError: If host is not configured
            InstrumentIOError: If the resource cannot be opened
        """
        address = self.config.build_address()

        # Use pyvisa-py backend (no NI-VISA dependency), fall back to default
        try:
            rm = pyvisa.ResourceManager("@py")
        except Exception:
            rm = pyvisa.ResourceManager()

        self._stale = False
        try:
            self.inst = rm.open_resource(
                address,
                open_timeout=int(self.config.connect_timeout_sec * 1000),
                read_termination=SCPI_TERMINATION,
                write_termination=SCPI_TERMINATION,
                encoding=SCPI_ENCODING,
            )
            self.inst.timeout = int(self.config.read_timeout_sec * 1000)
        except (pyvisa.VisaIOError, OSError) as e:
            self.inst = None
            raise InstrumentIOError(f"Cannot open {address}: {e}", cause=e) from e

    def close(self) -> None:
        """Close the resource if open."""
        if self.inst is not None:
            try:
                self.inst.close()
            except (pyvisa.Error, OSError):
                pass
            self.inst = None
            self._stale = False

    def is_open(self) -> bool:
        """Check whether a resource is currently open."""
        return self.inst is not None

    def _ensure_open(self) -> None:
        if self.inst is None:
            raise NotConnectedError()

    def _discard_input(self) -> None:
        """Read and drop whatever arrived since the last timed-out read."""
        self._stale = False
        self.inst.timeout = int(STALE_REPLY_DRAIN_SEC * 1000)
        for _ in range(STALE_REPLY_MAX_LINES):
            try:
                self.inst.read_raw()
            except pyvisa.VisaIOError as e:
                if e.error_code == pyvisa.constants.VI_ERROR_TMO:
                    return
                raise InstrumentIOError(f"Read failed: {e}", cause=e) from e
            except OSError as e:
                raise InstrumentIOError(f"Read failed: {e}", cause=e) from e

    def send(self, command: str) -> None:
        """
        Send one command line.

        Args:
            command: SCPI command without terminator

        Raises:
            NotConnectedError: If the transport is not open
            InstrumentIOError: On write failure
        """
        self._ensure_open()
        if self._stale:
            self._discard_input()
        try:
            self.inst.write(command)
        except (pyvisa.VisaIOError, OSError) as e:
            raise InstrumentIOError(f"Write failed: {e}", cause=e) from e

    def read_line(self, timeout: float | None = None) -> str:
        """
        Read one reply line.

        Bytes are accumulated until the line terminator arrives, so a reply
        split over several TCP segments is returned whole.

        Args:
            timeout: Maximum wait in seconds (config read timeout if None)

        Returns:
            Reply decoded as ASCII with whitespace and terminators stripped

        Raises:
            NotConnectedError: If the transport is not open
            InstrumentTimeoutError: If no complete line arrives in time
            InstrumentIOError: On any other read failure
        """
        self._ensure_open()
        if timeout is None:
            timeout = self.config.read_timeout_sec
        self.inst.timeout = int(timeout * 1000)

        try:
            raw = self.inst.read_raw()
        except pyvisa.VisaIOError as e:
            if e.error_code == pyvisa.constants.VI_ERROR_TMO:
                self._stale = True
                raise InstrumentTimeoutError(
                    f"SCPI read timed out after {timeout:g} s"
                ) from e
            raise InstrumentIOError(f"Read failed: {e}", cause=e) from e
        except OSError as e:
            raise InstrumentIOError(f"Read failed: {e}", cause=e) from e

        return raw.decode(SCPI_ENCODING, errors="replace").strip()

    def query(self, command: str, timeout: float | None = None) -> str:
        """Send a query and read its reply line."""
        self.send(command)
        return self.read_line(timeout)
