"""
Instrument session for SCPI spectrum analyzers.

Wraps ScpiTransport with the connect/disconnect state machine and the
instrument-level operations used by sweeps: set frequency, read the peak
marker power and read the marker frequency.
"""

import re
import threading
from collections.abc import Callable
from contextlib import contextmanager

from ..errors import (
    ConnectionFailedError,
    InstrumentIOError,
    NotConnectedError,
    ResponseParseError,
    SessionBusyError,
)
from .base import InstrumentConfig, SessionState
from .scpi_commands import (
    CMD_GET_MARKER_X,
    CMD_GET_MARKER_Y,
    CMD_IDN,
    CMD_MARKER_TO_PEAK,
    cmd_set_frequency,
    is_query,
)
from .transport import ScpiTransport

# SCPI decimal numeric forms (NR1/NR2/NR3), locale independent
_SCPI_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_scpi_float(raw: str) -> float:
    """
    Parse an instrument reply as a floating-point number.

    Args:
        raw: Reply line as received

    Returns:
        Parsed value

    Raises:
        ResponseParseError: If the reply is not a plain decimal number
    """
    text = raw.strip() if raw is not None else ""
    if not _SCPI_NUMBER.fullmatch(text):
        raise ResponseParseError(raw)
    return float(text)


class InstrumentSession:
    """
    Session with a single SCPI analyzer.

    The session is the only owner of the transport. Every send/read pair runs
    under an I/O lock so two exchanges never interleave on the wire, and
    multi-step operations (sweeps, raw commands) take exclusive() on top.
    """

    def __init__(
        self,
        config: InstrumentConfig | None = None,
        transport_factory: Callable[[InstrumentConfig], ScpiTransport] = ScpiTransport,
    ):
        """
        Initialize session.

        Args:
            config: Connection configuration (uses defaults if None)
            transport_factory: Callable building a transport for a config
        """
        self.config = config or InstrumentConfig()
        self._transport_factory = transport_factory
        self._transport: ScpiTransport | None = None
        self._state = SessionState.DISCONNECTED
        self._idn: str = ""
        self._io_lock = threading.RLock()
        self._exclusive = threading.Lock()

    @property
    def state(self) -> SessionState:
        """Current connection state."""
        return self._state

    @property
    def idn(self) -> str:
        """Instrument identification string from the last connect."""
        return self._idn

    def is_connected(self) -> bool:
        """Check if the session is connected."""
        return self._state is SessionState.CONNECTED

    def connect(self, host: str | None = None, progress_callback=None) -> str:
        """
        Open the connection and verify it with an identification query.

        Args:
            host: Instrument host (uses config host if None)
            progress_callback: Optional callback(message, progress_pct)

        Returns:
            Identification string reported by the instrument

        Raises:
            ConnectionFailedError: If opening or the *IDN? exchange fails
        """

        def report(msg: str, pct: float) -> None:
            if progress_callback:
                progress_callback(msg, pct)

        if host is not None:
            self.config.host = host.strip()

        # No silent reuse of an old connection
        self.disconnect()

        with self._io_lock:
            transport = self._transport_factory(self.config)
            try:
                report("Opening connection...", 30)
                transport.open()

                report("Verifying connection...", 70)
                transport.send(CMD_IDN)
                idn = transport.read_line()
            except Exception as e:
                transport.close()
                raise ConnectionFailedError(
                    f"Connection to {self.config.host or '<no host>'} failed: {e}",
                    cause=e,
                ) from e

            self._transport = transport
            self._idn = idn
            self._state = SessionState.CONNECTED

        report("Connected", 100)
        return idn

    def disconnect(self) -> None:
        """Close the connection. Safe to call when already disconnected."""
        # Flip state first so running sweeps stop at their next step
        self._state = SessionState.DISCONNECTED
        with self._io_lock:
            self._drop_connection()

    @contextmanager
    def exclusive(self):
        """
        Hold the session for a multi-step operation.

        Raises:
            SessionBusyError: If another operation already holds it
        """
        if not self._exclusive.acquire(blocking=False):
            raise SessionBusyError()
        try:
            yield self
        finally:
            self._exclusive.release()

    def is_busy(self) -> bool:
        """Check whether a multi-step operation currently holds the session."""
        return self._exclusive.locked()

    def _require_transport(self) -> ScpiTransport:
        if self._state is not SessionState.CONNECTED or self._transport is None:
            raise NotConnectedError()
        return self._transport

    def _exchange(self, commands: list[str], expect_reply: bool) -> str | None:
        """
        Run one request/response exchange under the I/O lock.

        A write or read failure drops the connection so later calls fail fast
        with NotConnectedError. Timeouts leave the connection open.
        """
        with self._io_lock:
            transport = self._require_transport()
            try:
                for command in commands:
                    transport.send(command)
                if expect_reply:
                    return transport.read_line()
                return None
            except InstrumentIOError:
                self._drop_connection()
                raise

    def _drop_connection(self) -> None:
        self._state = SessionState.DISCONNECTED
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._idn = ""

    def set_frequency(self, freq_hz: float) -> None:
        """
        Tune the instrument.

        Args:
            freq_hz: Frequency in Hz
        """
        self._exchange([cmd_set_frequency(freq_hz)], expect_reply=False)

    def read_peak_power(self) -> float:
        """
        Move marker 1 to the trace peak and read its power.

        Returns:
            Peak power in dBm

        Raises:
            ResponseParseError: If the reply is not a number
        """
        response = self._exchange([CMD_MARKER_TO_PEAK, CMD_GET_MARKER_Y], True)
        return parse_scpi_float(response)

    def read_marker_frequency_hz(self) -> float:
        """
        Read marker 1 frequency.

        Returns:
            Marker frequency in Hz

        Raises:
            ResponseParseError: If the reply is not a number
        """
        response = self._exchange([CMD_GET_MARKER_X], True)
        return parse_scpi_float(response)

    def send_raw(self, command: str) -> str | None:
        """
        Send an arbitrary command, reading a reply only for queries.

        Args:
            command: SCPI command text

        Returns:
            Reply line for queries, None otherwise

        Raises:
            SessionBusyError: If a sweep currently holds the session
        """
        command = command.strip()
        if not command:
            raise ValueError("Command must not be empty")
        with self.exclusive():
            return self._exchange([command], expect_reply=is_query(command))

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
