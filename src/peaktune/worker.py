"""
Instrument worker thread for non-blocking analyzer operations.

This module provides a thread-based architecture for driving the instrument
without blocking the UI thread. Uses standard library queue.Queue for
thread-safe communication. Periodic sweeps run on the poller's own thread and
report through the same response queue.
"""

import queue
import threading
import traceback
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .drivers import InstrumentConfig, InstrumentSession, ScpiTransport
from .errors import InstrumentError, NotConnectedError, describe_error
from .poller import Poller, PollerState
from .sweep import AutoTuner, FrequencyRange, SweepEngine, SweepProgress, SweepResult
from .utils import LoggingTransportWrapper, format_frequency


class MessageType(Enum):
    """Message types for worker communication."""

    # Commands (UI -> Worker)
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    SEND_RAW = "send_raw"
    AUTO_TUNE = "auto_tune"
    START_POLLING = "start_polling"
    STOP_POLLING = "stop_polling"
    READ_MARKER = "read_marker"
    CLEAR_HISTORY = "clear_history"
    SHUTDOWN = "shutdown"

    # Responses (Worker -> UI)
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RAW_REPLY = "raw_reply"
    PARAMS_APPLIED = "params_applied"
    SWEEP_PROGRESS = "sweep_progress"
    SWEEP_COMPLETE = "sweep_complete"
    MARKER_FREQUENCY = "marker_frequency"
    AUTO_TUNE_COMPLETE = "auto_tune_complete"
    HISTORY_CLEARED = "history_cleared"
    POLLING_STATE = "polling_state"
    PROGRESS = "progress"
    STATUS = "status"
    ERROR = "error"
    LOG = "log"  # Log message (TX/RX/info)


@dataclass
class Message:
    """Message structure for inter-thread communication."""

    type: MessageType
    data: Any = None
    error: str | None = None


@dataclass
class ProgressUpdate:
    """Progress update data."""

    message: str
    progress_pct: float


@dataclass
class RawReply:
    """Result of a raw command. ``reply`` is None for non-query commands."""

    command: str
    reply: str | None


@dataclass
class LogMessage:
    """Log message data."""

    message: str
    level: str  # "tx", "rx", "info", "success", "error", "debug"


# Commands that must interrupt a running sweep before they are dequeued
_CANCELLING_COMMANDS = (MessageType.DISCONNECT, MessageType.SHUTDOWN)


class InstrumentWorker:
    """
    Worker thread for analyzer control.

    Handles connection, raw commands and auto-tune in a separate thread and
    owns the poller running periodic sweeps. All results travel back to the
    UI thread via a thread-safe queue.

    Usage:
        worker = InstrumentWorker()
        worker.start()

        worker.apply_sweep_params("2400", "2420", "10", "MHz")
        worker.send_command(MessageType.CONNECT, "10.0.0.5")

        try:
            msg = worker.get_response(timeout=0.1)
            if msg.type == MessageType.SWEEP_COMPLETE:
                plot(msg.data.frequencies(), msg.data.powers())
        except queue.Empty:
            pass

        worker.stop()
    """

    def __init__(
        self,
        config: InstrumentConfig | None = None,
        transport_factory: Callable[[InstrumentConfig], ScpiTransport] = ScpiTransport,
        settle_delay_sec: float | None = None,
        auto_poll: bool = True,
    ):
        """
        Initialize worker.

        Args:
            config: Instrument configuration (uses defaults if None)
            transport_factory: Callable building the transport for a config
            settle_delay_sec: Wait after each retune (config value if None)
            auto_poll: Start periodic sweeps as soon as a connection is made
        """
        self.config = config or InstrumentConfig()
        self.auto_poll = auto_poll

        self._command_queue: queue.Queue = queue.Queue()
        self._response_queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._running = False
        self._cancel = threading.Event()

        # Wrap every transport with logging to capture all SCPI traffic
        def logged_transport(cfg: InstrumentConfig):
            return LoggingTransportWrapper(transport_factory(cfg), self._log)

        self._session = InstrumentSession(self.config, logged_transport)
        self._engine = SweepEngine(self._session, settle_delay_sec)
        self._tuner = AutoTuner(self._engine)
        self._poller = Poller(
            self._session,
            self._engine,
            interval_sec=self.config.poll_interval_sec,
            on_result=self._on_sweep_result,
            on_marker=self._on_marker,
            on_progress=self._on_sweep_progress,
            on_status=self._send_status,
        )
        self._range: FrequencyRange | None = None
        self.last_result: SweepResult | None = None

    @property
    def session(self) -> InstrumentSession:
        return self._session

    @property
    def poller(self) -> Poller:
        return self._poller

    @property
    def frequency_range(self) -> FrequencyRange | None:
        """Range applied with apply_sweep_params()."""
        return self._range

    def is_connected(self) -> bool:
        """Check if the instrument session is connected."""
        return self._session.is_connected()

    def start(self):
        """Start the worker thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._worker_loop, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """
        Stop the worker thread gracefully.

        Args:
            timeout: Maximum time to wait for thread shutdown in seconds
        """
        if not self._running:
            return

        self.send_command(MessageType.SHUTDOWN)

        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

        self._running = False

    def send_command(self, msg_type: MessageType, data: Any = None):
        """
        Send command to worker thread.

        Disconnect, stop and shutdown also cancel any running sweep right
        away, so it stops at its next step boundary instead of finishing.

        Args:
            msg_type: Type of message
            data: Optional data payload
        """
        if msg_type in _CANCELLING_COMMANDS:
            self._cancel.set()
        if msg_type in _CANCELLING_COMMANDS or msg_type == MessageType.STOP_POLLING:
            self._poller.cancel_current()
        self._command_queue.put(Message(type=msg_type, data=data))

    def get_response(self, timeout: float = 0.1) -> Message:
        """
        Get response from worker thread (non-blocking with timeout).

        Args:
            timeout: Timeout in seconds

        Returns:
            Message from worker

        Raises:
            queue.Empty: If no message available within timeout
        """
        return self._response_queue.get(timeout=timeout)

    def apply_sweep_params(
        self, start, stop, step, unit: str | None = "MHz"
    ) -> FrequencyRange:
        """
        Validate and apply sweep parameters given in a display unit.

        Validation happens synchronously on the caller's thread; the new
        range is used from the next sweep cycle on.

        Args:
            start: Start frequency (number or numeric text)
            stop: Stop frequency (number or numeric text)
            step: Step size (number or numeric text)
            unit: "Hz", "kHz", "MHz" or "GHz"

        Returns:
            Applied range in Hz

        Raises:
            ValueError: If a value is not numeric
            InvalidRangeError: If the range is empty or the step not positive
        """
        try:
            values = [float(str(v).strip()) for v in (start, stop, step)]
        except ValueError:
            raise ValueError("Please enter valid numeric values.") from None

        frequency_range = FrequencyRange.from_units(*values, unit=unit)
        self._range = frequency_range
        self._poller.frequency_range = frequency_range

        self._send_response(MessageType.PARAMS_APPLIED, data=frequency_range)
        if self._session.is_connected():
            self.send_command(MessageType.READ_MARKER)
        return frequency_range

    def _send_response(
        self, msg_type: MessageType, data: Any = None, error: str | None = None
    ):
        """Send response to UI thread."""
        self._response_queue.put(Message(type=msg_type, data=data, error=error))

    def _send_progress(self, message: str, progress_pct: float):
        """Send progress update to UI thread."""
        self._send_response(
            MessageType.PROGRESS,
            ProgressUpdate(message=message, progress_pct=progress_pct),
        )

    def _send_status(self, status: str):
        """Send human-readable status line to UI thread."""
        self._send_response(MessageType.STATUS, data=status)

    def _send_error(self, error: str):
        self._send_response(MessageType.ERROR, error=error)
        self._log(error, "error")

    def _log(self, message: str, level: str = "info"):
        """Send log message to UI thread."""
        self._send_response(MessageType.LOG, LogMessage(message=message, level=level))

    def _on_sweep_progress(self, progress: SweepProgress):
        self._send_response(MessageType.SWEEP_PROGRESS, data=progress)

    def _on_sweep_result(self, result: SweepResult):
        self.last_result = result
        self._send_response(MessageType.SWEEP_COMPLETE, data=result)

    def _on_marker(self, marker_hz: float):
        self._send_response(MessageType.MARKER_FREQUENCY, data=marker_hz)

    def _worker_loop(self):
        """Main worker thread loop."""
        while self._running:
            try:
                # Wait for command with timeout to allow checking _running flag
                try:
                    msg = self._command_queue.get(timeout=0.1)
                except queue.Empty:
                    continue

                # Process command
                if msg.type == MessageType.SHUTDOWN:
                    self._handle_shutdown()
                    break
                elif msg.type == MessageType.CONNECT:
                    self._handle_connect(msg.data)
                elif msg.type == MessageType.DISCONNECT:
                    self._handle_disconnect()
                elif msg.type == MessageType.SEND_RAW:
                    self._handle_send_raw(msg.data)
                elif msg.type == MessageType.AUTO_TUNE:
                    self._handle_auto_tune(msg.data)
                elif msg.type == MessageType.START_POLLING:
                    self._handle_start_polling()
                elif msg.type == MessageType.STOP_POLLING:
                    self._handle_stop_polling()
                elif msg.type == MessageType.READ_MARKER:
                    self._handle_read_marker()
                elif msg.type == MessageType.CLEAR_HISTORY:
                    self._handle_clear_history()

            except Exception as e:
                # Catch-all error handler
                self._send_response(MessageType.ERROR, error=f"Worker error: {e}")
                self._log(traceback.format_exc(), "debug")

    def _handle_connect(self, host: str | None):
        """Handle connection command."""
        # A new connection starts with a clean cancellation state
        self._cancel.clear()
        try:
            idn = self._session.connect(host, progress_callback=self._send_progress)
        except InstrumentError as e:
            self._send_error(describe_error(e))
            return

        self._send_response(MessageType.CONNECTED, data=idn)
        self._log(f"Connected to: {idn}", "success")

        if self.auto_poll:
            self._handle_start_polling()

    def _handle_disconnect(self) -> None:
        """Handle disconnection command."""
        self._poller.stop()
        self._session.disconnect()
        self._send_response(MessageType.DISCONNECTED)
        self._send_polling_state()

    def _handle_send_raw(self, command: str) -> None:
        """Send a raw command with the poller out of the way."""
        try:
            with self._poller.suspended():
                reply = self._session.send_raw(command or "")
        except InstrumentError as e:
            self._send_error(f"SCPI command failed: {describe_error(e)}")
            return
        except ValueError as e:
            self._send_error(f"SCPI command failed: {e}")
            return

        self._send_response(MessageType.RAW_REPLY, data=RawReply(command, reply))

    def _handle_auto_tune(self, frequency_range: FrequencyRange | None) -> None:
        """Run auto-tune with the poller suspended."""
        frequency_range = frequency_range or self._range
        if frequency_range is None:
            self._send_error("Auto Tune failed: apply sweep parameters first")
            return
        if not self._session.is_connected():
            self._send_error("Please connect to the device first.")
            return

        try:
            with self._poller.suspended():
                result = self._tuner.run(
                    frequency_range,
                    progress_callback=self._on_sweep_progress,
                    cancel_event=self._cancel,
                )
        except InstrumentError as e:
            self._send_error(f"Auto Tune failed: {describe_error(e)}")
            return

        self.last_result = result
        self._send_response(MessageType.AUTO_TUNE_COMPLETE, data=result)

        if result.error is not None:
            self._send_error(f"Auto Tune failed: {describe_error(result.error)}")
            return

        best = result.best_sample
        if result.tuned:
            self._send_status(
                f"Auto Tune complete: Best Freq = "
                f"{format_frequency(best.frequency_hz, 'MHz', 6)}, "
                f"Peak = {best.power_dbm:.3f} dBm"
            )
            self._handle_read_marker()

    def _handle_start_polling(self) -> None:
        self._poller.start()
        self._send_polling_state()

    def _handle_stop_polling(self) -> None:
        self._poller.stop()
        self._send_polling_state()

    def _send_polling_state(self) -> None:
        self._send_response(MessageType.POLLING_STATE, data=self._poller.state)

    def _handle_read_marker(self) -> None:
        """Query the marker frequency once."""
        try:
            with self._poller.suspended():
                marker_hz = self._session.read_marker_frequency_hz()
        except NotConnectedError:
            return
        except InstrumentError as e:
            self._send_status(f"Marker Freq: {describe_error(e)}")
            return
        self._on_marker(marker_hz)

    def _handle_clear_history(self) -> None:
        """Forget the last result so the display can be cleared."""
        self.last_result = None
        self._send_response(MessageType.HISTORY_CLEARED)

    def _handle_shutdown(self) -> None:
        """Handle shutdown command."""
        self._poller.stop()
        self._session.disconnect()
        self._running = False


__all__ = [
    "InstrumentWorker",
    "LogMessage",
    "Message",
    "MessageType",
    "PollerState",
    "ProgressUpdate",
    "RawReply",
]
