#!/usr/bin/env python3
"""
peaktune - terminal UI for SCPI spectrum analyzer peak tuning.
"""

import queue
import sys
from datetime import datetime

import numpy as np
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.widgets import (
    Button,
    Checkbox,
    Footer,
    Header,
    Input,
    Label,
    ProgressBar,
    Select,
    TabbedContent,
    TabPane,
    TextArea,
)
from textual_plotext import PlotextPlot

from .cli import create_cli_parser, has_cli_action, run_cli
from .cli.plotting import export_sweep_plot
from .config.constants import (
    FREQ_UNIT_CONVERSIONS,
    MESSAGE_POLL_INTERVAL_SEC,
    PLOT_Y_LIMITS_DBM,
    WORKER_SHUTDOWN_TIMEOUT_SEC,
)
from .config.settings import SettingsManager
from .drivers import InstrumentConfig
from .poller import PollerState
from .sweep import FrequencyRange, SweepProgress, SweepResult
from .utils.units import format_frequency, get_unit_multiplier
from .worker import (
    InstrumentWorker,
    LogMessage,
    MessageType,
    ProgressUpdate,
    RawReply,
)

DEFAULT_PLOT_FILE = "peaktune_sweep.png"


class PeakTuneApp(App):
    """peaktune - SCPI spectrum analyzer peak tuner"""

    CSS = """
    Screen {
        background: $surface;
    }

    #content {
        height: 100%;
        margin: 1;
        margin-bottom: 0;
    }

    .panel {
        border: solid $primary;
        border-title-color: $accent;
        border-title-style: bold;
        height: auto;
        padding: 0 1;
        margin-bottom: 1;
    }

    .field {
        height: auto;
        margin-bottom: 0;
        align: left middle;
    }

    .field Label {
        width: auto;
        padding-right: 1;
        content-align: left middle;
        height: 100%;
    }

    .field Input {
        width: 1fr;
    }

    .field Select {
        width: 1fr;
    }

    .field Button {
        margin-left: 1;
    }

    Checkbox {
        border: none;
        height: 3;
        content-align: left middle;
    }

    .readout {
        width: 1fr;
        height: 1;
    }

    #progress_container {
        height: auto;
        margin-bottom: 1;
    }

    #log_content {
        height: 1fr;
    }

    PlotextPlot {
        width: 100%;
        height: 25;
        margin: 1 0;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
    ]

    TITLE = "peaktune - Spectrum Analyzer Peak Tuner"

    def __init__(self):
        super().__init__()

        self.settings_manager = SettingsManager()
        self.settings = self.settings_manager.load()
        self.worker = InstrumentWorker(
            InstrumentConfig(poll_interval_sec=self.settings.poll_interval_sec),
            auto_poll=self.settings.auto_poll,
        )
        self.connected = False
        self.last_result: SweepResult | None = None
        self.log_messages = []  # Store all log messages
        self._message_check_timer = None  # Timer for checking worker messages
        self._disconnecting = False

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield Header()

        with TabbedContent(id="content"):
            with TabPane("Control", id="tab_control"):
                with VerticalScroll():
                    # Connection
                    with Container(classes="panel") as panel:
                        panel.border_title = "Connection"
                        with Horizontal(classes="field"):
                            yield Label("Host:")
                            yield Input(
                                value=self.settings.last_host,
                                placeholder="IP address (e.g., 192.168.1.50)",
                                id="input_host",
                            )
                            yield Button("Connect", id="btn_connect", variant="primary")

                    # Sweep parameters
                    with Container(classes="panel") as panel:
                        panel.border_title = "Sweep"
                        with Horizontal(classes="field"):
                            yield Label("Unit:")
                            yield Select(
                                options=[(unit, unit) for unit in FREQ_UNIT_CONVERSIONS],
                                value=self.settings.freq_unit,
                                allow_blank=False,
                                id="select_freq_unit",
                            )
                        with Horizontal(classes="field"):
                            yield Label("Start:")
                            yield Input(
                                value=str(self.settings.start_freq),
                                id="input_start_freq",
                            )
                            yield Label("Stop:")
                            yield Input(
                                value=str(self.settings.stop_freq),
                                id="input_stop_freq",
                            )
                            yield Label("Step:")
                            yield Input(
                                value=str(self.settings.step_freq),
                                id="input_step_freq",
                            )
                        with Horizontal(classes="field"):
                            yield Button("Apply", id="btn_apply", variant="default")
                            yield Button(
                                "Auto Tune",
                                id="btn_auto_tune",
                                variant="success",
                                disabled=True,
                            )
                            yield Checkbox(
                                "Polling",
                                value=self.settings.auto_poll,
                                id="check_polling",
                            )

                    # Raw SCPI
                    with Container(classes="panel") as panel:
                        panel.border_title = "SCPI Command"
                        with Horizontal(classes="field"):
                            yield Input(
                                placeholder=":CALC:MARK1:X?",
                                id="input_command",
                            )
                            yield Button(
                                "Send", id="btn_send", variant="default", disabled=True
                            )
                        yield Label("", id="label_reply", classes="readout")

                    # Readouts
                    with Container(classes="panel") as panel:
                        panel.border_title = "Status"
                        yield Label("Disconnected", id="label_status", classes="readout")
                        yield Label("Peak: --", id="label_peak", classes="readout")
                        yield Label("Marker Freq: --", id="label_marker", classes="readout")
                        yield Label("Tuned: --", id="label_tuned", classes="readout")

                    with Vertical(id="progress_container"):
                        yield Label("Disconnected", id="progress_label")
                        yield ProgressBar(id="progress_bar")

            with TabPane("Plot", id="tab_plot"):
                with Vertical():
                    with Horizontal(classes="field"):
                        yield Button("Clear", id="btn_clear", variant="warning")
                        yield Button("Export PNG", id="btn_export_png", variant="default")
                    yield PlotextPlot(id="sweep_plot")

            with TabPane("Log", id="tab_log"):
                yield TextArea("", read_only=True, id="log_content")

        yield Footer()

    def on_mount(self) -> None:
        """Called when app starts."""
        self.call_after_refresh(self._log_startup)
        self.query_one("#progress_bar", ProgressBar).update(total=100, progress=0)
        self._draw_plot(None)
        # Start worker thread
        self.worker.start()
        # Start message polling
        self._start_message_polling()

    def _log_startup(self) -> None:
        """Log startup message after UI is ready."""
        self.log_message("peaktune ready. Connect to start.", "info")
        self.log_message(
            f"Settings file: {self.settings_manager.config_file}", "debug"
        )

    def on_unmount(self) -> None:
        """Called when app is shutting down."""
        # Save settings before exit
        self._save_current_settings()
        # Stop worker thread gracefully
        if self.worker:
            self.worker.stop(timeout=WORKER_SHUTDOWN_TIMEOUT_SEC)

    def _save_current_settings(self) -> None:
        """Save current UI state to settings."""
        try:
            self.settings.last_host = self.query_one("#input_host", Input).value.strip()
            self.settings.freq_unit = self.query_one("#select_freq_unit", Select).value
            self.settings.start_freq = float(
                self.query_one("#input_start_freq", Input).value
            )
            self.settings.stop_freq = float(
                self.query_one("#input_stop_freq", Input).value
            )
            self.settings.step_freq = float(
                self.query_one("#input_step_freq", Input).value
            )
            self.settings.auto_poll = self.query_one("#check_polling", Checkbox).value
        except ValueError:
            # Keep the last valid sweep values
            pass
        self.settings_manager.save(self.settings)

    def _start_message_polling(self):
        """Start polling worker thread for messages."""
        self._message_check_timer = self.set_interval(
            MESSAGE_POLL_INTERVAL_SEC, self._check_worker_messages
        )

    def _check_worker_messages(self):
        """Check for messages from worker thread (called periodically)."""
        try:
            while True:
                msg = self.worker.get_response(timeout=0.001)
                self._handle_worker_message(msg)
        except queue.Empty:
            pass

        # An I/O failure drops the session without a DISCONNECTED message
        if (
            self.connected
            and not self._disconnecting
            and not self.worker.is_connected()
        ):
            self.log_message("Connection lost", "error")
            self._set_connected(False)

    def _handle_worker_message(self, msg):
        """Handle message from worker thread."""
        if msg.type == MessageType.LOG:
            log_msg: LogMessage = msg.data
            self.log_message(log_msg.message, log_msg.level)

        elif msg.type == MessageType.PROGRESS:
            update: ProgressUpdate = msg.data
            self.set_progress(update.message, update.progress_pct)

        elif msg.type == MessageType.CONNECTED:
            self.sub_title = msg.data
            self._set_connected(True)

        elif msg.type == MessageType.DISCONNECTED:
            self.log_message("Disconnected from analyzer", "success")
            self._set_connected(False)

        elif msg.type == MessageType.RAW_REPLY:
            reply: RawReply = msg.data
            text = reply.reply if reply.reply is not None else "OK"
            self.query_one("#label_reply", Label).update(f"Reply: {text}")

        elif msg.type == MessageType.PARAMS_APPLIED:
            frequency_range: FrequencyRange = msg.data
            self.log_message(
                f"Sweep parameters applied: {frequency_range.step_count} steps", "info"
            )
            center = format_frequency(frequency_range.center_hz, self._unit(), 6)
            self.query_one("#label_marker", Label).update(f"Marker Freq: {center}")

        elif msg.type == MessageType.SWEEP_PROGRESS:
            progress: SweepProgress = msg.data
            self.set_progress(
                f"Sweeping {progress.index + 1}/{progress.total}",
                progress.progress_pct,
            )
            if progress.status:
                self.log_message(progress.status, "error")

        elif msg.type == MessageType.SWEEP_COMPLETE:
            self._show_result(msg.data)
            self.reset_progress()

        elif msg.type == MessageType.AUTO_TUNE_COMPLETE:
            result: SweepResult = msg.data
            self._show_result(result)
            tuned = (
                format_frequency(result.best_sample.frequency_hz, self._unit(), 6)
                if result.tuned
                else "No"
            )
            self.query_one("#label_tuned", Label).update(f"Tuned: {tuned}")
            self.enable_buttons_for_state()
            self.reset_progress()

        elif msg.type == MessageType.MARKER_FREQUENCY:
            self.query_one("#label_marker", Label).update(
                f"Marker Freq: {format_frequency(msg.data, self._unit(), 6)}"
            )

        elif msg.type == MessageType.HISTORY_CLEARED:
            self.last_result = None
            self._draw_plot(None)
            self.query_one("#label_peak", Label).update("Peak: --")

        elif msg.type == MessageType.POLLING_STATE:
            # Stopping on disconnect keeps the user choice for the next connect
            if self.connected:
                checkbox = self.query_one("#check_polling", Checkbox)
                with checkbox.prevent(Checkbox.Changed):
                    checkbox.value = msg.data is not PollerState.STOPPED

        elif msg.type == MessageType.STATUS:
            self.query_one("#label_status", Label).update(msg.data)
            self.log_message(msg.data, "info")

        elif msg.type == MessageType.ERROR:
            # Worker already logged it
            self.query_one("#label_status", Label).update(msg.error)
            if msg.error.startswith("Connection failed"):
                self._set_connected(False)
            self.enable_buttons_for_state()
            self.reset_progress()

    def _unit(self) -> str:
        return self.query_one("#select_freq_unit", Select).value

    def _set_connected(self, connected: bool) -> None:
        self.connected = connected
        self._disconnecting = False
        if not connected:
            self.sub_title = ""
        self.query_one("#label_status", Label).update(
            "Connected" if connected else "Disconnected"
        )
        self.update_connect_button()
        self.enable_buttons_for_state()
        self.reset_progress()

    def _show_result(self, result: SweepResult) -> None:
        """Update peak readout and plot from a sweep result."""
        self.last_result = result
        self._draw_plot(result)

        if not result.samples:
            return
        powers = result.powers()
        best = int(np.argmax(powers))
        freq = result.samples[best].frequency_hz
        self.query_one("#label_peak", Label).update(
            f"Peak: {powers[best]:.3f} dBm @ {format_frequency(freq, self._unit(), 6)}"
        )

    def _draw_plot(self, result: SweepResult | None) -> None:
        """Redraw the terminal plot of the last sweep."""
        unit = self._unit()
        plot_widget = self.query_one("#sweep_plot", PlotextPlot)
        plt_term = plot_widget.plt
        plt_term.clf()

        if result is not None and result.samples:
            freqs = result.frequencies() / get_unit_multiplier(unit)
            plt_term.plot(
                freqs.tolist(),
                result.powers().tolist(),
                marker="braille",
                label="Peak power",
            )
            if result.best_sample is not None:
                plt_term.scatter(
                    [result.best_sample.frequency_hz / get_unit_multiplier(unit)],
                    [result.best_sample.power_dbm],
                    marker="x",
                    label="Best",
                )

        plt_term.ylim(*PLOT_Y_LIMITS_DBM)
        plt_term.title("Peak Power Sweep")
        plt_term.xlabel(f"Frequency ({unit})")
        plt_term.ylabel("Power (dBm)")
        plt_term.theme("clear")
        plot_widget.refresh()

    def log_message(self, message: str, level: str = "info"):
        """Add message to log with plain text formatting for TextArea."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        icons = {
            "info": "i",
            "success": "✓",
            "error": "✗",
            "progress": "⋯",
            "tx": "↑",
            "rx": "↓",
            "debug": "•",
        }
        icon = icons.get(level, "•")

        # Arrows replace the TX/RX prefix
        display_message = message
        if level in ("tx", "rx") and message[:4] in ("TX: ", "RX: "):
            display_message = message[4:]

        formatted_message = f"{timestamp} {icon} {display_message}"
        self.log_messages.append(formatted_message)

        log_content = self.query_one("#log_content", TextArea)
        if log_content.text:
            log_content.text = log_content.text + "\n" + formatted_message
        else:
            log_content.text = formatted_message
        log_content.scroll_end(animate=False)

    def set_progress(self, label: str, progress: float = 0):
        """Update progress bar and label. Progress is 0-100."""
        self.query_one("#progress_label", Label).update(f"{label} ({progress:.0f}%)")
        progress_bar = self.query_one("#progress_bar", ProgressBar)
        progress_bar.update(total=100, progress=progress)

    def reset_progress(self):
        """Reset progress bar based on connection state."""
        label = "Ready" if self.connected else "Disconnected"
        self.query_one("#progress_label", Label).update(label)
        self.query_one("#progress_bar", ProgressBar).update(total=100, progress=0)

    def disable_all_buttons(self):
        """Disable action buttons during operations."""
        self.query_one("#btn_connect", Button).disabled = True
        self.query_one("#btn_auto_tune", Button).disabled = True
        self.query_one("#btn_send", Button).disabled = True

    def enable_buttons_for_state(self):
        """Enable buttons based on connection state."""
        self.query_one("#btn_connect", Button).disabled = False
        self.query_one("#btn_auto_tune", Button).disabled = not self.connected
        self.query_one("#btn_send", Button).disabled = not self.connected

    def update_connect_button(self):
        """Update connect button label based on connection state."""
        btn = self.query_one("#btn_connect", Button)
        if self.connected:
            btn.label = "Disconnect"
            btn.variant = "error"
        else:
            btn.label = "Connect"
            btn.variant = "primary"

    def _apply_sweep_params(self) -> bool:
        """Validate the sweep inputs and hand them to the worker."""
        try:
            self.worker.apply_sweep_params(
                self.query_one("#input_start_freq", Input).value,
                self.query_one("#input_stop_freq", Input).value,
                self.query_one("#input_step_freq", Input).value,
                self._unit(),
            )
        except ValueError as e:
            self.query_one("#label_status", Label).update(str(e))
            self.log_message(str(e), "error")
            return False
        return True

    @on(Button.Pressed, "#btn_connect")
    def handle_connect(self) -> None:
        """Connect or disconnect from the analyzer."""
        self.disable_all_buttons()

        if self.connected:
            self.set_progress("Disconnecting...", 50)
            self._disconnecting = True
            self.log_message("Disconnecting from analyzer...", "progress")
            self.worker.send_command(MessageType.DISCONNECT)
            return

        host = self.query_one("#input_host", Input).value.strip()
        if not host:
            self.log_message("Please enter analyzer IP address", "error")
            self.enable_buttons_for_state()
            return

        self.settings_manager.add_host_to_history(host)
        self._save_current_settings()

        # Apply the current range first so polling starts with it
        self._apply_sweep_params()

        self.worker.auto_poll = self.query_one("#check_polling", Checkbox).value
        self.log_message(f"Connecting to {host}...", "progress")
        self.sub_title = "Connecting..."
        self.worker.send_command(MessageType.CONNECT, host)

    @on(Button.Pressed, "#btn_apply")
    def handle_apply(self) -> None:
        """Apply sweep parameters."""
        self._apply_sweep_params()

    @on(Button.Pressed, "#btn_auto_tune")
    def handle_auto_tune(self) -> None:
        """Run auto-tune over the current range."""
        if not self.connected:
            self.log_message("Please connect to the device first.", "error")
            return
        if not self._apply_sweep_params():
            return
        self.disable_all_buttons()
        self.query_one("#label_tuned", Label).update("Tuned: ...")
        self.log_message("Starting Auto Tune...", "progress")
        self.worker.send_command(MessageType.AUTO_TUNE)

    @on(Checkbox.Changed, "#check_polling")
    def on_polling_change(self, event: Checkbox.Changed) -> None:
        """Start or stop periodic sweeps."""
        self.worker.auto_poll = event.value
        if not self.connected:
            return
        if event.value:
            self.worker.send_command(MessageType.START_POLLING)
        else:
            self.worker.send_command(MessageType.STOP_POLLING)

    @on(Button.Pressed, "#btn_send")
    @on(Input.Submitted, "#input_command")
    def handle_send_raw(self) -> None:
        """Send the raw SCPI command."""
        command = self.query_one("#input_command", Input).value.strip()
        if not command:
            return
        if not self.connected:
            self.log_message("Please connect to the device first.", "error")
            return
        self.query_one("#label_reply", Label).update("Reply: ...")
        self.worker.send_command(MessageType.SEND_RAW, command)

    @on(Button.Pressed, "#btn_clear")
    def handle_clear(self) -> None:
        """Clear the plotted sweep."""
        self.worker.send_command(MessageType.CLEAR_HISTORY)

    @on(Button.Pressed, "#btn_export_png")
    def handle_export_png(self) -> None:
        """Save the last sweep as a PNG image."""
        if self.last_result is None or not self.last_result.samples:
            self.log_message("No sweep data to export", "error")
            return
        path = self.settings.plot_path or DEFAULT_PLOT_FILE
        try:
            saved = export_sweep_plot(self.last_result, path, freq_unit=self._unit())
        except OSError as e:
            self.log_message(f"Plot export failed: {e}", "error")
            return
        self.log_message(f"Plot saved: {saved}", "success")

    @on(Select.Changed, "#select_freq_unit")
    def on_unit_change(self, event: Select.Changed) -> None:
        """Redraw plot with the new frequency unit."""
        self._draw_plot(self.last_result)


def run_gui():
    """Run GUI mode."""
    app = PeakTuneApp()
    app.run()


def main():
    """Main entry point."""
    parser = create_cli_parser()
    args = parser.parse_args()

    if has_cli_action(args):
        # CLI mode
        return run_cli(args)
    else:
        # GUI mode
        run_gui()
        return 0


if __name__ == "__main__":
    sys.exit(main())
