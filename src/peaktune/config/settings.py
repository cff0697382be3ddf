"""
Configuration management with XDG-compliant persistent settings.

Provides cross-platform configuration storage following OS conventions:
- Linux/Unix: XDG_CONFIG_HOME (~/.config/peaktune/)
- macOS: ~/Library/Application Support/peaktune/
- Windows: %APPDATA%/peaktune/
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from platformdirs import user_config_dir

from .constants import (
    DEFAULT_FREQ_UNIT,
    DEFAULT_START_FREQ,
    DEFAULT_STEP_FREQ,
    DEFAULT_STOP_FREQ,
    MAX_HOST_HISTORY,
    POLL_INTERVAL_SEC,
)


@dataclass
class AppSettings:
    """Application settings that persist across sessions."""

    # Connection settings
    last_host: str = ""
    host_history: list[str] = None

    # Sweep parameters, expressed in freq_unit
    freq_unit: str = DEFAULT_FREQ_UNIT
    start_freq: float = DEFAULT_START_FREQ
    stop_freq: float = DEFAULT_STOP_FREQ
    step_freq: float = DEFAULT_STEP_FREQ

    # Polling
    poll_interval_sec: float = POLL_INTERVAL_SEC
    auto_poll: bool = True

    # Plot output
    plot_path: str = ""

    def __post_init__(self):
        """Initialize mutable defaults."""
        if self.host_history is None:
            self.host_history = []


class SettingsManager:
    """Manages application settings with automatic persistence."""

    APP_NAME = "peaktune"
    CONFIG_FILE = "settings.json"
    MAX_HOST_HISTORY = MAX_HOST_HISTORY

    def __init__(self):
        """Initialize settings manager."""
        self.config_dir = Path(user_config_dir(self.APP_NAME))
        self.config_file = self.config_dir / self.CONFIG_FILE
        self.settings = AppSettings()

    def load(self) -> AppSettings:
        """
        Load settings from disk.

        Returns:
            Loaded settings (or defaults if file doesn't exist)
        """
        if not self.config_file.exists():
            return self.settings

        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)

            # Drop keys written by other versions
            known = set(AppSettings.__dataclass_fields__)
            self.settings = AppSettings(
                **{k: v for k, v in data.items() if k in known}
            )
            return self.settings

        except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
            # If config is corrupted, start fresh with defaults
            self.settings = AppSettings()
            return self.settings

    def save(self, settings: AppSettings | None = None) -> None:
        """
        Save settings to disk.

        Args:
            settings: Settings to save (uses current if None)
        """
        if settings is not None:
            self.settings = settings

        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(asdict(self.settings), f, indent=2)

    def add_host_to_history(self, host: str) -> None:
        """
        Add a host to history (most recent first).

        Args:
            host: Host IP address or name to add
        """
        if not host or not host.strip():
            return

        host = host.strip()

        if host in self.settings.host_history:
            self.settings.host_history.remove(host)

        self.settings.host_history.insert(0, host)
        self.settings.last_host = host

        if len(self.settings.host_history) > self.MAX_HOST_HISTORY:
            self.settings.host_history = self.settings.host_history[
                : self.MAX_HOST_HISTORY
            ]

    def get_host_options(self) -> list[tuple[str, str]]:
        """
        Get host options for dropdown (label, value).

        Returns:
            List of (host, host) tuples for Select widget
        """
        return [(host, host) for host in self.settings.host_history]
