"""peaktune - SCPI spectrum analyzer peak tuner"""

__version__ = "0.1.0"

from .config.settings import AppSettings, SettingsManager
from .drivers import InstrumentConfig, InstrumentSession, ScpiTransport, SessionState
from .poller import Poller, PollerState
from .sweep import (
    AutoTuner,
    FrequencyRange,
    Sample,
    SweepEngine,
    SweepProgress,
    SweepResult,
)
from .worker import InstrumentWorker, LogMessage, MessageType

__all__ = [
    "AppSettings",
    "AutoTuner",
    "FrequencyRange",
    "InstrumentConfig",
    "InstrumentSession",
    "InstrumentWorker",
    "LogMessage",
    "MessageType",
    "Poller",
    "PollerState",
    "Sample",
    "ScpiTransport",
    "SessionState",
    "SettingsManager",
    "SweepEngine",
    "SweepProgress",
    "SweepResult",
]
