"""Configuration package."""

from .constants import *  # noqa: F401, F403
from .settings import AppSettings, SettingsManager

__all__ = ["AppSettings", "SettingsManager"]
