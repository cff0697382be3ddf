"""Command-line interface for peaktune."""

from .parser import apply_cli_settings, create_cli_parser, has_cli_action
from .runner import run_cli

__all__ = ["create_cli_parser", "apply_cli_settings", "has_cli_action", "run_cli"]
