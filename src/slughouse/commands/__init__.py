"""Interactive command handlers for the terminal player."""

from .playback import handle_command, parse_command, print_help

__all__ = ["handle_command", "parse_command", "print_help"]
