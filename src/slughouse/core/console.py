"""Rich console output for the CLI.

Log records go to loguru; anything meant for the person at the terminal
goes through these helpers.
"""

from rich.console import Console
from rich.markup import escape

_console: Console | None = None


def get_console() -> Console:
    """Get or create the shared Rich Console instance."""
    global _console
    if _console is None:
        _console = Console(highlight=False)
    return _console


def safe_print(message: str, style: str | None = None) -> None:
    """Print literal text (no Rich markup parsing) with optional styling."""
    get_console().print(escape(message), style=style)


def print_result(ok: bool, message: str) -> None:
    """One line per item in a batch command: green check or red cross."""
    if ok:
        safe_print(f"✓ {message}", style="green")
    else:
        safe_print(f"✗ {message}", style="red")


def print_now_playing(artist: str, title: str) -> None:
    safe_print(f"♪ {artist} - {title}", style="cyan")
