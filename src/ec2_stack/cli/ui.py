"""Shared Rich consoles for the CLI."""

from rich.console import Console
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)


def report_step(message: str) -> None:
    """Report a progress step."""
    console.print(f"[bold cyan]•[/bold cyan] {escape(message)}")
