"""Console output utilities using Rich."""

import logging
from typing import Optional

from rich.console import Console as RichConsole
from rich.logging import RichHandler
from rich.panel import Panel
from rich.theme import Theme

from .. import __version__

# Custom theme for the diagnostics CLI
DIAG_THEME = Theme({
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red bold",
    "muted": "dim",
    "pid.name": "cyan bold",
    "pid.value": "green",
    "pid.unit": "dim",
    "dtc.code": "yellow bold",
    "dtc.description": "white",
    "severity.critical": "red bold reverse",
    "severity.high": "red bold",
    "severity.medium": "yellow",
    "severity.low": "cyan",
    "health.good": "green bold",
    "health.fair": "yellow bold",
    "health.poor": "dark_orange bold",
    "health.critical": "red bold",
    "status.connected": "green bold",
    "status.disconnected": "red",
    "status.connecting": "yellow",
    "header": "bold blue",
    "subheader": "bold cyan",
})


def configure_logging(verbose: bool = False, console: Optional[RichConsole] = None) -> None:
    """Route library logging through Rich. ``verbose`` switches to DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


class Console:
    """Console output for the diagnostics CLI."""

    def __init__(self):
        self._console = RichConsole(theme=DIAG_THEME)

    @property
    def rich_console(self) -> RichConsole:
        """Get the underlying Rich console."""
        return self._console

    def print(self, *args, **kwargs) -> None:
        self._console.print(*args, **kwargs)

    def info(self, message: str, prefix: str = "INFO") -> None:
        self._console.print(f"[info][{prefix}][/info] {message}")

    def success(self, message: str, prefix: str = "OK") -> None:
        self._console.print(f"[success][{prefix}][/success] {message}")

    def warning(self, message: str, prefix: str = "WARN") -> None:
        self._console.print(f"[warning][{prefix}][/warning] {message}")

    def error(self, message: str, prefix: str = "ERROR") -> None:
        self._console.print(f"[error][{prefix}][/error] {message}")

    def header(self, title: str, subtitle: Optional[str] = None) -> None:
        """Print a section header."""
        self._console.print()
        self._console.print(f"[header]{title}[/header]")
        if subtitle:
            self._console.print(f"[muted]{subtitle}[/muted]")
        self._console.print()

    def panel(self, content: str, title: Optional[str] = None, style: str = "cyan", expand: bool = False) -> None:
        """Print content in a panel."""
        self._console.print(Panel(content, title=title, style=style, expand=expand))

    def status_panel(self, title: str, items: dict, style: str = "cyan") -> None:
        """Print a status panel with key-value pairs."""
        content = "\n".join(f"[bold]{key}:[/bold] {value}" for key, value in items.items())
        self.panel(content, title=title, style=style)

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for confirmation."""
        default_str = "Y/n" if default else "y/N"
        response = self._console.input(f"{message} [{default_str}]: ").strip().lower()

        if not response:
            return default
        return response in ("y", "yes")

    def print_banner(self) -> None:
        self._console.print(f"[bold cyan]gear-diagnostics[/bold cyan] [dim]v{__version__}[/dim]")


# Global console instance
console = Console()
