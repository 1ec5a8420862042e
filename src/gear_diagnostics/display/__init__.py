"""Terminal display for the diagnostics CLI."""

from .console import Console, console, configure_logging
from .tables import TableDisplay
from .live import LiveDisplay

__all__ = ["Console", "console", "configure_logging", "TableDisplay", "LiveDisplay"]
