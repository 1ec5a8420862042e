"""Exception types raised by the diagnostics engine."""

from typing import Any, Dict, Optional


class DiagnosticsError(Exception):
    """Base class for all diagnostics engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AdapterUnavailable(DiagnosticsError):
    """Adapter discovery or connection failed. Recoverable by retrying."""


class AdapterDisconnected(DiagnosticsError):
    """Adapter I/O failed in the middle of a session."""


class NotFound(DiagnosticsError):
    """Referenced code or vehicle does not exist in the caller's scope."""


class AnalysisUnavailable(DiagnosticsError):
    """The reasoning oracle failed or returned data of the wrong shape."""


class ValidationError(DiagnosticsError):
    """Caller supplied malformed input."""
