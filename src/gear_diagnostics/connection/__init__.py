"""Connection management for OBD2 adapters."""

from .adapter import AdapterDriver, AdapterCandidate, AdapterConnection, AdapterDetector, AdapterType
from .manager import SessionStateMachine

__all__ = [
    "AdapterDriver",
    "AdapterCandidate",
    "AdapterConnection",
    "AdapterDetector",
    "AdapterType",
    "SessionStateMachine",
]
