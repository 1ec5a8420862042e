"""Data persistence."""

from .history import HistoryManager
from .store import DiagnosticStore, AnalysisCache
from .repository import VehicleRepository, ComplianceSource, InMemoryVehicleRepository, StaticComplianceSource

__all__ = [
    "HistoryManager",
    "DiagnosticStore",
    "AnalysisCache",
    "VehicleRepository",
    "ComplianceSource",
    "InMemoryVehicleRepository",
    "StaticComplianceSource",
]
