"""Data models for the diagnostics engine."""

from .dtc import (
    CodeFilter,
    CodeStatus,
    CodeType,
    DiagnosticCode,
    DTCAnalysis,
    DTCReadResult,
    ProbableCause,
    RepairDifficulty,
    RepairVenue,
    Severity,
)
from .telemetry import PIDInfo, TelemetrySnapshot, TELEMETRY_PIDS
from .session import Session, SessionStatus
from .health import HealthStatus, HealthSystem, HealthSystemScore, Trend, VehicleHealthScore
from .symptom import FlowchartStep, SymptomCheck
from .vehicle import VehicleContext

__all__ = [
    "CodeFilter",
    "CodeStatus",
    "CodeType",
    "DiagnosticCode",
    "DTCAnalysis",
    "DTCReadResult",
    "ProbableCause",
    "RepairDifficulty",
    "RepairVenue",
    "Severity",
    "PIDInfo",
    "TelemetrySnapshot",
    "TELEMETRY_PIDS",
    "Session",
    "SessionStatus",
    "HealthStatus",
    "HealthSystem",
    "HealthSystemScore",
    "Trend",
    "VehicleHealthScore",
    "FlowchartStep",
    "SymptomCheck",
    "VehicleContext",
]
