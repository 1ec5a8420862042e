"""Code analysis, health scoring and symptom checking."""

from .oracle import PromptKind, ReasoningOracle, HttpReasoningOracle
from .dtc import AnalysisPipeline
from .health import HealthScoreEngine, compute_health_score
from .symptoms import SymptomChecker

__all__ = [
    "PromptKind",
    "ReasoningOracle",
    "HttpReasoningOracle",
    "AnalysisPipeline",
    "HealthScoreEngine",
    "compute_health_score",
    "SymptomChecker",
]
