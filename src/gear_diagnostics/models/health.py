"""Data models for vehicle health scores."""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from uuid import uuid4


class HealthSystem(str, Enum):
    """Vehicle subsystems that receive a score."""
    ENGINE = "engine"
    BRAKES = "brakes"
    SUSPENSION = "suspension"
    ELECTRICAL = "electrical"
    FUEL = "fuel"
    COOLING = "cooling"
    TRANSMISSION = "transmission"
    EXHAUST = "exhaust"


class HealthStatus(str, Enum):
    """Status bucket derived from a score."""
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "HealthStatus":
        if score >= 80:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        if score >= 40:
            return cls.POOR
        return cls.CRITICAL


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class HealthSystemScore(BaseModel):
    """Score for one subsystem."""

    system: HealthSystem = Field(...)
    score: int = Field(..., ge=0, le=100)
    status: HealthStatus = Field(...)
    factors: List[str] = Field(default_factory=list, description="Reasons the score is below 100")


class VehicleHealthScore(BaseModel):
    """Overall health of a vehicle at one point in time."""

    health_id: str = Field(default_factory=lambda: str(uuid4()))
    vehicle_id: str = Field(...)
    user_id: Optional[str] = Field(default=None)

    overall_score: int = Field(..., ge=0, le=100)
    systems: List[HealthSystemScore] = Field(default_factory=list)

    trend: Trend = Field(default=Trend.STABLE)
    previous_score: Optional[int] = Field(default=None)

    active_code_count: int = Field(default=0, ge=0)
    maintenance_compliance_pct: float = Field(default=100.0, ge=0.0, le=100.0)

    mileage: Optional[int] = Field(default=None)
    model_year: Optional[int] = Field(default=None)

    calculated_at: datetime = Field(default_factory=datetime.now)

    @property
    def status(self) -> HealthStatus:
        return HealthStatus.from_score(self.overall_score)

    def get_system(self, system: HealthSystem) -> Optional[HealthSystemScore]:
        for entry in self.systems:
            if entry.system == system:
                return entry
        return None
