"""Data models for Diagnostic Trouble Codes (DTCs)."""

import re
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, computed_field, field_validator, model_validator
from datetime import datetime
from uuid import uuid4

DTC_PATTERN = re.compile(r"^[PCBU][0-3][0-9A-F]{3}$")


def is_valid_dtc(code: str) -> bool:
    """Check a normalized code against the ``[PCBU]####`` format."""
    return bool(DTC_PATTERN.match(code))


def normalize_dtc(code: str) -> str:
    """Upper-case a raw code and strip whitespace."""
    return code.strip().upper() if code else ""


class CodeType(str, Enum):
    """DTC category based on first character."""
    POWERTRAIN = "P"  # Engine, transmission
    CHASSIS = "C"     # ABS, steering, suspension
    BODY = "B"        # Body systems (AC, airbag, etc.)
    NETWORK = "U"     # Communication/network

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_code(cls, code: str) -> "CodeType":
        return cls(code[0].upper())


class Severity(str, Enum):
    """Severity of a code, also used as analysis urgency."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class CodeStatus(str, Enum):
    """Lifecycle status of a stored code."""
    ACTIVE = "active"
    PENDING = "pending"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"

    @property
    def is_open(self) -> bool:
        """Active and pending codes are still open."""
        return self in (CodeStatus.ACTIVE, CodeStatus.PENDING)


class CodeFilter(str, Enum):
    """List filter used by the code history views."""
    ALL = "all"
    ACTIVE = "active"
    RESOLVED = "resolved"

    def matches(self, status: CodeStatus) -> bool:
        if self == CodeFilter.ALL:
            return True
        if self == CodeFilter.ACTIVE:
            return status.is_open
        return not status.is_open


class RepairDifficulty(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    DIFFICULT = "difficult"
    PROFESSIONAL = "professional"


class RepairVenue(str, Enum):
    """Where the repair is best done."""
    DIY = "diy"
    SHOP = "shop"
    EITHER = "either"


class ProbableCause(BaseModel):
    """A cause ranked by how likely it is."""

    cause: str = Field(..., min_length=1)
    likelihood: float = Field(..., ge=0.0, le=1.0)


class DTCAnalysis(BaseModel):
    """Structured analysis of a code for a specific vehicle."""

    model_config = {"frozen": True}

    code: str = Field(..., description="DTC code (e.g., P0420)")
    description: str = Field(default="", description="Human-readable description")
    urgency: Severity = Field(..., description="How soon this should be addressed")

    estimated_cost_min: float = Field(..., ge=0)
    estimated_cost_max: float = Field(..., ge=0)
    labor_cost: float = Field(..., ge=0)
    parts_cost: float = Field(..., ge=0)

    repair_difficulty: RepairDifficulty = Field(...)
    probable_causes: List[ProbableCause] = Field(..., min_length=1)

    diy_vs_shop: RepairVenue = Field(...)
    recommendation_rationale: str = Field(default="")
    explanation: str = Field(default="", description="Plain-English explanation")

    symptoms: List[str] = Field(default_factory=list)
    tech_service_bulletins: List[str] = Field(default_factory=list)

    analyzed_at: datetime = Field(default_factory=datetime.now)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value: str) -> str:
        value = normalize_dtc(value)
        if not is_valid_dtc(value):
            raise ValueError(f"Invalid DTC code: {value}")
        return value

    @field_validator("probable_causes")
    @classmethod
    def _rank_causes(cls, value: List[ProbableCause]) -> List[ProbableCause]:
        return sorted(value, key=lambda c: c.likelihood, reverse=True)

    @model_validator(mode="after")
    def _check_costs(self) -> "DTCAnalysis":
        if self.estimated_cost_min > self.estimated_cost_max:
            raise ValueError("estimated_cost_min exceeds estimated_cost_max")
        return self


class DiagnosticCode(BaseModel):
    """A code recorded for a vehicle, with its lifecycle status."""

    diagnostic_id: str = Field(default_factory=lambda: str(uuid4()))
    vehicle_id: str = Field(...)
    user_id: Optional[str] = Field(default=None)

    code: str = Field(..., description="DTC code (e.g., P0300)")
    description: str = Field(default="Unknown code")
    severity: Severity = Field(default=Severity.MEDIUM)
    status: CodeStatus = Field(default=CodeStatus.ACTIVE)

    detected_at: datetime = Field(default_factory=datetime.now)
    cleared_at: Optional[datetime] = Field(default=None)
    mileage_at_detection: Optional[int] = Field(default=None, ge=0)

    freeze_frame: Optional[Dict[str, float]] = Field(default=None, description="Sensor values captured at detection")
    ai_analysis: Optional[DTCAnalysis] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value: str) -> str:
        value = normalize_dtc(value)
        if not is_valid_dtc(value):
            raise ValueError(f"Invalid DTC code: {value}")
        return value

    @computed_field
    @property
    def code_type(self) -> CodeType:
        """Category derived from the first letter of the code."""
        return CodeType.from_code(self.code)

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def promote(self, now: datetime) -> bool:
        """Move a pending code to active. Returns True if the status changed."""
        if self.status != CodeStatus.PENDING:
            return False
        self.status = CodeStatus.ACTIVE
        self.updated_at = now
        return True

    def close(self, status: CodeStatus, now: datetime) -> bool:
        """
        Move an open code to a terminal status.

        Closed codes are left as they are, so closing twice is a no-op.

        Returns:
            True if the status changed
        """
        if status.is_open:
            raise ValueError(f"{status.value} is not a terminal status")
        if not self.is_open:
            return False

        self.status = status
        self.cleared_at = now
        self.updated_at = now
        return True

    def __str__(self) -> str:
        return f"{self.code}: {self.description}"


class DTCReadResult(BaseModel):
    """Codes read from the adapter in one scan."""

    stored_codes: List[str] = Field(default_factory=list)
    pending_codes: List[str] = Field(default_factory=list)

    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def total_codes(self) -> int:
        return len(self.stored_codes) + len(self.pending_codes)
