"""Data models for symptom checks."""

from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime
from uuid import uuid4

from .dtc import Severity


class FlowchartStep(BaseModel):
    """One step of a diagnostic flowchart."""

    step: int = Field(..., ge=1)
    instruction: str = Field(..., min_length=1)
    check: Optional[str] = Field(default=None, description="Question to answer before branching")
    if_yes: Optional[str] = Field(default=None)
    if_no: Optional[str] = Field(default=None)


class SymptomCheck(BaseModel):
    """Result of one free-text symptom query."""

    model_config = {"frozen": True}

    check_id: str = Field(default_factory=lambda: str(uuid4()))
    vehicle_id: str = Field(...)
    user_id: Optional[str] = Field(default=None)

    symptom_text: str = Field(...)
    ai_analysis: str = Field(default="")

    suggested_codes: List[str] = Field(default_factory=list)
    probable_causes: List[str] = Field(default_factory=list)
    urgency: Severity = Field(default=Severity.MEDIUM)

    related_recalls: List[str] = Field(default_factory=list)
    related_tsbs: List[str] = Field(default_factory=list)

    flowchart_steps: List[FlowchartStep] = Field(default_factory=list)

    checked_at: datetime = Field(default_factory=datetime.now)
