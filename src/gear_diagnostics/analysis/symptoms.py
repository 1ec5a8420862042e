"""Free-text symptom checker producing a triage flowchart."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationError as PydanticValidationError

from .oracle import PromptKind, ReasoningOracle
from ..collectors.recalls import RecallLookup
from ..errors import AnalysisUnavailable, DiagnosticsError, ValidationError
from ..models.dtc import Severity, is_valid_dtc, normalize_dtc
from ..models.symptom import FlowchartStep, SymptomCheck
from ..models.vehicle import VehicleContext
from ..storage.store import DiagnosticStore

logger = logging.getLogger(__name__)


class _OracleStep(BaseModel):
    step: int = Field(default=0)
    instruction: str = Field(..., min_length=1)
    check: Optional[str] = None
    if_yes: Optional[str] = None
    if_no: Optional[str] = None


class _OracleSymptomResult(BaseModel):
    """Shape the oracle must return for a symptom check."""

    model_config = ConfigDict(str_strip_whitespace=True)

    ai_analysis: str = Field(..., min_length=1)
    suggested_codes: List[str] = Field(default_factory=list)
    probable_causes: List[str] = Field(..., min_length=1)
    urgency: Severity = Field(...)
    related_recalls: List[str] = Field(default_factory=list)
    related_tsbs: List[str] = Field(default_factory=list)
    flowchart_steps: List[_OracleStep] = Field(..., min_length=1)

    @field_validator("suggested_codes")
    @classmethod
    def _check_codes(cls, value: List[str]) -> List[str]:
        codes = []
        for raw in value:
            code = normalize_dtc(raw)
            if not is_valid_dtc(code):
                raise ValueError(f"Invalid DTC code: {raw}")
            if code not in codes:
                codes.append(code)
        return codes


class SymptomChecker:
    """Runs symptom checks through the oracle and keeps a per-vehicle history."""

    def __init__(
        self,
        oracle: ReasoningOracle,
        store: DiagnosticStore,
        recall_lookup: Optional[RecallLookup] = None,
        max_chars: int = 2000,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._oracle = oracle
        self._store = store
        self._recalls = recall_lookup
        self._max_chars = max_chars
        self._clock = clock

    def check(
        self,
        symptom_text: str,
        vehicle: VehicleContext,
        vehicle_id: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SymptomCheck:
        """
        Analyze a symptom description.

        Args:
            symptom_text: What the driver noticed
            vehicle: Vehicle context given to the oracle
            vehicle_id: Overrides ``vehicle.vehicle_id``
            user_id: Overrides ``vehicle.user_id``
            timeout: Oracle timeout in seconds

        Returns:
            The stored SymptomCheck

        Raises:
            ValidationError: Empty or overlong text
            AnalysisUnavailable: The oracle failed or returned a bad shape
        """
        text = (symptom_text or "").strip()
        if not text:
            raise ValidationError("Symptom description is empty")
        if len(text) > self._max_chars:
            raise ValidationError(f"Symptom description exceeds {self._max_chars} characters",
                                  {"length": len(text)})

        payload = {
            "symptom": text,
            "vehicle": {
                "year": vehicle.year,
                "make": vehicle.make,
                "model": vehicle.model,
                "trim": vehicle.trim,
                "mileage": vehicle.mileage,
            },
        }

        try:
            raw = self._oracle.infer(PromptKind.SYMPTOM_CHECK, payload, timeout=timeout)
        except DiagnosticsError:
            raise
        except Exception as e:
            logger.error(f"Oracle failed for symptom check: {e}")
            raise AnalysisUnavailable(f"Symptom check failed: {e}") from e

        if not isinstance(raw, dict):
            raise AnalysisUnavailable("Oracle returned a non-object symptom result")

        try:
            result = _OracleSymptomResult.model_validate(raw)
        except PydanticValidationError as e:
            logger.error(f"Malformed symptom result: {e.error_count()} errors")
            raise AnalysisUnavailable("Oracle returned a malformed symptom result",
                                      {"errors": e.errors(include_url=False)}) from e

        related_recalls = result.related_recalls
        if not related_recalls and self._recalls is not None:
            recalls = self._recalls.lookup(vehicle.make, vehicle.model, vehicle.year, timeout=timeout)
            related_recalls = [str(recall) for recall in recalls]

        check = SymptomCheck(
            vehicle_id=vehicle_id or vehicle.vehicle_id,
            user_id=user_id or vehicle.user_id,
            symptom_text=text,
            ai_analysis=result.ai_analysis,
            suggested_codes=result.suggested_codes,
            probable_causes=result.probable_causes,
            urgency=result.urgency,
            related_recalls=related_recalls,
            related_tsbs=result.related_tsbs,
            flowchart_steps=self._order_steps(result.flowchart_steps),
            checked_at=self._clock(),
        )

        self._store.add_symptom_check(check)
        logger.info(f"Symptom check for {check.vehicle_id}: urgency {check.urgency.value}, "
                    f"{len(check.flowchart_steps)} steps")
        return check

    @staticmethod
    def _order_steps(steps: List[_OracleStep]) -> List[FlowchartStep]:
        """Sort by the oracle's numbering (stable) and renumber from 1."""
        ordered = sorted(enumerate(steps), key=lambda pair: (pair[1].step, pair[0]))
        return [
            FlowchartStep(
                step=number,
                instruction=step.instruction,
                check=step.check,
                if_yes=step.if_yes,
                if_no=step.if_no,
            )
            for number, (_, step) in enumerate(ordered, start=1)
        ]

    def history(self, vehicle_id: str) -> List[SymptomCheck]:
        """Past checks for a vehicle, newest first."""
        return self._store.symptom_checks(vehicle_id)
