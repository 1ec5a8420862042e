"""Analysis pipeline turning a code and vehicle into a structured DTCAnalysis."""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from .oracle import PromptKind, ReasoningOracle
from ..collectors.dtc import DTCManager
from ..decoders.dtc import DTCDecoder
from ..errors import AnalysisUnavailable, DiagnosticsError, ValidationError
from ..models.dtc import DTCAnalysis, is_valid_dtc, normalize_dtc
from ..models.vehicle import VehicleContext
from ..storage.store import AnalysisCache

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """Cached, validated code analysis backed by the reasoning oracle."""

    def __init__(
        self,
        oracle: ReasoningOracle,
        dtc_manager: Optional[DTCManager] = None,
        cache: Optional[AnalysisCache] = None,
        decoder: Optional[DTCDecoder] = None,
    ):
        self._oracle = oracle
        self._dtc_manager = dtc_manager
        self._cache = cache if cache is not None else AnalysisCache()
        self._decoder = decoder or (dtc_manager.decoder if dtc_manager else DTCDecoder())

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    def analyze(
        self,
        vin: str,
        code: str,
        mileage: Optional[int],
        vehicle: VehicleContext,
        diagnostic_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DTCAnalysis:
        """
        Analyze a code for a vehicle.

        Results are cached per code, make, model, year and mileage rounded
        to 10,000, so repeat requests do not reach the oracle. When
        ``diagnostic_id`` is given the analysis is also stored on that code.

        Args:
            vin: VIN, may be empty
            code: DTC code (e.g., 'P0420')
            mileage: Odometer reading
            vehicle: Vehicle the code was read from
            diagnostic_id: Code record to attach the analysis to
            timeout: Oracle timeout in seconds

        Returns:
            The analysis

        Raises:
            ValidationError: Malformed code, VIN or mileage
            AnalysisUnavailable: The oracle failed or returned a bad shape
        """
        code = normalize_dtc(code)
        if not is_valid_dtc(code):
            raise ValidationError(f"Invalid DTC code: {code!r}", {"code": code})

        vin = (vin or "").strip().upper()
        if vin:
            errors = VehicleContext.validate_vin(vin)
            if errors:
                raise ValidationError(f"Invalid VIN: {'; '.join(errors)}", {"vin": vin})

        if mileage is not None and mileage < 0:
            raise ValidationError("Mileage cannot be negative", {"mileage": mileage})

        key = self._cache.make_key(code, vehicle, mileage)
        analysis = self._cache.get(key)

        if analysis is not None:
            logger.debug(f"Analysis cache hit for {code} on {vehicle.description}")
        else:
            analysis = self._request(vin, code, mileage, vehicle, timeout)
            self._cache.put(key, analysis)

        if diagnostic_id is not None:
            self._attach(vehicle.vehicle_id, diagnostic_id, analysis)

        return analysis

    def _request(self, vin: str, code: str, mileage: Optional[int], vehicle: VehicleContext,
                 timeout: Optional[float]) -> DTCAnalysis:
        payload = self._build_payload(vin, code, mileage, vehicle)
        logger.info(f"Requesting analysis of {code} for {vehicle.description}")

        try:
            raw = self._oracle.infer(PromptKind.DTC_ANALYSIS, payload, timeout=timeout)
        except DiagnosticsError:
            raise
        except Exception as e:
            logger.error(f"Oracle failed for {code}: {e}")
            raise AnalysisUnavailable(f"Analysis of {code} failed: {e}") from e

        return self._validate(code, raw)

    def _build_payload(self, vin: str, code: str, mileage: Optional[int], vehicle: VehicleContext) -> Dict[str, Any]:
        hints = self._decoder.hints(code)
        return {
            "vin": vin,
            "code": code,
            "description": self._decoder.get_description(code),
            "mileage": mileage,
            "vehicle": {
                "year": vehicle.year,
                "make": vehicle.make,
                "model": vehicle.model,
                "trim": vehicle.trim,
            },
            "known_causes": hints["causes"],
            "known_symptoms": hints["symptoms"],
        }

    def _validate(self, code: str, raw: Any) -> DTCAnalysis:
        if not isinstance(raw, dict):
            raise AnalysisUnavailable(f"Oracle returned {type(raw).__name__} for {code}, expected an object")

        returned_code = raw.get("code")
        if returned_code and normalize_dtc(str(returned_code)) != code:
            raise AnalysisUnavailable(f"Oracle analyzed {returned_code} instead of {code}")

        data = dict(raw)
        data["code"] = code
        if not data.get("description"):
            data["description"] = self._decoder.get_description(code)

        try:
            return DTCAnalysis.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Malformed analysis for {code}: {e.error_count()} errors")
            raise AnalysisUnavailable(f"Oracle returned a malformed analysis for {code}",
                                      {"errors": e.errors(include_url=False)}) from e

    def _attach(self, vehicle_id: str, diagnostic_id: str, analysis: DTCAnalysis) -> None:
        if self._dtc_manager is None:
            raise ValidationError("No code store configured to attach the analysis to")
        self._dtc_manager.attach_analysis(vehicle_id, diagnostic_id, analysis)
