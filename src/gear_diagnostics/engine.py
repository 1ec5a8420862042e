"""Engine facade wiring the components together per user and vehicle."""

import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .analysis.dtc import AnalysisPipeline
from .analysis.health import HealthScoreEngine
from .analysis.oracle import HttpReasoningOracle, ReasoningOracle
from .analysis.symptoms import SymptomChecker
from .collectors.dtc import DTCManager, FreezeFrameFetcher, adapter_freeze_frame_fetcher
from .collectors.recalls import RecallLookup
from .config import EngineConfig
from .connection.adapter import AdapterDriver
from .connection.elm327 import ObdAdapterDriver
from .connection.manager import SessionStateMachine
from .decoders.dtc import DTCDecoder
from .errors import AdapterUnavailable, AnalysisUnavailable, NotFound
from .models.dtc import CodeFilter, DiagnosticCode, DTCAnalysis
from .models.health import VehicleHealthScore
from .models.symptom import SymptomCheck
from .models.vehicle import VehicleContext
from .storage.history import HistoryManager
from .storage.repository import (
    ComplianceSource,
    InMemoryVehicleRepository,
    StaticComplianceSource,
    VehicleRepository,
)
from .storage.store import AnalysisCache, DiagnosticStore

logger = logging.getLogger(__name__)


class DiagnosticsEngine:
    """Owns the shared components and hands out per-vehicle contexts."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        driver: Optional[AdapterDriver] = None,
        oracle: Optional[ReasoningOracle] = None,
        vehicles: Optional[VehicleRepository] = None,
        compliance: Optional[ComplianceSource] = None,
        history: Optional[HistoryManager] = None,
        recall_lookup: Optional[RecallLookup] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or EngineConfig()
        self.clock = clock

        self.decoder = DTCDecoder()
        self.store = DiagnosticStore(history)
        self.vehicles = vehicles or InMemoryVehicleRepository()
        self.compliance = compliance or StaticComplianceSource()

        self.dtc = DTCManager(self.store, self.decoder, self.config, clock)
        self.health = HealthScoreEngine(self.store, self.compliance, self.config.health, self.decoder, clock)

        self.recall_lookup = recall_lookup
        self.oracle = oracle
        self.analysis: Optional[AnalysisPipeline] = None
        self.symptoms: Optional[SymptomChecker] = None
        if oracle is not None:
            self.analysis = AnalysisPipeline(oracle, self.dtc, AnalysisCache(), self.decoder)
            self.symptoms = SymptomChecker(oracle, self.store, recall_lookup,
                                           max_chars=self.config.max_symptom_chars, clock=clock)

        self.session: Optional[SessionStateMachine] = None
        if driver is not None:
            self.session = SessionStateMachine(driver, interval_ms=self.config.sample_interval_ms)

        self._contexts: Dict[Tuple[str, str], "DiagnosticContext"] = {}
        self._contexts_lock = Lock()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        vehicles: Optional[VehicleRepository] = None,
        compliance: Optional[ComplianceSource] = None,
    ) -> "DiagnosticsEngine":
        """Build an engine with the python-OBD driver, HTTP oracle and JSON history."""
        driver = ObdAdapterDriver(
            port=config.adapter_port,
            baudrate=config.adapter_baudrate,
            protocol=config.adapter_protocol,
            timeout=config.adapter_timeout,
        )

        oracle = None
        if config.oracle_url:
            oracle = HttpReasoningOracle(config.oracle_url, config.oracle_api_key, timeout=config.oracle_timeout)
        else:
            logger.warning("No oracle URL configured; analysis and symptom checks are unavailable")

        return cls(
            config=config,
            driver=driver,
            oracle=oracle,
            vehicles=vehicles,
            compliance=compliance,
            history=HistoryManager(config.data_dir),
            recall_lookup=RecallLookup(timeout=config.nhtsa_timeout),
        )

    def context(self, vehicle_id: str, user_id: str) -> "DiagnosticContext":
        """
        Context for one user's vehicle.

        Raises:
            NotFound: The vehicle does not exist or is not owned by the user
        """
        self.vehicles.get_vehicle(vehicle_id, user_id)

        key = (user_id, vehicle_id)
        with self._contexts_lock:
            if key not in self._contexts:
                self._contexts[key] = DiagnosticContext(self, vehicle_id, user_id)
            return self._contexts[key]

    def require_session(self) -> SessionStateMachine:
        if self.session is None:
            raise AdapterUnavailable("No adapter driver configured")
        return self.session


class DiagnosticContext:
    """
    Operations scoped to one user's vehicle.

    Every change to the vehicle's codes is followed by a health score
    recalculation.
    """

    def __init__(self, engine: DiagnosticsEngine, vehicle_id: str, user_id: str):
        self._engine = engine
        self.vehicle_id = vehicle_id
        self.user_id = user_id

    @property
    def vehicle(self) -> VehicleContext:
        return self._engine.vehicles.get_vehicle(self.vehicle_id, self.user_id)

    # Codes

    def scan(self, mileage: Optional[int] = None, capture_freeze_frame: bool = True) -> List[DiagnosticCode]:
        """Read codes from the connected adapter and ingest them."""
        session = self._engine.require_session()
        result = session.read_codes()
        fetcher = adapter_freeze_frame_fetcher(session.read_freeze_frame) if capture_freeze_frame else None

        if mileage is None:
            mileage = self.vehicle.mileage

        return self.ingest(result.stored_codes, mileage=mileage,
                           pending_codes=result.pending_codes, freeze_frame_fetcher=fetcher)

    def ingest(
        self,
        raw_codes: Iterable[str],
        mileage: Optional[int] = None,
        pending_codes: Iterable[str] = (),
        freeze_frame_fetcher: Optional[FreezeFrameFetcher] = None,
    ) -> List[DiagnosticCode]:
        codes = self._engine.dtc.ingest_scan(
            self.vehicle_id,
            self.user_id,
            raw_codes,
            freeze_frame_fetcher=freeze_frame_fetcher,
            mileage=mileage,
            pending_codes=pending_codes,
        )
        self.recalculate_health(mileage=mileage)
        return codes

    def list_codes(self, status_filter: CodeFilter = CodeFilter.ALL) -> List[DiagnosticCode]:
        return self._engine.dtc.list_codes(self.vehicle_id, status_filter)

    def resolve(self, diagnostic_id: str) -> DiagnosticCode:
        code = self._engine.dtc.resolve(self.vehicle_id, diagnostic_id)
        self.recalculate_health()
        return code

    def mark_false_positive(self, diagnostic_id: str) -> DiagnosticCode:
        code = self._engine.dtc.mark_false_positive(self.vehicle_id, diagnostic_id)
        self.recalculate_health()
        return code

    def clear_adapter_codes(self) -> bool:
        """Clear ECU code memory. Local records are kept."""
        session = self._engine.require_session()
        return self._engine.dtc.clear_adapter_codes(session.clear_codes)

    # Analysis

    def analyze(
        self,
        diagnostic_id: Optional[str] = None,
        code: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DTCAnalysis:
        """
        Analyze a stored code by id, or any code by name.

        Raises:
            AnalysisUnavailable: No oracle is configured or the oracle failed
            NotFound: ``diagnostic_id`` is not one of this vehicle's codes
        """
        if self._engine.analysis is None:
            raise AnalysisUnavailable("No reasoning oracle configured")

        if diagnostic_id is not None:
            record = self._engine.dtc.get_code(self.vehicle_id, diagnostic_id)
            code = record.code
        elif code is None:
            raise NotFound("Either a diagnostic id or a code is required")

        vehicle = self.vehicle
        return self._engine.analysis.analyze(
            vehicle.vin,
            code,
            vehicle.mileage,
            vehicle,
            diagnostic_id=diagnostic_id,
            timeout=timeout,
        )

    # Health

    def recalculate_health(self, mileage: Optional[int] = None) -> VehicleHealthScore:
        """Recompute the score, e.g. after maintenance records changed."""
        vehicle = self.vehicle
        return self._engine.health.calculate(
            self.vehicle_id,
            user_id=self.user_id,
            mileage=mileage if mileage is not None else vehicle.mileage,
            model_year=vehicle.year,
        )

    def latest_health(self) -> Optional[VehicleHealthScore]:
        return self._engine.health.latest(self.vehicle_id)

    def health_history(self) -> List[VehicleHealthScore]:
        return self._engine.health.history(self.vehicle_id)

    # Symptoms

    def check_symptoms(self, symptom_text: str, timeout: Optional[float] = None) -> SymptomCheck:
        if self._engine.symptoms is None:
            raise AnalysisUnavailable("No reasoning oracle configured")
        return self._engine.symptoms.check(symptom_text, self.vehicle, self.vehicle_id, self.user_id,
                                           timeout=timeout)

    def symptom_history(self) -> List[SymptomCheck]:
        return self._engine.store.symptom_checks(self.vehicle_id)
