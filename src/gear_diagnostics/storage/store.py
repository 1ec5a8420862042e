"""In-memory per-vehicle store with optional JSON write-through."""

import logging
from threading import Lock, RLock
from typing import Optional, List, Dict, Tuple, Iterable

from .history import HistoryManager
from ..models.dtc import DiagnosticCode, DTCAnalysis
from ..models.health import VehicleHealthScore
from ..models.symptom import SymptomCheck
from ..models.vehicle import VehicleContext

logger = logging.getLogger(__name__)


class _VehicleRecords:
    """Everything stored for one vehicle."""

    def __init__(self):
        self.lock = RLock()
        self.codes: Dict[str, DiagnosticCode] = {}
        self.health: List[VehicleHealthScore] = []
        self.symptom_checks: List[SymptomCheck] = []


class DiagnosticStore:
    """
    Keyed store of codes, health scores and symptom checks per vehicle.

    Every vehicle has its own re-entrant lock; writers hold it for the whole
    read-modify-write. Reads hand out deep copies so callers never see a
    record change underneath them. With a ``HistoryManager`` each write is
    persisted before the call returns, and a vehicle's history is loaded the
    first time it is touched.
    """

    def __init__(self, history: Optional[HistoryManager] = None):
        self._history = history
        self._vehicles: Dict[str, _VehicleRecords] = {}
        self._guard = Lock()

    def _records(self, vehicle_id: str) -> _VehicleRecords:
        with self._guard:
            records = self._vehicles.get(vehicle_id)
            if records is None:
                records = _VehicleRecords()
                if self._history:
                    for code in self._history.load_codes(vehicle_id):
                        records.codes[code.diagnostic_id] = code
                    records.health = self._history.load_health(vehicle_id)
                    records.symptom_checks = self._history.load_symptom_checks(vehicle_id)
                self._vehicles[vehicle_id] = records
            return records

    def lock(self, vehicle_id: str) -> RLock:
        """The lock serializing mutations for one vehicle."""
        return self._records(vehicle_id).lock

    # Codes

    def get_codes(self, vehicle_id: str) -> List[DiagnosticCode]:
        records = self._records(vehicle_id)
        with records.lock:
            return [code.model_copy(deep=True) for code in records.codes.values()]

    def get_code(self, vehicle_id: str, diagnostic_id: str) -> Optional[DiagnosticCode]:
        records = self._records(vehicle_id)
        with records.lock:
            code = records.codes.get(diagnostic_id)
            return code.model_copy(deep=True) if code else None

    def put_codes(self, vehicle_id: str, codes: Iterable[DiagnosticCode]) -> None:
        """Insert or replace codes by ``diagnostic_id`` in one step."""
        records = self._records(vehicle_id)
        with records.lock:
            updated = dict(records.codes)
            for code in codes:
                if code.vehicle_id != vehicle_id:
                    raise ValueError(f"Code {code.diagnostic_id} belongs to vehicle {code.vehicle_id}")
                updated[code.diagnostic_id] = code.model_copy(deep=True)

            if self._history:
                self._history.save_codes(vehicle_id, list(updated.values()))
            records.codes = updated

    # Health scores

    def add_health_score(self, score: VehicleHealthScore) -> None:
        records = self._records(score.vehicle_id)
        with records.lock:
            updated = records.health + [score.model_copy(deep=True)]
            if self._history:
                self._history.save_health(score.vehicle_id, updated)
            records.health = updated

    def latest_health_score(self, vehicle_id: str) -> Optional[VehicleHealthScore]:
        records = self._records(vehicle_id)
        with records.lock:
            if not records.health:
                return None
            latest = max(records.health, key=lambda s: s.calculated_at)
            return latest.model_copy(deep=True)

    def health_history(self, vehicle_id: str) -> List[VehicleHealthScore]:
        """Stored scores, newest first."""
        records = self._records(vehicle_id)
        with records.lock:
            ordered = sorted(records.health, key=lambda s: s.calculated_at, reverse=True)
            return [s.model_copy(deep=True) for s in ordered]

    # Symptom checks

    def add_symptom_check(self, check: SymptomCheck) -> None:
        records = self._records(check.vehicle_id)
        with records.lock:
            updated = records.symptom_checks + [check]
            if self._history:
                self._history.save_symptom_checks(check.vehicle_id, updated)
            records.symptom_checks = updated

    def symptom_checks(self, vehicle_id: str) -> List[SymptomCheck]:
        """Stored checks, newest first."""
        records = self._records(vehicle_id)
        with records.lock:
            return sorted(records.symptom_checks, key=lambda c: c.checked_at, reverse=True)


CacheKey = Tuple[str, str, str, Optional[int], Optional[int]]


def mileage_bucket(mileage: Optional[int]) -> Optional[int]:
    """Round mileage to the nearest 10,000."""
    if mileage is None:
        return None
    return int((mileage + 5000) // 10000) * 10000


class AnalysisCache:
    """Thread-safe cache of code analyses keyed by code, vehicle and mileage bucket."""

    def __init__(self):
        self._entries: Dict[CacheKey, DTCAnalysis] = {}
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(code: str, vehicle: VehicleContext, mileage: Optional[int]) -> CacheKey:
        return (
            code.upper(),
            vehicle.make.lower(),
            vehicle.model.lower(),
            vehicle.year,
            mileage_bucket(mileage),
        )

    def get(self, key: CacheKey) -> Optional[DTCAnalysis]:
        with self._lock:
            analysis = self._entries.get(key)
            if analysis is None:
                self.misses += 1
            else:
                self.hits += 1
            return analysis

    def put(self, key: CacheKey, analysis: DTCAnalysis) -> None:
        with self._lock:
            self._entries[key] = analysis

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
