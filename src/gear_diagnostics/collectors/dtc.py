"""DTC lifecycle management: scan ingestion, deduplication and status changes."""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..config import EngineConfig
from ..decoders.dtc import DTCDecoder
from ..decoders.pid import decode_readings
from ..errors import NotFound, ValidationError
from ..models.dtc import (
    CodeFilter,
    CodeStatus,
    DiagnosticCode,
    DTCAnalysis,
    is_valid_dtc,
    normalize_dtc,
)
from ..models.telemetry import TELEMETRY_PIDS
from ..storage.store import DiagnosticStore

logger = logging.getLogger(__name__)

FreezeFrameFetcher = Callable[[str], Optional[Dict[str, float]]]


def adapter_freeze_frame_fetcher(read_freeze_frame: Callable[[int], Optional[bytes]]) -> FreezeFrameFetcher:
    """
    Build a fetcher that reads freeze frame 0 through Mode 02.

    The ECU keeps one frame, so every code in a scan gets the same values.
    """
    cache: Dict[str, Optional[Dict[str, float]]] = {}

    def fetch(code: str) -> Optional[Dict[str, float]]:
        if "frame" not in cache:
            raw = {info.pid: read_freeze_frame(info.pid) for info in TELEMETRY_PIDS}
            values, _ = decode_readings(raw)
            cache["frame"] = values or None
        return cache["frame"]

    return fetch


def _normalize_batch(raw_codes: Iterable[str]) -> List[str]:
    codes: List[str] = []
    for raw in raw_codes:
        code = normalize_dtc(raw)
        if not is_valid_dtc(code):
            raise ValidationError(f"Invalid DTC code: {raw!r}", {"code": raw})
        if code not in codes:
            codes.append(code)
    return codes


class DTCManager:
    """Owns the diagnostic codes of every vehicle in the store."""

    def __init__(
        self,
        store: DiagnosticStore,
        decoder: Optional[DTCDecoder] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._decoder = decoder or DTCDecoder()
        self._config = config or EngineConfig()
        self._clock = clock

    @property
    def decoder(self) -> DTCDecoder:
        return self._decoder

    def ingest_scan(
        self,
        vehicle_id: str,
        user_id: Optional[str],
        raw_codes: Iterable[str],
        freeze_frame_fetcher: Optional[FreezeFrameFetcher] = None,
        mileage: Optional[int] = None,
        pending_codes: Iterable[str] = (),
    ) -> List[DiagnosticCode]:
        """
        Record the codes from one scan.

        Stored codes become active records and pending codes pending ones.
        Codes that already have an open record keep it. The whole batch is
        validated and all freeze frames fetched before anything is written,
        so a failure leaves the vehicle's codes untouched.

        Args:
            vehicle_id: Vehicle the scan was taken from
            user_id: Owner recorded on new codes
            raw_codes: Stored (Mode 03) codes as read
            freeze_frame_fetcher: Called once per stored code
            mileage: Odometer at scan time
            pending_codes: Pending (Mode 07) codes as read

        Returns:
            All codes for the vehicle, most recently detected first

        Raises:
            ValidationError: A code is malformed or mileage is negative
        """
        if mileage is not None and mileage < 0:
            raise ValidationError("Mileage cannot be negative", {"mileage": mileage})

        stored = _normalize_batch(raw_codes)
        pending = [c for c in _normalize_batch(pending_codes) if c not in stored]

        frames: Dict[str, Optional[Dict[str, float]]] = {}
        if freeze_frame_fetcher is not None:
            for code in stored:
                frames[code] = freeze_frame_fetcher(code)

        now = self._clock()

        with self._store.lock(vehicle_id):
            open_records: Dict[str, DiagnosticCode] = {}
            for record in self._store.get_codes(vehicle_id):
                if record.is_open:
                    open_records[record.code] = record

            changed: List[DiagnosticCode] = []
            for code in stored:
                record = self._upsert(vehicle_id, user_id, code, CodeStatus.ACTIVE,
                                      open_records.get(code), frames.get(code), mileage, now)
                if record is not None:
                    changed.append(record)
            for code in pending:
                record = self._upsert(vehicle_id, user_id, code, CodeStatus.PENDING,
                                      open_records.get(code), None, mileage, now)
                if record is not None:
                    changed.append(record)

            if changed:
                self._store.put_codes(vehicle_id, changed)
                logger.info(f"Ingested {len(stored)} stored and {len(pending)} pending codes "
                            f"for {vehicle_id} ({len(changed)} records changed)")

            return self.list_codes(vehicle_id)

    def _upsert(
        self,
        vehicle_id: str,
        user_id: Optional[str],
        code: str,
        status: CodeStatus,
        existing: Optional[DiagnosticCode],
        freeze_frame: Optional[Dict[str, float]],
        mileage: Optional[int],
        now: datetime,
    ) -> Optional[DiagnosticCode]:
        """Return the new or changed record, or None if nothing changed."""
        if existing is None:
            description = self._decoder.get_description(code)
            return DiagnosticCode(
                vehicle_id=vehicle_id,
                user_id=user_id,
                code=code,
                description=description,
                severity=self._decoder.default_severity(code),
                status=status,
                detected_at=now,
                mileage_at_detection=mileage,
                freeze_frame=freeze_frame,
                created_at=now,
                updated_at=now,
            )

        changed = False
        if status == CodeStatus.ACTIVE and existing.promote(now):
            logger.info(f"Pending code {code} confirmed for {vehicle_id}")
            changed = True

        if self._is_materially_newer(existing, mileage, now):
            existing.detected_at = now
            if mileage is not None:
                existing.mileage_at_detection = mileage
            changed = True

        if existing.freeze_frame is None and freeze_frame:
            existing.freeze_frame = freeze_frame
            changed = True

        if changed:
            existing.updated_at = now
            return existing
        return None

    def _is_materially_newer(self, existing: DiagnosticCode, mileage: Optional[int], now: datetime) -> bool:
        if mileage is not None:
            if existing.mileage_at_detection is None:
                return True
            if mileage - existing.mileage_at_detection >= self._config.refresh_mileage_delta:
                return True
        elapsed = (now - existing.detected_at).total_seconds()
        return elapsed >= self._config.refresh_interval_s

    def resolve(self, vehicle_id: str, diagnostic_id: str) -> DiagnosticCode:
        """
        Mark a code resolved.

        Resolving a code that is already resolved or a false positive
        returns it unchanged.
        """
        return self._close(vehicle_id, diagnostic_id, CodeStatus.RESOLVED)

    def mark_false_positive(self, vehicle_id: str, diagnostic_id: str) -> DiagnosticCode:
        """Mark a code as a false positive. Closed codes are returned unchanged."""
        return self._close(vehicle_id, diagnostic_id, CodeStatus.FALSE_POSITIVE)

    def _close(self, vehicle_id: str, diagnostic_id: str, status: CodeStatus) -> DiagnosticCode:
        with self._store.lock(vehicle_id):
            record = self.get_code(vehicle_id, diagnostic_id)
            if record.close(status, self._clock()):
                self._store.put_codes(vehicle_id, [record])
                logger.info(f"Code {record.code} for {vehicle_id} marked {status.value}")
            else:
                logger.debug(f"Code {record.code} already {record.status.value}")
            return record

    def get_code(self, vehicle_id: str, diagnostic_id: str) -> DiagnosticCode:
        record = self._store.get_code(vehicle_id, diagnostic_id)
        if record is None:
            raise NotFound(f"Code {diagnostic_id} not found for vehicle {vehicle_id}",
                           {"vehicle_id": vehicle_id, "diagnostic_id": diagnostic_id})
        return record

    def clear_adapter_codes(self, clear_fn: Callable[[], bool]) -> bool:
        """
        Clear the ECU's code memory through the adapter.

        Local records are left as they are; they are history, and a cleared
        code that comes back is picked up by the next scan.
        """
        cleared = clear_fn()
        if cleared:
            logger.info("Adapter codes cleared")
        else:
            logger.warning("Adapter did not confirm clearing codes")
        return cleared

    def list_codes(self, vehicle_id: str, status_filter: CodeFilter = CodeFilter.ALL) -> List[DiagnosticCode]:
        """Codes matching the filter, most recently detected first."""
        codes = [c for c in self._store.get_codes(vehicle_id) if status_filter.matches(c.status)]
        codes.sort(key=lambda c: (c.detected_at, c.created_at), reverse=True)
        return codes

    def attach_analysis(self, vehicle_id: str, diagnostic_id: str, analysis: DTCAnalysis) -> DiagnosticCode:
        """Store an analysis on a code record."""
        with self._store.lock(vehicle_id):
            record = self.get_code(vehicle_id, diagnostic_id)
            if record.code != analysis.code:
                raise ValidationError(
                    f"Analysis for {analysis.code} cannot be attached to {record.code}",
                    {"diagnostic_id": diagnostic_id},
                )
            record.ai_analysis = analysis
            record.updated_at = self._clock()
            self._store.put_codes(vehicle_id, [record])
            return record
