"""Per-vehicle JSON persistence of codes, health scores and symptom checks."""

import json
import re
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..config import DEFAULT_DATA_DIR
from ..models.dtc import DiagnosticCode
from ..models.health import VehicleHealthScore
from ..models.symptom import SymptomCheck

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CODES_FILE = "codes.json"
HEALTH_FILE = "health.json"
SYMPTOMS_FILE = "symptoms.json"


class HistoryManager:
    """Reads and writes one directory of JSON files per vehicle."""

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize history manager.

        Args:
            data_dir: Root directory for vehicle history
        """
        self._data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        """Get data directory path."""
        return self._data_dir

    def vehicle_dir(self, vehicle_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", vehicle_id)
        return self._data_dir / "vehicles" / safe_id

    def list_vehicles(self) -> List[str]:
        """Directory names of vehicles that have stored history."""
        root = self._data_dir / "vehicles"
        if not root.exists():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir())

    # Codes

    def load_codes(self, vehicle_id: str) -> List[DiagnosticCode]:
        return self._load(vehicle_id, CODES_FILE, DiagnosticCode)

    def save_codes(self, vehicle_id: str, codes: List[DiagnosticCode]) -> None:
        self._save(vehicle_id, CODES_FILE, codes)

    # Health scores

    def load_health(self, vehicle_id: str) -> List[VehicleHealthScore]:
        return self._load(vehicle_id, HEALTH_FILE, VehicleHealthScore)

    def save_health(self, vehicle_id: str, scores: List[VehicleHealthScore]) -> None:
        self._save(vehicle_id, HEALTH_FILE, scores)

    # Symptom checks

    def load_symptom_checks(self, vehicle_id: str) -> List[SymptomCheck]:
        return self._load(vehicle_id, SYMPTOMS_FILE, SymptomCheck)

    def save_symptom_checks(self, vehicle_id: str, checks: List[SymptomCheck]) -> None:
        self._save(vehicle_id, SYMPTOMS_FILE, checks)

    def _load(self, vehicle_id: str, filename: str, model: Type[ModelT]) -> List[ModelT]:
        filepath = self.vehicle_dir(vehicle_id) / filename
        if not filepath.exists():
            return []

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {filepath}: {e}")
            return []

        records = []
        for item in data.get("records", []):
            try:
                records.append(model.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping bad record in {filepath}: {e.error_count()} errors")
        return records

    def _save(self, vehicle_id: str, filename: str, records: List[BaseModel]) -> None:
        directory = self.vehicle_dir(vehicle_id)
        directory.mkdir(parents=True, exist_ok=True)
        filepath = directory / filename

        data: Dict[str, Any] = {
            "vehicle_id": vehicle_id,
            "records": [record.model_dump(mode="json") for record in records],
        }

        # Write to a sibling then rename so a crash never leaves half a file
        tmp_path = filepath.with_suffix(".json.tmp")
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        tmp_path.replace(filepath)

        logger.debug(f"Saved {len(records)} records to {filepath}")

    def get_storage_size(self) -> int:
        """Get total storage size in bytes."""
        return sum(f.stat().st_size for f in self._data_dir.rglob("*.json"))
