"""Vehicle lookup and maintenance compliance sources."""

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, Iterable, Optional

from ..errors import NotFound, ValidationError
from ..models.vehicle import VehicleContext


class VehicleRepository(ABC):
    """Looks up the vehicle a request is about."""

    @abstractmethod
    def get_vehicle(self, vehicle_id: str, user_id: str) -> VehicleContext:
        """
        Return the vehicle.

        Raises:
            NotFound: The vehicle does not exist or is not owned by the user
        """


class ComplianceSource(ABC):
    """Provides the maintenance compliance percentage for a vehicle."""

    @abstractmethod
    def compliance_pct(self, vehicle_id: str) -> float:
        """Share of due maintenance that was done on time, 0-100."""


class InMemoryVehicleRepository(VehicleRepository):
    """Vehicle repository backed by a dict, used by the CLI and tests."""

    def __init__(self, vehicles: Iterable[VehicleContext] = ()):
        self._vehicles: Dict[str, VehicleContext] = {}
        self._lock = Lock()
        for vehicle in vehicles:
            self.add(vehicle)

    def add(self, vehicle: VehicleContext) -> None:
        with self._lock:
            self._vehicles[vehicle.vehicle_id] = vehicle.model_copy()

    def update_mileage(self, vehicle_id: str, user_id: str, mileage: int) -> VehicleContext:
        if mileage < 0:
            raise ValidationError("Mileage cannot be negative", {"mileage": mileage})
        with self._lock:
            vehicle = self.get_vehicle(vehicle_id, user_id)
            updated = vehicle.model_copy(update={"mileage": mileage})
            self._vehicles[vehicle_id] = updated
            return updated.model_copy()

    def get_vehicle(self, vehicle_id: str, user_id: str) -> VehicleContext:
        vehicle = self._vehicles.get(vehicle_id)
        if vehicle is None or vehicle.user_id != user_id:
            raise NotFound(f"Vehicle {vehicle_id} not found", {"vehicle_id": vehicle_id})
        return vehicle.model_copy()


class StaticComplianceSource(ComplianceSource):
    """Fixed compliance per vehicle, with a default for unknown vehicles."""

    def __init__(self, default: float = 100.0, values: Optional[Dict[str, float]] = None):
        self._default = default
        self._values: Dict[str, float] = dict(values or {})

    def set(self, vehicle_id: str, pct: float) -> None:
        if not 0.0 <= pct <= 100.0:
            raise ValidationError("Compliance must be between 0 and 100", {"pct": pct})
        self._values[vehicle_id] = pct

    def compliance_pct(self, vehicle_id: str) -> float:
        return self._values.get(vehicle_id, self._default)
