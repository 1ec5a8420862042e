"""Data models for live telemetry."""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class PIDUnit(str, Enum):
    """Physical units telemetry is reported in."""
    KPH = "km/h"
    CELSIUS = "C"
    GPS = "g/s"  # grams per second
    VOLTS = "V"
    RPM = "rpm"
    PERCENT = "%"
    DEGREES = "deg"


class PIDInfo(BaseModel):
    """Definition of one Mode 01 PID sampled by the engine."""

    pid: int = Field(..., description="Mode 01 PID number (e.g., 0x0C)")
    field: str = Field(..., description="TelemetrySnapshot field the value is stored in")
    name: str = Field(..., description="Human-readable name")
    unit: PIDUnit = Field(...)

    min_value: float = Field(...)
    max_value: float = Field(...)
    num_bytes: int = Field(..., ge=1, description="Data bytes the formula consumes")

    @property
    def command_code(self) -> str:
        return f"01{self.pid:02X}"


class TelemetrySnapshot(BaseModel):
    """Decoded sensor values from one sample tick. Never mutated."""

    model_config = {"frozen": True}

    rpm: Optional[float] = None
    vehicle_speed: Optional[float] = None
    coolant_temp: Optional[float] = None
    intake_air_temp: Optional[float] = None
    throttle_position: Optional[float] = None
    engine_load: Optional[float] = None
    fuel_trim_short: Optional[float] = None
    fuel_trim_long: Optional[float] = None
    o2_voltage_bank1: Optional[float] = None
    o2_voltage_bank2: Optional[float] = None
    maf_rate: Optional[float] = None
    timing_advance: Optional[float] = None
    battery_voltage: Optional[float] = None

    timestamp: datetime = Field(default_factory=datetime.now)
    missing: List[str] = Field(default_factory=list, description="Fields whose PID read failed")

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def readings(self) -> Dict[str, float]:
        """Readings that were decoded, keyed by field name."""
        return {
            info.field: getattr(self, info.field)
            for info in TELEMETRY_PIDS
            if getattr(self, info.field) is not None
        }


TELEMETRY_PIDS: List[PIDInfo] = [
    PIDInfo(pid=0x0C, field="rpm", name="Engine RPM", unit=PIDUnit.RPM,
            min_value=0, max_value=16383.75, num_bytes=2),
    PIDInfo(pid=0x0D, field="vehicle_speed", name="Vehicle Speed", unit=PIDUnit.KPH,
            min_value=0, max_value=255, num_bytes=1),
    PIDInfo(pid=0x05, field="coolant_temp", name="Coolant Temp", unit=PIDUnit.CELSIUS,
            min_value=-40, max_value=215, num_bytes=1),
    PIDInfo(pid=0x0F, field="intake_air_temp", name="Intake Air Temp", unit=PIDUnit.CELSIUS,
            min_value=-40, max_value=215, num_bytes=1),
    PIDInfo(pid=0x11, field="throttle_position", name="Throttle Position", unit=PIDUnit.PERCENT,
            min_value=0, max_value=100, num_bytes=1),
    PIDInfo(pid=0x04, field="engine_load", name="Engine Load", unit=PIDUnit.PERCENT,
            min_value=0, max_value=100, num_bytes=1),
    PIDInfo(pid=0x06, field="fuel_trim_short", name="Fuel Trim (Short)", unit=PIDUnit.PERCENT,
            min_value=-100, max_value=99.22, num_bytes=1),
    PIDInfo(pid=0x07, field="fuel_trim_long", name="Fuel Trim (Long)", unit=PIDUnit.PERCENT,
            min_value=-100, max_value=99.22, num_bytes=1),
    PIDInfo(pid=0x14, field="o2_voltage_bank1", name="O2 Voltage B1", unit=PIDUnit.VOLTS,
            min_value=0, max_value=1.275, num_bytes=1),
    PIDInfo(pid=0x18, field="o2_voltage_bank2", name="O2 Voltage B2", unit=PIDUnit.VOLTS,
            min_value=0, max_value=1.275, num_bytes=1),
    PIDInfo(pid=0x10, field="maf_rate", name="MAF Rate", unit=PIDUnit.GPS,
            min_value=0, max_value=655.35, num_bytes=2),
    PIDInfo(pid=0x0E, field="timing_advance", name="Timing Advance", unit=PIDUnit.DEGREES,
            min_value=-64, max_value=63.5, num_bytes=1),
    PIDInfo(pid=0x42, field="battery_voltage", name="Battery", unit=PIDUnit.VOLTS,
            min_value=0, max_value=65.535, num_bytes=2),
]

PIDS_BY_FIELD: Dict[str, PIDInfo] = {info.field: info for info in TELEMETRY_PIDS}
