"""Pytest fixtures for gear-diagnostics tests."""

from datetime import datetime, timedelta
from threading import Event
from typing import Dict, List, Optional

import pytest
from unittest.mock import MagicMock

from gear_diagnostics.analysis.oracle import ReasoningOracle
from gear_diagnostics.config import EngineConfig
from gear_diagnostics.connection.adapter import (
    AdapterCandidate,
    AdapterConnection,
    AdapterDriver,
    AdapterType,
)
from gear_diagnostics.decoders.dtc import DTCDecoder
from gear_diagnostics.errors import AdapterDisconnected, AdapterUnavailable
from gear_diagnostics.models.dtc import DTCReadResult
from gear_diagnostics.models.vehicle import VehicleContext
from gear_diagnostics.storage.store import DiagnosticStore


# Data bytes for a warm idle: 800 rpm, 0 km/h, 90C coolant, 14.2V
IDLE_PIDS: Dict[int, bytes] = {
    0x0C: bytes([0x0C, 0x80]),
    0x0D: bytes([0x00]),
    0x05: bytes([0x82]),
    0x0F: bytes([0x46]),
    0x11: bytes([0x26]),
    0x04: bytes([0x33]),
    0x06: bytes([0x80]),
    0x07: bytes([0x82]),
    0x14: bytes([0x5A]),
    0x18: bytes([0x5A]),
    0x10: bytes([0x01, 0x90]),
    0x0E: bytes([0x94]),
    0x42: bytes([0x37, 0x78]),
}


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAdapterDriver(AdapterDriver):
    """Scriptable in-memory adapter."""

    def __init__(
        self,
        pids: Optional[Dict[int, bytes]] = None,
        stored_codes: Optional[List[str]] = None,
        pending_codes: Optional[List[str]] = None,
    ):
        self.pids = dict(IDLE_PIDS if pids is None else pids)
        self.stored_codes = list(stored_codes or [])
        self.pending_codes = list(pending_codes or [])
        self.freeze_frame = dict(self.pids)

        self.candidate: Optional[AdapterCandidate] = AdapterCandidate(
            port="/dev/ttyUSB0", description="OBDLink SX", adapter_type=AdapterType.USB_ELM327
        )
        self.connect_error: Optional[Exception] = None
        self.connect_gate: Optional[Event] = None
        self.disconnect_after: Optional[int] = None

        self.connected = False
        self.pid_reads = 0
        self.clear_calls = 0
        self.disconnect_calls = 0

    def discover(self) -> Optional[AdapterCandidate]:
        return self.candidate

    def connect(self, candidate: AdapterCandidate) -> AdapterConnection:
        if self.connect_gate is not None:
            self.connect_gate.wait(5)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        return AdapterConnection(protocol="ISO 15765-4 (CAN 11/500)", adapter_name="ELM327 v1.5")

    def _check_link(self) -> None:
        if not self.connected:
            raise AdapterDisconnected("Adapter link is down")

    def read_pid(self, pid: int) -> Optional[bytes]:
        self._check_link()
        self.pid_reads += 1
        if self.disconnect_after is not None and self.pid_reads > self.disconnect_after:
            self.connected = False
            raise AdapterDisconnected("Adapter stopped responding")
        return self.pids.get(pid)

    def read_codes(self) -> DTCReadResult:
        self._check_link()
        return DTCReadResult(stored_codes=self.stored_codes, pending_codes=self.pending_codes)

    def read_freeze_frame(self, pid: int) -> Optional[bytes]:
        self._check_link()
        return self.freeze_frame.get(pid)

    def clear_codes(self) -> bool:
        self._check_link()
        self.clear_calls += 1
        self.stored_codes = []
        self.pending_codes = []
        return True

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False


class StubOracle(ReasoningOracle):
    """Oracle returning canned responses and recording every call."""

    def __init__(self, response=None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls = []

    def infer(self, prompt_kind, payload, timeout=None):
        self.calls.append((prompt_kind, payload, timeout))
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return self.response(prompt_kind, payload)
        return self.response


def analysis_response(code: str = "P0420") -> dict:
    return {
        "code": code,
        "description": "Catalyst System Efficiency Below Threshold (Bank 1)",
        "urgency": "medium",
        "estimated_cost_min": 150,
        "estimated_cost_max": 2200,
        "labor_cost": 200,
        "parts_cost": 900,
        "repair_difficulty": "moderate",
        "probable_causes": [
            {"cause": "Failing upstream O2 sensor", "likelihood": 0.25},
            {"cause": "Worn catalytic converter", "likelihood": 0.6},
        ],
        "diy_vs_shop": "shop",
        "recommendation_rationale": "Converter replacement needs a lift and cutting tools",
        "symptoms": ["Check engine light"],
        "tech_service_bulletins": [],
    }


def symptom_response() -> dict:
    return {
        "ai_analysis": "A grinding noise when braking usually points at worn pads.",
        "suggested_codes": ["c0035"],
        "probable_causes": ["Worn brake pads", "Scored rotor"],
        "urgency": "high",
        "related_tsbs": [],
        "flowchart_steps": [
            {"step": 2, "instruction": "Measure pad thickness", "check": "Under 3mm?",
             "if_yes": "Replace pads", "if_no": "Go to step 3"},
            {"step": 1, "instruction": "Listen for the noise with brakes applied lightly"},
            {"step": 3, "instruction": "Inspect rotor surface for scoring"},
        ],
    }


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def vehicle():
    return VehicleContext(
        vehicle_id="veh-1",
        user_id="user-1",
        vin="1HGBH41JXMN109186",
        make="Honda",
        model="Civic",
        year=2018,
        trim="EX",
        mileage=52000,
    )


@pytest.fixture
def decoder():
    return DTCDecoder()


@pytest.fixture
def store():
    return DiagnosticStore()


@pytest.fixture
def config(tmp_path):
    return EngineConfig(sample_interval_ms=10, data_dir=tmp_path)


@pytest.fixture
def fake_driver():
    return FakeAdapterDriver()


@pytest.fixture
def mock_recall_lookup():
    """RecallLookup double returning no recalls."""
    mock = MagicMock()
    mock.lookup.return_value = []
    return mock


@pytest.fixture
def failing_driver():
    driver = FakeAdapterDriver()
    driver.connect_error = AdapterUnavailable("Adapter did not answer ATZ")
    return driver
