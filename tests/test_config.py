"""Tests for configuration and model helpers."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from gear_diagnostics.config import EngineConfig, HealthScoreConfig
from gear_diagnostics.models.dtc import CodeStatus, DiagnosticCode, Severity
from gear_diagnostics.models.vehicle import VehicleContext


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()

        assert config.sample_interval_ms == 250
        assert config.oracle_url is None
        assert config.health.severity_penalty[Severity.CRITICAL] == 40.0

    def test_from_env(self):
        config = EngineConfig.from_env({
            "GEAR_DIAG_SAMPLE_INTERVAL_MS": "500",
            "GEAR_DIAG_ORACLE_URL": "https://oracle.example.test",
            "GEAR_DIAG_DATA_DIR": "/tmp/gear",
            "GEAR_DIAG_ADAPTER_PORT": "",
            "UNRELATED": "1",
        })

        assert config.sample_interval_ms == 500
        assert config.oracle_url == "https://oracle.example.test"
        assert config.data_dir == Path("/tmp/gear")
        assert config.adapter_port is None

    def test_invalid_env_value(self):
        with pytest.raises(PydanticValidationError):
            EngineConfig.from_env({"GEAR_DIAG_SAMPLE_INTERVAL_MS": "0"})

    def test_health_config_bounds(self):
        with pytest.raises(PydanticValidationError):
            HealthScoreConfig(recency_floor=1.5)


class TestVehicleContext:
    def test_vin_validation(self):
        assert VehicleContext.validate_vin("1HGBH41JXMN109186") == []
        assert VehicleContext.validate_vin("SHORT")
        assert VehicleContext.validate_vin("1HGBH41JXMN10918Q")

    def test_description(self, vehicle):
        assert vehicle.description == "2018 Honda Civic EX"
        assert vehicle.has_valid_vin

    def test_negative_mileage(self):
        with pytest.raises(PydanticValidationError):
            VehicleContext(vehicle_id="v", user_id="u", mileage=-1)


class TestDiagnosticCode:
    def test_invalid_code_rejected(self):
        with pytest.raises(PydanticValidationError):
            DiagnosticCode(vehicle_id="v", code="P12")

    def test_close_requires_terminal_status(self, clock):
        code = DiagnosticCode(vehicle_id="v", code="P0420")

        with pytest.raises(ValueError):
            code.close(CodeStatus.PENDING, clock.now)

    def test_code_type_serialized(self):
        code = DiagnosticCode(vehicle_id="v", code="u0100")

        assert code.code == "U0100"
        assert code.model_dump()["code_type"] == "U"
