"""Tests for PID and DTC decoding."""

import pytest

from gear_diagnostics.decoders.dtc import DTCDecoder, bytes_to_dtc, parse_dtc_bytes
from gear_diagnostics.decoders.pid import PIDDecodeError, decode_frame, decode_pid, decode_readings
from gear_diagnostics.models.dtc import Severity
from gear_diagnostics.models.health import HealthSystem
from gear_diagnostics.models.telemetry import TELEMETRY_PIDS

from conftest import IDLE_PIDS


class TestDecodePid:
    """Tests for the SAE J1979 formulas."""

    def test_rpm(self):
        assert decode_pid(0x0C, bytes([0x1A, 0xF8])) == 1726.0

    def test_coolant_temp(self):
        assert decode_pid(0x05, bytes([0x7B])) == 83.0

    def test_fuel_trim_is_signed_percent(self):
        assert decode_pid(0x06, bytes([0x80])) == 0.0
        assert decode_pid(0x07, bytes([0x00])) == -100.0

    def test_control_module_voltage(self):
        assert decode_pid(0x42, bytes([0x37, 0x78])) == 14.2

    def test_payload_resembling_mode_echo_is_data(self):
        # 0x41 0x0C is a valid rpm payload, not a response header
        assert decode_pid(0x0C, bytes([0x41, 0x0C])) == 4163.0

    def test_extra_bytes_ignored(self):
        assert decode_pid(0x0D, bytes([0x3C, 0xFF, 0xFF])) == 60.0

    def test_short_payload_raises(self):
        with pytest.raises(PIDDecodeError):
            decode_pid(0x0C, bytes([0x1A]))

    def test_unknown_pid_raises(self):
        with pytest.raises(PIDDecodeError):
            decode_pid(0x99, bytes([0x00]))

    def test_every_telemetry_pid_within_range(self):
        for info in TELEMETRY_PIDS:
            low = decode_pid(info.pid, bytes([0x00] * info.num_bytes))
            high = decode_pid(info.pid, bytes([0xFF] * info.num_bytes))
            assert info.min_value <= low <= info.max_value
            assert info.min_value <= high <= info.max_value


class TestDecodeFrame:
    def test_full_frame(self):
        snapshot = decode_frame(IDLE_PIDS)

        assert snapshot.rpm == 800.0
        assert snapshot.coolant_temp == 90.0
        assert snapshot.battery_voltage == 14.2
        assert snapshot.is_complete

    def test_missing_and_malformed_reads(self):
        raw = dict(IDLE_PIDS)
        raw[0x0D] = None
        raw[0x0C] = bytes([0x01])

        values, missing = decode_readings(raw)

        assert "vehicle_speed" in missing
        assert "rpm" in missing
        assert "coolant_temp" in values

        snapshot = decode_frame(raw)
        assert snapshot.rpm is None
        assert not snapshot.is_complete
        assert "rpm" not in snapshot.readings()


class TestDTCBytes:
    def test_bytes_to_dtc(self):
        assert bytes_to_dtc(0x04, 0x20) == "P0420"
        assert bytes_to_dtc(0x41, 0x23) == "C0123"
        assert bytes_to_dtc(0x81, 0x00) == "B0100"
        assert bytes_to_dtc(0xC1, 0x00) == "U0100"

    def test_empty_code_skipped(self):
        assert bytes_to_dtc(0x00, 0x00) is None
        assert parse_dtc_bytes([0x04, 0x20, 0x00, 0x00, 0x01, 0x71]) == ["P0420", "P0171"]


class TestDTCDecoder:
    def test_known_code(self, decoder):
        assert "Catalyst" in decoder.get_description("p0420")
        assert decoder.default_severity("P0420") == Severity.MEDIUM
        assert decoder.system_for("P0420") == HealthSystem.EXHAUST

    def test_unknown_code_defaults(self, decoder):
        assert decoder.get_description("P1234") == "Diagnostic Trouble Code: P1234"
        assert decoder.default_severity("P0302") == Severity.HIGH
        assert decoder.default_severity("P0399") == Severity.CRITICAL
        assert decoder.default_severity("C0999") == Severity.HIGH
        assert decoder.default_severity("B1999") == Severity.LOW

    def test_system_from_description_keywords(self, decoder):
        assert decoder.system_for("P1999", "Coolant pump control") == HealthSystem.COOLING
        assert decoder.system_for("P1999", "Transmission range sensor") == HealthSystem.TRANSMISSION

    def test_system_from_code_range(self, decoder):
        assert decoder.system_for("C1999", "Unknown") == HealthSystem.BRAKES
        assert decoder.system_for("U1999", "Unknown") == HealthSystem.ELECTRICAL
        assert decoder.system_for("P0217") == HealthSystem.COOLING

    def test_hints(self, decoder):
        hints = decoder.hints("P0171")
        assert "Vacuum leak" in " ".join(hints["causes"])

    def test_custom_codes_file(self, tmp_path):
        codes_file = tmp_path / "codes.json"
        codes_file.write_text('{"P1600": {"description": "Custom", "severity": "high", "system": "engine"}}')

        decoder = DTCDecoder(codes_file)

        assert decoder.get_description("P1600") == "Custom"
        assert decoder.default_severity("P1600") == Severity.HIGH

    def test_bad_codes_file_falls_back(self, tmp_path):
        codes_file = tmp_path / "codes.json"
        codes_file.write_text("not json")

        decoder = DTCDecoder(codes_file)

        assert decoder.is_known("P0420")
