"""PID decoder for turning raw Mode 01 response bytes into physical units."""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from ..models.telemetry import PIDInfo, TelemetrySnapshot, TELEMETRY_PIDS

logger = logging.getLogger(__name__)


# SAE J1979 formulas. A and B are the first and second data bytes.
PID_FORMULAS: Dict[int, Callable[[bytes], float]] = {
    0x04: lambda d: d[0] * 100.0 / 255.0,                 # engine load
    0x05: lambda d: d[0] - 40.0,                          # coolant temp
    0x06: lambda d: (d[0] - 128) * 100.0 / 128.0,         # short term fuel trim bank 1
    0x07: lambda d: (d[0] - 128) * 100.0 / 128.0,         # long term fuel trim bank 1
    0x0C: lambda d: ((d[0] << 8) + d[1]) / 4.0,           # rpm
    0x0D: lambda d: float(d[0]),                          # vehicle speed
    0x0E: lambda d: d[0] / 2.0 - 64.0,                    # timing advance
    0x0F: lambda d: d[0] - 40.0,                          # intake air temp
    0x10: lambda d: ((d[0] << 8) + d[1]) / 100.0,         # MAF
    0x11: lambda d: d[0] * 100.0 / 255.0,                 # throttle
    0x14: lambda d: d[0] / 200.0,                         # O2 voltage bank 1 sensor 1
    0x18: lambda d: d[0] / 200.0,                         # O2 voltage bank 2 sensor 1
    0x42: lambda d: ((d[0] << 8) + d[1]) / 1000.0,        # control module voltage
}

PIDS_BY_NUMBER: Dict[int, PIDInfo] = {info.pid: info for info in TELEMETRY_PIDS}


class PIDDecodeError(ValueError):
    """Raised when response bytes cannot be decoded for a PID."""


def decode_pid(pid: int, data: bytes) -> float:
    """
    Decode one PID value.

    Args:
        pid: Mode 01 PID number
        data: Data bytes of the response, without the mode and PID echo

    Returns:
        Value in the unit given by the PID table

    Raises:
        PIDDecodeError: Unknown PID or too few data bytes
    """
    formula = PID_FORMULAS.get(pid)
    info = PIDS_BY_NUMBER.get(pid)
    if formula is None or info is None:
        raise PIDDecodeError(f"Unsupported PID 0x{pid:02X}")

    payload = bytes(data)
    if len(payload) < info.num_bytes:
        raise PIDDecodeError(
            f"PID 0x{pid:02X} needs {info.num_bytes} bytes, got {len(payload)}"
        )

    return round(formula(payload[:info.num_bytes]), 4)


def decode_readings(raw: Mapping[int, Optional[bytes]]) -> Tuple[Dict[str, float], List[str]]:
    """
    Decode raw reads of the telemetry PIDs.

    Returns:
        Tuple of (values keyed by snapshot field, fields that could not be read)
    """
    values: Dict[str, float] = {}
    missing = []

    for info in TELEMETRY_PIDS:
        data = raw.get(info.pid)
        if data is None:
            missing.append(info.field)
            continue
        try:
            values[info.field] = decode_pid(info.pid, data)
        except PIDDecodeError as e:
            logger.debug(f"Dropping {info.name}: {e}")
            missing.append(info.field)

    return values, missing


def decode_frame(raw: Mapping[int, Optional[bytes]], timestamp: Optional[datetime] = None) -> TelemetrySnapshot:
    """Build a snapshot from raw reads of every telemetry PID."""
    values, missing = decode_readings(raw)
    return TelemetrySnapshot(**values, missing=missing, timestamp=timestamp or datetime.now())
