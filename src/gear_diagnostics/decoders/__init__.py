"""Decoders for OBD2 data interpretation."""

from .dtc import DTCDecoder, bytes_to_dtc, parse_dtc_bytes
from .pid import decode_pid, decode_frame, decode_readings, PIDDecodeError

__all__ = [
    "DTCDecoder",
    "bytes_to_dtc",
    "parse_dtc_bytes",
    "decode_pid",
    "decode_frame",
    "decode_readings",
    "PIDDecodeError",
]
