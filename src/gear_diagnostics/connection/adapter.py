"""OBD2 adapter capability and serial adapter detection."""

from abc import ABC, abstractmethod
from typing import Optional, List
from dataclasses import dataclass
from enum import Enum

import serial.tools.list_ports

from ..models.dtc import DTCReadResult


class AdapterType(str, Enum):
    """Type of OBD2 adapter."""
    USB_ELM327 = "USB ELM327"
    BLUETOOTH_ELM327 = "Bluetooth ELM327"
    WIFI_ELM327 = "WiFi ELM327"
    UNKNOWN = "Unknown"


@dataclass
class AdapterCandidate:
    """An adapter found during discovery."""
    port: str
    description: str
    adapter_type: AdapterType
    hwid: str = ""
    manufacturer: str = ""
    vid: Optional[int] = None
    pid: Optional[int] = None

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        return f"{self.adapter_type.value} on {self.port}"

    def __str__(self) -> str:
        return self.display_name


@dataclass
class AdapterConnection:
    """Result of a successful adapter handshake."""
    protocol: str
    adapter_name: str


class AdapterDriver(ABC):
    """
    Capability the engine needs from an OBD-II adapter.

    Implementations raise ``AdapterUnavailable`` from ``connect`` when the
    handshake fails and ``AdapterDisconnected`` from any read once the link
    has dropped. A single PID the vehicle does not answer is reported as
    ``None``, not as an error.
    """

    @abstractmethod
    def discover(self) -> Optional[AdapterCandidate]:
        """Find the adapter to connect to, or None if there is none."""

    @abstractmethod
    def connect(self, candidate: AdapterCandidate) -> AdapterConnection:
        """Open the link and negotiate a protocol."""

    @abstractmethod
    def read_pid(self, pid: int) -> Optional[bytes]:
        """Read one Mode 01 PID. Returns the data bytes or None."""

    @abstractmethod
    def read_codes(self) -> DTCReadResult:
        """Read stored (Mode 03) and pending (Mode 07) codes."""

    @abstractmethod
    def read_freeze_frame(self, pid: int) -> Optional[bytes]:
        """Read one Mode 02 PID from freeze frame 0."""

    @abstractmethod
    def clear_codes(self) -> bool:
        """Clear codes from ECU memory (Mode 04)."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the link. Safe to call when already closed."""


class AdapterDetector:
    """Detects and identifies OBD2 adapters on serial ports."""

    # Common USB VID/PID combinations for ELM327 adapters
    KNOWN_ELM327_IDS = [
        (0x0403, 0x6001),  # FTDI FT232R (most common)
        (0x067B, 0x2303),  # Prolific PL2303
        (0x10C4, 0xEA60),  # Silicon Labs CP210x
        (0x1A86, 0x7523),  # CH340
        (0x0403, 0x6015),  # FTDI FT231X
        (0x1A86, 0x5523),  # CH341
    ]

    # Keywords that indicate an ELM327 adapter
    ELM327_KEYWORDS = [
        "elm327", "elm 327", "obd", "obdii", "obd2", "obd-ii",
        "j1850", "iso9141", "kwp2000", "diagnostic"
    ]

    BLUETOOTH_PATTERNS = [
        "bluetooth", "rfcomm", "bthenum", "bth"
    ]

    SERIAL_KEYWORDS = [
        "usb", "serial", "uart", "ftdi", "prolific", "ch340",
        "cp210", "silicon labs", "converter"
    ]

    @classmethod
    def detect_all(cls) -> List[AdapterCandidate]:
        """Detect all potential OBD2 adapters."""
        adapters = []
        for port in serial.tools.list_ports.comports():
            adapter = cls._analyze_port(port)
            if adapter:
                adapters.append(adapter)
        return adapters

    @classmethod
    def find_best_adapter(cls) -> Optional[AdapterCandidate]:
        """Find the most likely OBD2 adapter, preferring USB over Bluetooth."""
        adapters = cls.detect_all()
        if not adapters:
            return None

        for preferred in (AdapterType.USB_ELM327, AdapterType.BLUETOOTH_ELM327):
            matches = [a for a in adapters if a.adapter_type == preferred]
            if matches:
                return matches[0]

        return adapters[0]

    @classmethod
    def get_port_by_name(cls, port_name: str) -> AdapterCandidate:
        """Candidate for an explicitly configured port, known or not."""
        for port in serial.tools.list_ports.comports():
            if port.device == port_name:
                return cls._analyze_port(port) or AdapterCandidate(
                    port=port_name,
                    description=port.description or "Unknown",
                    adapter_type=AdapterType.UNKNOWN,
                )

        # Ports such as socket:// URLs or rfcomm devices may not be listed
        return AdapterCandidate(port=port_name, description="Configured port", adapter_type=AdapterType.UNKNOWN)

    @classmethod
    def _analyze_port(cls, port) -> Optional[AdapterCandidate]:
        """Analyze a serial port to determine if it's an OBD2 adapter."""
        description = port.description or ""
        hwid = port.hwid or ""
        manufacturer = port.manufacturer or ""

        vid = getattr(port, 'vid', None)
        pid = getattr(port, 'pid', None)

        all_info = f"{description} {hwid} {manufacturer}".lower()

        is_known_elm327 = bool(vid and pid) and (vid, pid) in cls.KNOWN_ELM327_IDS
        has_elm327_keyword = any(kw in all_info for kw in cls.ELM327_KEYWORDS)
        is_bluetooth = any(pattern in all_info for pattern in cls.BLUETOOTH_PATTERNS)

        if is_bluetooth:
            adapter_type = AdapterType.BLUETOOTH_ELM327
        elif is_known_elm327 or has_elm327_keyword or cls._is_likely_serial_adapter(description, manufacturer):
            adapter_type = AdapterType.USB_ELM327
        else:
            return None

        return AdapterCandidate(
            port=port.device,
            description=description,
            adapter_type=adapter_type,
            hwid=hwid,
            manufacturer=manufacturer,
            vid=vid,
            pid=pid,
        )

    @classmethod
    def _is_likely_serial_adapter(cls, description: str, manufacturer: str) -> bool:
        """Check if port is likely a USB-to-serial adapter."""
        text = f"{description} {manufacturer}".lower()
        return any(kw in text for kw in cls.SERIAL_KEYWORDS)
