"""DTC decoder for interpreting diagnostic trouble codes."""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, List, Sequence

from ..models.dtc import Severity, normalize_dtc
from ..models.health import HealthSystem

logger = logging.getLogger(__name__)


class DTCDecoder:
    """Looks up descriptions, default severities and affected systems for codes."""

    def __init__(self, codes_file: Optional[Path] = None):
        """
        Initialize decoder with optional custom codes file.

        Args:
            codes_file: Path to JSON file with DTC codes database
        """
        self._codes_db: Dict[str, Dict] = {}

        if codes_file:
            self._load_codes(codes_file)
        else:
            self._codes_db = COMMON_DTC_CODES
            logger.debug("Using built-in DTC codes database")

    def _load_codes(self, filepath: Path) -> None:
        """Load codes from JSON file, falling back to the built-in table."""
        try:
            with open(filepath, 'r') as f:
                self._codes_db = json.load(f)
            logger.info(f"Loaded {len(self._codes_db)} DTC codes from {filepath}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load DTC codes from {filepath}: {e}")
            self._codes_db = COMMON_DTC_CODES

    def lookup(self, code: str) -> Optional[Dict]:
        """Raw database entry for a code, or None if it is not known."""
        return self._codes_db.get(normalize_dtc(code))

    def is_known(self, code: str) -> bool:
        return self.lookup(code) is not None

    def get_description(self, code: str) -> str:
        """Description for a code, or a generic one for unknown codes."""
        entry = self.lookup(code)
        if entry and entry.get("description"):
            return entry["description"]
        return f"Diagnostic Trouble Code: {normalize_dtc(code)}"

    def get_causes(self, code: str) -> List[str]:
        entry = self.lookup(code)
        return list(entry.get("causes", [])) if entry else []

    def get_symptoms(self, code: str) -> List[str]:
        entry = self.lookup(code)
        return list(entry.get("symptoms", [])) if entry else []

    def default_severity(self, code: str) -> Severity:
        """
        Severity for a freshly detected code.

        Known codes use the database value; unknown codes are classified
        by pattern.
        """
        entry = self.lookup(code)
        if entry and entry.get("severity"):
            try:
                return Severity(entry["severity"])
            except ValueError:
                logger.warning(f"Bad severity {entry['severity']!r} for {code} in codes database")
        return self._determine_severity(normalize_dtc(code))

    @staticmethod
    def _determine_severity(code: str) -> Severity:
        """Determine severity based on code patterns."""
        # Misfires, overheating, oil pressure
        critical_patterns = ["P030", "P0217", "P0218", "P0520", "P0521", "P0522", "P0523"]
        if any(code.startswith(p) for p in critical_patterns):
            return Severity.CRITICAL

        # ABS and brake system faults
        if code.startswith("C0"):
            return Severity.HIGH

        # Fuel/air metering, ignition, emissions, transmission
        medium_patterns = ["P01", "P02", "P03", "P04", "P07", "P08", "P09", "U0"]
        if any(code.startswith(p) for p in medium_patterns):
            return Severity.MEDIUM

        return Severity.LOW

    def system_for(self, code: str, description: str = "") -> HealthSystem:
        """
        Vehicle system a code belongs to.

        The database entry wins; otherwise description keywords, then the
        SAE code range decide.
        """
        code = normalize_dtc(code)
        entry = self.lookup(code)
        if entry and entry.get("system"):
            return HealthSystem(entry["system"])

        text = (description or (entry or {}).get("description", "")).lower()
        for keywords, system in _KEYWORD_SYSTEMS:
            if any(word in text for word in keywords):
                return system

        return _system_from_range(code)

    def hints(self, code: str) -> Dict[str, List[str]]:
        """Known causes and symptoms, passed to the oracle as context."""
        return {"causes": self.get_causes(code), "symptoms": self.get_symptoms(code)}

    def search(self, query: str) -> List[str]:
        """Codes whose code or description contains the query."""
        query = query.lower()
        return [
            code for code, data in self._codes_db.items()
            if query in code.lower() or query in data.get("description", "").lower()
        ]


def bytes_to_dtc(byte1: int, byte2: int) -> Optional[str]:
    """Convert the two bytes of an encoded DTC to its string form."""
    # Skip empty codes (0x0000)
    if byte1 == 0 and byte2 == 0:
        return None

    # First two bits of byte1 determine the category
    category = "PCBU"[(byte1 >> 6) & 0x03]

    # Remaining bits form the code number
    code_num = ((byte1 & 0x3F) << 8) | byte2

    return f"{category}{code_num:04X}"


def parse_dtc_bytes(data: Sequence[int]) -> List[str]:
    """Split a Mode 03/07 payload into codes, two bytes per code."""
    codes = []
    for i in range(0, len(data) - 1, 2):
        code = bytes_to_dtc(data[i], data[i + 1])
        if code and code not in codes:
            codes.append(code)
    return codes


# Checked in order; the first match wins.
_KEYWORD_SYSTEMS = [
    (("coolant", "thermostat", "radiator", "overheat", "cooling fan"), HealthSystem.COOLING),
    (("transmission", "gear ratio", "torque converter", "shift"), HealthSystem.TRANSMISSION),
    (("brake", "abs "), HealthSystem.BRAKES),
    (("suspension", "steering", "ride height"), HealthSystem.SUSPENSION),
    (("evap", "fuel"), HealthSystem.FUEL),
    (("catalyst", "exhaust", "egr", "secondary air"), HealthSystem.EXHAUST),
    (("battery", "charging", "alternator", "voltage"), HealthSystem.ELECTRICAL),
]

_COOLANT_CODES = {"P0115", "P0116", "P0117", "P0118", "P0119",
                  "P0125", "P0126", "P0127", "P0128", "P0217"}


def _system_from_range(code: str) -> HealthSystem:
    """Map a code to a system by its SAE range."""
    if code in _COOLANT_CODES:
        return HealthSystem.COOLING

    prefix = code[0] if code else "P"
    if prefix == "C":
        return HealthSystem.BRAKES
    if prefix in ("B", "U"):
        return HealthSystem.ELECTRICAL

    subsystem = code[2] if len(code) >= 3 else ""
    if code.startswith(("P044", "P045")):
        return HealthSystem.FUEL
    if subsystem in ("1", "2"):
        return HealthSystem.FUEL
    if subsystem in ("3", "5"):
        return HealthSystem.ENGINE
    if subsystem == "4":
        return HealthSystem.EXHAUST
    if subsystem == "6":
        return HealthSystem.ELECTRICAL
    if subsystem in ("7", "8", "9"):
        return HealthSystem.TRANSMISSION
    return HealthSystem.ENGINE


# Built-in common DTC codes database
COMMON_DTC_CODES = {
    # Misfires
    "P0300": {
        "description": "Random/Multiple Cylinder Misfire Detected",
        "severity": "critical",
        "system": "engine",
        "causes": ["Worn spark plugs", "Faulty ignition coil", "Vacuum leak", "Low compression", "Low fuel pressure"],
        "symptoms": ["Engine shaking", "Poor acceleration", "Check engine light flashing", "Rough idle"],
    },
    "P0301": {
        "description": "Cylinder 1 Misfire Detected",
        "severity": "high",
        "causes": ["Faulty spark plug cylinder 1", "Ignition coil failure", "Fuel injector issue", "Compression loss"],
        "symptoms": ["Rough idle", "Engine vibration", "Power loss"],
    },
    "P0302": {"description": "Cylinder 2 Misfire Detected", "severity": "high", "causes": ["Faulty spark plug", "Ignition coil"], "symptoms": ["Rough idle"]},
    "P0303": {"description": "Cylinder 3 Misfire Detected", "severity": "high", "causes": ["Faulty spark plug", "Ignition coil"], "symptoms": ["Rough idle"]},
    "P0304": {"description": "Cylinder 4 Misfire Detected", "severity": "high", "causes": ["Faulty spark plug", "Ignition coil"], "symptoms": ["Rough idle"]},
    "P0305": {"description": "Cylinder 5 Misfire Detected", "severity": "high", "causes": ["Faulty spark plug", "Ignition coil"], "symptoms": ["Rough idle"]},
    "P0306": {"description": "Cylinder 6 Misfire Detected", "severity": "high", "causes": ["Faulty spark plug", "Ignition coil"], "symptoms": ["Rough idle"]},

    # Fuel System
    "P0171": {
        "description": "System Too Lean (Bank 1)",
        "severity": "medium",
        "system": "fuel",
        "causes": ["Vacuum leak", "Dirty or faulty MAF sensor", "Fuel pump weak pressure", "Clogged fuel filter"],
        "symptoms": ["Check engine light", "Rough idle", "Lack of power", "Hesitation on acceleration"],
    },
    "P0172": {
        "description": "System Too Rich (Bank 1)",
        "severity": "medium",
        "system": "fuel",
        "causes": ["Faulty O2 sensor", "Leaking fuel injector", "High fuel pressure", "Faulty MAF sensor"],
        "symptoms": ["Black smoke from exhaust", "Poor fuel economy", "Rough idle"],
    },
    "P0174": {"description": "System Too Lean (Bank 2)", "severity": "medium", "system": "fuel", "causes": ["Vacuum leak", "MAF sensor"], "symptoms": ["Poor fuel economy"]},
    "P0175": {"description": "System Too Rich (Bank 2)", "severity": "medium", "system": "fuel", "causes": ["O2 sensor", "Fuel injector"], "symptoms": ["Black smoke"]},

    # O2 Sensors
    "P0130": {"description": "O2 Sensor Circuit (Bank 1 Sensor 1)", "severity": "medium", "system": "exhaust", "causes": ["Faulty O2 sensor", "Wiring issue"], "symptoms": ["Poor fuel economy"]},
    "P0133": {"description": "O2 Sensor Slow Response (Bank 1 Sensor 1)", "severity": "low", "system": "exhaust", "causes": ["Aging sensor", "Contamination"], "symptoms": ["Poor fuel economy"]},
    "P0135": {"description": "O2 Sensor Heater Circuit (Bank 1 Sensor 1)", "severity": "low", "system": "exhaust", "causes": ["Heater element failed", "Wiring"], "symptoms": ["Slow warmup"]},

    # Catalyst
    "P0420": {
        "description": "Catalyst System Efficiency Below Threshold (Bank 1)",
        "severity": "medium",
        "system": "exhaust",
        "causes": ["Faulty catalytic converter", "Exhaust leak", "Faulty oxygen sensor", "Engine misfire"],
        "symptoms": ["Check engine light", "Reduced fuel efficiency", "Sulfur smell from exhaust"],
    },
    "P0430": {"description": "Catalyst System Efficiency Below Threshold (Bank 2)", "severity": "medium", "system": "exhaust", "causes": ["Worn catalytic converter"], "symptoms": ["Check engine light"]},

    # EVAP System
    "P0440": {"description": "EVAP System Malfunction", "severity": "low", "causes": ["Loose gas cap", "EVAP leak"], "symptoms": ["Check engine light"]},
    "P0442": {"description": "EVAP Small Leak Detected", "severity": "low", "causes": ["Small leak in EVAP system", "Gas cap"], "symptoms": ["Check engine light"]},
    "P0455": {"description": "EVAP Large Leak Detected", "severity": "medium", "causes": ["Missing gas cap", "Large EVAP leak"], "symptoms": ["Check engine light", "Fuel smell"]},

    # EGR
    "P0401": {"description": "EGR Insufficient Flow", "severity": "medium", "causes": ["Carbon buildup", "EGR valve stuck closed"], "symptoms": ["Knocking on acceleration"]},

    # MAF Sensor
    "P0101": {"description": "MAF Sensor Range/Performance", "severity": "medium", "system": "fuel", "causes": ["Dirty MAF sensor", "Air leak"], "symptoms": ["Rough idle", "Hesitation"]},

    # Coolant Temperature
    "P0116": {"description": "ECT Sensor Range/Performance", "severity": "medium", "causes": ["Thermostat stuck", "Sensor issue"], "symptoms": ["Poor fuel economy"]},
    "P0128": {"description": "Coolant Thermostat Below Regulating Temperature", "severity": "low", "causes": ["Thermostat stuck open", "Faulty ECT sensor"], "symptoms": ["Slow warmup", "Poor heater output"]},
    "P0217": {"description": "Engine Overheat Condition", "severity": "critical", "causes": ["Low coolant", "Failed water pump", "Stuck thermostat", "Cooling fan failure"], "symptoms": ["High temperature gauge", "Steam from engine bay"]},

    # Oil pressure
    "P0520": {"description": "Engine Oil Pressure Sensor/Switch Circuit", "severity": "critical", "system": "engine", "causes": ["Low oil level", "Faulty sensor", "Worn oil pump"], "symptoms": ["Oil pressure warning light", "Engine noise"]},

    # Crankshaft/Camshaft
    "P0335": {"description": "Crankshaft Position Sensor Circuit", "severity": "critical", "system": "engine", "causes": ["Faulty sensor", "Wiring", "Timing issue"], "symptoms": ["No start", "Stalling"]},
    "P0340": {"description": "Camshaft Position Sensor Circuit", "severity": "high", "system": "engine", "causes": ["Faulty sensor", "Wiring"], "symptoms": ["No start", "Rough idle"]},

    # Charging
    "P0562": {"description": "System Voltage Low", "severity": "medium", "system": "electrical", "causes": ["Failing alternator", "Weak battery", "Corroded terminals"], "symptoms": ["Dim lights", "Hard starting"]},

    # Transmission
    "P0700": {"description": "Transmission Control System Malfunction", "severity": "medium", "causes": ["TCM issue", "Wiring"], "symptoms": ["Transmission problems"]},
    "P0730": {"description": "Incorrect Gear Ratio", "severity": "high", "causes": ["Worn clutches", "Low fluid", "Valve body"], "symptoms": ["Slipping", "Harsh shifts"]},
    "P0741": {"description": "Torque Converter Clutch Solenoid Performance", "severity": "medium", "causes": ["Solenoid failure", "Wiring"], "symptoms": ["Poor fuel economy", "Shudder"]},

    # Chassis
    "C0035": {"description": "Left Front Wheel Speed Sensor Circuit", "severity": "high", "system": "brakes", "causes": ["Damaged wheel speed sensor", "Wiring", "Debris on tone ring"], "symptoms": ["ABS light on", "Traction control disabled"]},
    "C0040": {"description": "Right Front Wheel Speed Sensor Circuit", "severity": "high", "system": "brakes", "causes": ["Damaged wheel speed sensor", "Wiring"], "symptoms": ["ABS light on"]},
    "C0265": {"description": "EBCM Motor Relay Circuit", "severity": "high", "system": "brakes", "causes": ["Failed ABS module relay", "Wiring"], "symptoms": ["ABS light on", "Brake warning light"]},
    "C0550": {"description": "Electronic Suspension Control Module Malfunction", "severity": "medium", "system": "suspension", "causes": ["Suspension module fault"], "symptoms": ["Ride quality change", "Suspension warning"]},

    # Body / network
    "B0001": {"description": "Driver Frontal Stage 1 Deployment Control", "severity": "high", "system": "electrical", "causes": ["Airbag circuit fault", "Clockspring"], "symptoms": ["Airbag light on"]},
    "U0100": {"description": "Lost Communication With ECM/PCM", "severity": "high", "system": "electrical", "causes": ["CAN bus wiring", "ECM power or ground fault"], "symptoms": ["Multiple warning lights", "Stalling"]},
}
