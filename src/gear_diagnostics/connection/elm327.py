"""AdapterDriver backed by python-OBD for ELM327 serial adapters."""

import logging
from threading import Lock
from typing import Optional, List

import obd
from obd import OBDCommand, OBDStatus

from .adapter import AdapterDriver, AdapterCandidate, AdapterConnection, AdapterDetector
from ..decoders.dtc import parse_dtc_bytes
from ..errors import AdapterUnavailable, AdapterDisconnected
from ..models.dtc import DTCReadResult

logger = logging.getLogger(__name__)


def _raw_data(skip: int):
    """python-OBD decoder returning the data bytes after ``skip`` header bytes."""
    def decoder(messages):
        if not messages:
            return None
        return bytes(messages[0].data[skip:])
    return decoder


def _pending_dtc_decoder(messages) -> List[str]:
    """Decode a Mode 07 response into code strings."""
    codes: List[str] = []
    for msg in messages:
        # Drop the 0x47 response byte. CAN responses also carry a count byte.
        payload = list(msg.data[1:])
        if len(payload) % 2 == 1:
            payload = payload[1:]
        for code in parse_dtc_bytes(payload):
            if code not in codes:
                codes.append(code)
    return codes


PENDING_DTC = OBDCommand(
    "PENDING_DTC",
    "Pending DTCs",
    b"07",
    0,
    _pending_dtc_decoder,
    fast=True,
)


def _mode01_command(pid: int) -> OBDCommand:
    return OBDCommand(f"RAW_01{pid:02X}", f"Raw Mode 01 PID {pid:02X}", f"01{pid:02X}".encode(), 0, _raw_data(2), fast=True)


def _mode02_command(pid: int) -> OBDCommand:
    # Frame number 00 follows the PID
    return OBDCommand(f"RAW_02{pid:02X}", f"Raw freeze frame PID {pid:02X}", f"02{pid:02X}00".encode(), 0, _raw_data(3), fast=True)


class ObdAdapterDriver(AdapterDriver):
    """Talks to an ELM327 adapter through python-OBD."""

    def __init__(
        self,
        port: Optional[str] = None,
        baudrate: Optional[int] = None,
        protocol: Optional[str] = None,
        fast: bool = True,
        timeout: float = 3.0,
    ):
        """
        Args:
            port: Serial port name (auto-detect if None)
            baudrate: Baud rate for serial connection (auto-detect if None)
            protocol: Force specific OBD protocol (auto-detect if None)
            fast: Use fast OBD queries
            timeout: Per-query timeout in seconds
        """
        self._port = port
        self._baudrate = baudrate
        self._protocol = protocol
        self._fast = fast
        self._timeout = timeout

        self._connection: Optional[obd.OBD] = None
        self._commands = {}
        # The ELM327 link carries one request and one reply at a time
        self._io_lock = Lock()

    @property
    def connection(self) -> Optional[obd.OBD]:
        return self._connection

    def discover(self) -> Optional[AdapterCandidate]:
        if self._port:
            return AdapterDetector.get_port_by_name(self._port)

        adapter = AdapterDetector.find_best_adapter()
        if adapter:
            logger.info(f"Auto-detected adapter: {adapter}")
        return adapter

    def connect(self, candidate: AdapterCandidate) -> AdapterConnection:
        if self._connection:
            self.disconnect()

        logger.info(f"Connecting to {candidate.port}...")
        try:
            connection = obd.OBD(
                portstr=candidate.port,
                baudrate=self._baudrate,
                protocol=self._protocol,
                fast=self._fast,
                timeout=self._timeout,
            )
        except Exception as e:
            # python-OBD wraps pyserial; its failures are not typed
            logger.error(f"Connection error: {e}")
            raise AdapterUnavailable(f"Could not open {candidate.port}: {e}") from e

        status = connection.status()
        if status != OBDStatus.CAR_CONNECTED:
            connection.close()
            if status == OBDStatus.OBD_CONNECTED:
                message = "Adapter responded but the vehicle did not (ignition may be off)"
            else:
                message = f"Failed to establish connection (status: {status})"
            raise AdapterUnavailable(message, {"port": candidate.port, "status": str(status)})

        self._connection = connection
        return AdapterConnection(
            protocol=connection.protocol_name() or "Unknown",
            adapter_name=candidate.display_name,
        )

    def _query(self, command: OBDCommand):
        """
        Run a command, raising AdapterDisconnected once the link is gone.

        Serialized so sampler ticks and code reads from other threads never
        interleave on the serial link.
        """
        with self._io_lock:
            return self._query_locked(command)

    def _query_locked(self, command: OBDCommand):
        if self._connection is None or self._connection.status() == OBDStatus.NOT_CONNECTED:
            raise AdapterDisconnected("Adapter is not connected")

        try:
            response = self._connection.query(command, force=True)
        except Exception as e:
            logger.error(f"Query error for {command.name}: {e}")
            raise AdapterDisconnected(f"Adapter I/O failed: {e}") from e

        if self._connection.status() == OBDStatus.NOT_CONNECTED:
            raise AdapterDisconnected("Adapter connection lost")
        return response

    def _command(self, key: str, factory, pid: int) -> OBDCommand:
        if key not in self._commands:
            self._commands[key] = factory(pid)
        return self._commands[key]

    def read_pid(self, pid: int) -> Optional[bytes]:
        response = self._query(self._command(f"01{pid:02X}", _mode01_command, pid))
        if response.is_null():
            return None
        return response.value

    def read_freeze_frame(self, pid: int) -> Optional[bytes]:
        response = self._query(self._command(f"02{pid:02X}", _mode02_command, pid))
        if response.is_null():
            return None
        return response.value

    def read_codes(self) -> DTCReadResult:
        stored = self._query(obd.commands.GET_DTC)
        stored_codes = [] if stored.is_null() else [code for code, _ in stored.value]

        pending = self._query(PENDING_DTC)
        pending_codes = [] if pending.is_null() else list(pending.value)

        return DTCReadResult(stored_codes=stored_codes, pending_codes=pending_codes)

    def clear_codes(self) -> bool:
        response = self._query(obd.commands.CLEAR_DTC)
        if response.is_null():
            logger.warning("No response from clear DTC command")
            return False

        logger.info("DTCs cleared successfully")
        return True

    def disconnect(self) -> None:
        if self._connection:
            try:
                self._connection.close()
            except Exception as e:
                logger.warning(f"Error closing connection: {e}")
            finally:
                self._connection = None
        logger.info("Disconnected from OBD2 adapter")
