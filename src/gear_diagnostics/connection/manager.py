"""Session state machine for OBD2 adapter connections."""

import logging
from typing import Optional, List, Callable, Dict, Set
from datetime import datetime
from threading import RLock

from .adapter import AdapterDriver
from ..collectors.live import TelemetrySampler, Subscription, SnapshotCallback
from ..errors import AdapterUnavailable, AdapterDisconnected
from ..models.dtc import DTCReadResult
from ..models.session import Session, SessionStatus

logger = logging.getLogger(__name__)

StateListener = Callable[[Session], None]
SamplerFactory = Callable[[AdapterDriver, Callable[[AdapterDisconnected], None]], TelemetrySampler]

_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.DISCONNECTED: {SessionStatus.SCANNING},
    SessionStatus.SCANNING: {SessionStatus.CONNECTING, SessionStatus.ERROR, SessionStatus.DISCONNECTED},
    SessionStatus.CONNECTING: {SessionStatus.CONNECTED, SessionStatus.ERROR, SessionStatus.DISCONNECTED},
    SessionStatus.CONNECTED: {SessionStatus.DISCONNECTED, SessionStatus.ERROR},
    SessionStatus.ERROR: {SessionStatus.SCANNING, SessionStatus.DISCONNECTED},
}


class SessionStateMachine:
    """
    Owns the adapter connection lifecycle.

    States move disconnected -> scanning -> connecting -> connected, with
    error reachable from scanning, connecting and connected. Exactly one
    telemetry sampler runs while connected. Adapter calls made through the
    machine turn an ``AdapterDisconnected`` into the error transition.
    """

    def __init__(
        self,
        driver: AdapterDriver,
        interval_ms: int = 250,
        sampler_factory: Optional[SamplerFactory] = None,
    ):
        self._driver = driver
        self._interval_ms = interval_ms
        self._sampler_factory = sampler_factory or self._default_sampler

        self._lock = RLock()
        self._session = Session()
        self._sampler: Optional[TelemetrySampler] = None
        self._connecting = False
        self._cancel_connect = False
        self._listeners: List[StateListener] = []

    def _default_sampler(self, driver: AdapterDriver, on_fault) -> TelemetrySampler:
        return TelemetrySampler(driver, interval_ms=self._interval_ms, on_fault=on_fault)

    @property
    def session(self) -> Session:
        """Copy of the current session."""
        with self._lock:
            return self._session.model_copy()

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def sampler(self) -> Optional[TelemetrySampler]:
        return self._sampler

    def on_state_change(self, callback: StateListener) -> None:
        """Register a listener called with a session copy after every transition."""
        with self._lock:
            self._listeners.append(callback)

    def _set_state(self, status: SessionStatus, **fields) -> None:
        """Apply a transition and notify listeners. Caller holds the lock."""
        current = self._session.status
        if status not in _TRANSITIONS[current]:
            raise RuntimeError(f"Illegal session transition {current.value} -> {status.value}")

        self._session = self._session.model_copy(update={"status": status, **fields})
        logger.debug(f"Session {current.value} -> {status.value}")

        snapshot = self._session.model_copy()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"State change callback error: {e}")

    def connect(self) -> Session:
        """
        Discover an adapter and connect to it.

        A no-op returning the current session when already connected or when
        another connect is in flight. Failures end in the error state; they
        are not retried.
        """
        with self._lock:
            if self._connecting or self._session.status == SessionStatus.CONNECTED:
                return self._session.model_copy()
            self._connecting = True
            self._cancel_connect = False
            self._set_state(SessionStatus.SCANNING)

        try:
            return self._run_connect()
        finally:
            with self._lock:
                self._connecting = False

    def _run_connect(self) -> Session:
        try:
            candidate = self._driver.discover()
        except Exception as e:
            logger.error(f"Adapter discovery failed: {e}")
            return self._fail(f"Adapter discovery failed: {e}")

        if candidate is None:
            return self._fail("No OBD2 adapter found")

        with self._lock:
            if self._cancel_connect:
                return self._session.model_copy()
            self._set_state(SessionStatus.CONNECTING, error_message=None)

        try:
            connection = self._driver.connect(candidate)
        except Exception as e:
            logger.error(f"Connection to {candidate.port} failed: {e}")
            return self._fail(getattr(e, "message", None) or str(e))

        with self._lock:
            if self._cancel_connect:
                # disconnect() arrived during the handshake
                self._driver.disconnect()
                return self._session.model_copy()

            sampler = self._sampler_factory(self._driver, lambda err: self._handle_fault(err, sampler))
            self._sampler = sampler
            self._set_state(
                SessionStatus.CONNECTED,
                adapter_name=connection.adapter_name,
                adapter_port=candidate.port,
                protocol=connection.protocol,
                connected_at=datetime.now(),
            )
            sampler.start()
            logger.info(f"Connected to {connection.adapter_name} via {connection.protocol}")
            return self._session.model_copy()

    def _fail(self, message: str) -> Session:
        with self._lock:
            if self._cancel_connect:
                return self._session.model_copy()
            self._set_state(SessionStatus.ERROR, error_message=message)
            return self._session.model_copy()

    def disconnect(self) -> Session:
        """
        Stop sampling, close the adapter and return to disconnected.

        Blocks until the sampler thread has exited. From the error state this
        only resets the session.
        """
        with self._lock:
            status = self._session.status
            if status == SessionStatus.DISCONNECTED:
                return self._session.model_copy()

            if status in (SessionStatus.SCANNING, SessionStatus.CONNECTING):
                self._cancel_connect = True

            sampler = self._sampler
            self._sampler = None

        # Outside the lock: the sampler thread may be waiting on it in a fault callback
        if sampler is not None:
            sampler.stop()

        if status != SessionStatus.ERROR:
            try:
                self._driver.disconnect()
            except Exception as e:
                logger.warning(f"Error closing adapter: {e}")

        with self._lock:
            if self._session.status != SessionStatus.DISCONNECTED:
                self._set_state(
                    SessionStatus.DISCONNECTED,
                    adapter_name=None,
                    adapter_port=None,
                    protocol=None,
                    error_message=None,
                    connected_at=None,
                )
            logger.info("Disconnected from OBD2 adapter")
            return self._session.model_copy()

    def _handle_fault(self, error: AdapterDisconnected, source: Optional[TelemetrySampler] = None) -> None:
        """Move a connected session to error after a hard adapter failure."""
        with self._lock:
            if self._session.status != SessionStatus.CONNECTED:
                return
            if source is not None and source is not self._sampler:
                return

            sampler = self._sampler
            self._sampler = None
            self._set_state(SessionStatus.ERROR, error_message=error.message)

        if sampler is not None:
            sampler.stop()

        try:
            self._driver.disconnect()
        except Exception as e:
            logger.warning(f"Error closing adapter after fault: {e}")

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        """Subscribe to the running session's telemetry."""
        with self._lock:
            if self._sampler is None:
                raise AdapterUnavailable("No connected session to subscribe to")
            return self._sampler.subscribe(callback)

    def _call_adapter(self, fn, *args):
        if self._session.status != SessionStatus.CONNECTED:
            raise AdapterUnavailable(f"Adapter is {self._session.status.value}, not connected")
        try:
            return fn(*args)
        except AdapterDisconnected as e:
            self._handle_fault(e)
            raise

    def read_codes(self) -> DTCReadResult:
        """Read stored and pending codes from the connected adapter."""
        return self._call_adapter(self._driver.read_codes)

    def read_freeze_frame(self, pid: int) -> Optional[bytes]:
        return self._call_adapter(self._driver.read_freeze_frame, pid)

    def clear_codes(self) -> bool:
        """Clear ECU code memory. Local code records are not touched."""
        return self._call_adapter(self._driver.clear_codes)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False
