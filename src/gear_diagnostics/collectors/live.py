"""Telemetry sampler for real-time monitoring."""

import time
import logging
from typing import TYPE_CHECKING, List, Dict, Optional, Callable
from threading import Thread, Event, RLock, current_thread
from datetime import datetime

from ..decoders.pid import decode_frame
from ..errors import AdapterDisconnected
from ..models.telemetry import TelemetrySnapshot, TELEMETRY_PIDS

if TYPE_CHECKING:
    from ..connection.adapter import AdapterDriver

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[TelemetrySnapshot], None]


class Subscription:
    """Handle for one telemetry subscriber. ``close()`` is idempotent."""

    def __init__(self, sampler: "TelemetrySampler", callback: SnapshotCallback):
        self._sampler = sampler
        self.callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop deliveries to this subscriber. No delivery happens after this returns."""
        self._sampler._unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TelemetrySampler:
    """Polls the adapter for the telemetry PID set and publishes snapshots."""

    def __init__(
        self,
        driver: "AdapterDriver",
        interval_ms: int = 250,
        on_fault: Optional[Callable[[AdapterDisconnected], None]] = None,
    ):
        """
        Initialize the sampler.

        Args:
            driver: Connected adapter driver to read PIDs from
            interval_ms: Polling interval in milliseconds
            on_fault: Called from the polling thread when the adapter disconnects
        """
        self._driver = driver
        self._interval = interval_ms / 1000.0
        self._on_fault = on_fault

        self._thread: Optional[Thread] = None
        self._stop_event = Event()
        self._running = False

        # Guards the subscriber list and every delivery
        self._lock = RLock()
        self._subscribers: List[Subscription] = []
        self._latest: Optional[TelemetrySnapshot] = None

        # Statistics
        self._sample_count = 0
        self._error_count = 0
        self._start_time: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def latest(self) -> Optional[TelemetrySnapshot]:
        """Most recently published snapshot."""
        return self._latest

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def samples_per_second(self) -> float:
        """Calculate current sampling rate."""
        if not self._start_time or self._sample_count == 0:
            return 0.0
        elapsed = (datetime.now() - self._start_time).total_seconds()
        return self._sample_count / elapsed if elapsed > 0 else 0.0

    def start(self, on_snapshot: Optional[SnapshotCallback] = None) -> Callable[[], None]:
        """
        Start the background polling thread.

        Args:
            on_snapshot: Optional subscriber registered before the first tick

        Returns:
            The ``stop`` function
        """
        if on_snapshot is not None:
            self.subscribe(on_snapshot)

        with self._lock:
            if self._running:
                logger.warning("Sampler already running")
                return self.stop

            self._stop_event = Event()
            self._running = True
            self._sample_count = 0
            self._error_count = 0
            self._start_time = datetime.now()

            self._thread = Thread(target=self._sample_loop, args=(self._stop_event,),
                                  name="telemetry-sampler", daemon=True)
            self._thread.start()

        logger.info(f"Started sampling {len(TELEMETRY_PIDS)} PIDs at {1 / self._interval:.1f} Hz")
        return self.stop

    def stop(self) -> None:
        """
        Stop sampling. Idempotent.

        Blocks until the polling thread has exited, unless called from that
        thread. No snapshot is delivered after this returns.
        """
        with self._lock:
            if not self._running:
                return
            self._stop_event.set()
            self._running = False
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not current_thread():
            thread.join()

        logger.info(f"Stopped sampling. Collected {self._sample_count} samples.")

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        """Deliver every later snapshot to ``callback`` until the subscription is closed."""
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription._closed = True
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def sample_once(self) -> TelemetrySnapshot:
        """Read every telemetry PID once and decode the result."""
        raw: Dict[int, Optional[bytes]] = {}
        for info in TELEMETRY_PIDS:
            try:
                raw[info.pid] = self._driver.read_pid(info.pid)
            except AdapterDisconnected:
                raise
            except Exception as e:
                # One bad PID must not drop the whole sample
                logger.debug(f"Error reading {info.name}: {e}")
                self._error_count += 1
                raw[info.pid] = None
        return decode_frame(raw)

    def _sample_loop(self, stop_event: Event) -> None:
        """Background thread loop for continuous sampling."""
        while not stop_event.is_set():
            tick_start = time.monotonic()

            try:
                snapshot = self.sample_once()
            except AdapterDisconnected as e:
                logger.error(f"Adapter disconnected while sampling: {e.message}")
                self._error_count += 1
                self.stop()
                if self._on_fault:
                    self._on_fault(e)
                return

            self._publish(snapshot, stop_event)

            elapsed = time.monotonic() - tick_start
            stop_event.wait(max(0.0, self._interval - elapsed))

    def _publish(self, snapshot: TelemetrySnapshot, stop_event: Event) -> None:
        with self._lock:
            # A tick read before stop() is dropped here
            if stop_event.is_set():
                return

            self._latest = snapshot
            self._sample_count += 1

            for subscription in list(self._subscribers):
                if subscription.closed:
                    continue
                try:
                    subscription.callback(snapshot)
                except Exception as e:
                    logger.error(f"Subscriber callback error: {e}")

    def get_statistics(self) -> Dict:
        """Get sampling statistics."""
        return {
            "is_running": self._running,
            "sample_count": self._sample_count,
            "error_count": self._error_count,
            "samples_per_second": self.samples_per_second,
            "subscribers": len(self._subscribers),
            "interval_ms": self._interval * 1000,
        }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
