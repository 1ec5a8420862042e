"""Tests for the adapter session state machine."""

import time
from threading import Event, Thread

import pytest

from gear_diagnostics.connection.manager import SessionStateMachine
from gear_diagnostics.errors import AdapterUnavailable
from gear_diagnostics.models.session import SessionStatus

from conftest import FakeAdapterDriver


class Recorder:
    """Collects state changes and signals when a status is reached."""

    def __init__(self):
        self.states = []
        self._events = {status: Event() for status in SessionStatus}

    def __call__(self, session):
        self.states.append(session.status)
        self._events[session.status].set()

    def wait(self, status, timeout=2.0):
        return self._events[status].wait(timeout)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def machine(fake_driver, recorder):
    machine = SessionStateMachine(fake_driver, interval_ms=5)
    machine.on_state_change(recorder)
    yield machine
    machine.disconnect()


class TestConnect:
    def test_connect_walks_through_states(self, machine, recorder):
        session = machine.connect()

        assert session.status == SessionStatus.CONNECTED
        assert session.adapter_name == "ELM327 v1.5"
        assert session.adapter_port == "/dev/ttyUSB0"
        assert session.protocol.startswith("ISO 15765-4")
        assert recorder.states == [SessionStatus.SCANNING, SessionStatus.CONNECTING, SessionStatus.CONNECTED]
        assert machine.sampler is not None and machine.sampler.is_running

    def test_connect_when_connected_is_noop(self, machine, recorder):
        machine.connect()
        sampler = machine.sampler

        machine.connect()

        assert len(recorder.states) == 3
        assert machine.sampler is sampler

    def test_no_adapter_found(self, fake_driver, machine, recorder):
        fake_driver.candidate = None

        session = machine.connect()

        assert session.status == SessionStatus.ERROR
        assert session.error_message == "No OBD2 adapter found"
        assert recorder.states == [SessionStatus.SCANNING, SessionStatus.ERROR]
        assert machine.sampler is None

    def test_handshake_failure(self, failing_driver, recorder):
        machine = SessionStateMachine(failing_driver)
        machine.on_state_change(recorder)

        session = machine.connect()

        assert session.status == SessionStatus.ERROR
        assert "ATZ" in session.error_message
        assert recorder.states[-2:] == [SessionStatus.CONNECTING, SessionStatus.ERROR]

    def test_retry_after_error(self, fake_driver, machine):
        fake_driver.candidate, candidate = None, fake_driver.candidate
        machine.connect()
        fake_driver.candidate = candidate

        session = machine.connect()

        assert session.status == SessionStatus.CONNECTED
        assert session.error_message is None

    def test_listener_errors_are_contained(self, machine):
        def broken(session):
            raise RuntimeError("listener bug")

        machine.on_state_change(broken)

        assert machine.connect().status == SessionStatus.CONNECTED


class TestDisconnect:
    def test_disconnect_stops_sampler(self, fake_driver, machine):
        machine.connect()
        sampler = machine.sampler

        session = machine.disconnect()

        assert session.status == SessionStatus.DISCONNECTED
        assert session.adapter_name is None
        assert not sampler.is_running
        assert fake_driver.disconnect_calls == 1

    def test_no_snapshots_after_disconnect(self, machine):
        received = []
        machine.connect()
        machine.subscribe(received.append)
        deadline = time.monotonic() + 2
        while not received and time.monotonic() < deadline:
            time.sleep(0.005)

        machine.disconnect()
        count = len(received)
        time.sleep(0.05)

        assert count > 0
        assert len(received) == count

    def test_disconnect_when_disconnected_is_noop(self, fake_driver, machine, recorder):
        machine.disconnect()

        assert recorder.states == []
        assert fake_driver.disconnect_calls == 0

    def test_disconnect_during_handshake(self, fake_driver, machine, recorder):
        fake_driver.connect_gate = Event()
        worker = Thread(target=machine.connect)
        worker.start()
        assert recorder.wait(SessionStatus.CONNECTING)

        machine.disconnect()
        fake_driver.connect_gate.set()
        worker.join(2)

        assert machine.status == SessionStatus.DISCONNECTED
        assert machine.sampler is None
        assert not fake_driver.connected


class TestFaults:
    def test_adapter_loss_moves_to_error(self, fake_driver, machine, recorder):
        machine.connect()
        fake_driver.disconnect_after = fake_driver.pid_reads + 20

        assert recorder.wait(SessionStatus.ERROR)
        assert machine.status == SessionStatus.ERROR
        assert machine.session.error_message == "Adapter stopped responding"
        assert machine.sampler is None

    def test_disconnect_from_error_skips_driver(self, fake_driver, machine, recorder):
        machine.connect()
        fake_driver.disconnect_after = fake_driver.pid_reads
        assert recorder.wait(SessionStatus.ERROR)
        deadline = time.monotonic() + 2
        while fake_driver.disconnect_calls == 0 and time.monotonic() < deadline:
            time.sleep(0.005)
        calls = fake_driver.disconnect_calls

        session = machine.disconnect()

        assert session.status == SessionStatus.DISCONNECTED
        assert fake_driver.disconnect_calls == calls

    def test_adapter_calls_require_connection(self, machine):
        with pytest.raises(AdapterUnavailable):
            machine.read_codes()
        with pytest.raises(AdapterUnavailable):
            machine.subscribe(lambda snapshot: None)

    def test_illegal_transition(self, machine):
        with pytest.raises(RuntimeError):
            machine._set_state(SessionStatus.CONNECTED)


class TestAdapterCalls:
    def test_read_and_clear_codes(self, fake_driver, machine):
        fake_driver.stored_codes = ["P0420"]
        fake_driver.pending_codes = ["P0171"]
        machine.connect()

        result = machine.read_codes()
        assert result.stored_codes == ["P0420"]
        assert result.total_codes == 2

        assert machine.clear_codes() is True
        assert machine.read_codes().total_codes == 0

    def test_context_manager(self, fake_driver):
        with SessionStateMachine(fake_driver, interval_ms=5) as machine:
            assert machine.status == SessionStatus.CONNECTED
        assert machine.status == SessionStatus.DISCONNECTED
