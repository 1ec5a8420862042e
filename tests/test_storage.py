"""Tests for the diagnostic store, JSON history and repositories."""

import json
from threading import Thread

import pytest

from gear_diagnostics.errors import NotFound, ValidationError
from gear_diagnostics.models.dtc import CodeStatus, DiagnosticCode
from gear_diagnostics.models.health import VehicleHealthScore
from gear_diagnostics.models.symptom import SymptomCheck
from gear_diagnostics.storage.history import HistoryManager
from gear_diagnostics.storage.repository import InMemoryVehicleRepository, StaticComplianceSource
from gear_diagnostics.storage.store import DiagnosticStore


@pytest.fixture
def history(tmp_path):
    return HistoryManager(tmp_path)


class TestHistoryManager:
    def test_codes_round_trip(self, history):
        code = DiagnosticCode(vehicle_id="veh-1", code="P0420", freeze_frame={"rpm": 800.0})

        history.save_codes("veh-1", [code])
        loaded = history.load_codes("veh-1")

        assert loaded == [code]
        assert history.list_vehicles() == ["veh-1"]
        assert history.get_storage_size() > 0

    def test_unsafe_vehicle_id(self, history, tmp_path):
        history.save_codes("../evil/id", [])

        assert history.vehicle_dir("../evil/id").parent == tmp_path / "vehicles"

    def test_missing_file(self, history):
        assert history.load_health("nobody") == []

    def test_corrupt_file(self, history):
        directory = history.vehicle_dir("veh-1")
        directory.mkdir(parents=True)
        (directory / "codes.json").write_text("{not json")

        assert history.load_codes("veh-1") == []

    def test_bad_record_skipped(self, history):
        good = DiagnosticCode(vehicle_id="veh-1", code="P0420")
        history.save_codes("veh-1", [good])
        path = history.vehicle_dir("veh-1") / "codes.json"
        data = json.loads(path.read_text())
        data["records"].append({"vehicle_id": "veh-1", "code": "BAD"})
        path.write_text(json.dumps(data))

        assert [c.code for c in history.load_codes("veh-1")] == ["P0420"]


class TestDiagnosticStore:
    def test_write_through_and_reload(self, history):
        store = DiagnosticStore(history)
        code = DiagnosticCode(vehicle_id="veh-1", code="P0420")
        store.put_codes("veh-1", [code])
        store.add_health_score(VehicleHealthScore(vehicle_id="veh-1", overall_score=90))
        store.add_symptom_check(SymptomCheck(vehicle_id="veh-1", symptom_text="noise"))

        reloaded = DiagnosticStore(HistoryManager(history.data_dir))

        assert reloaded.get_code("veh-1", code.diagnostic_id) == code
        assert reloaded.latest_health_score("veh-1").overall_score == 90
        assert reloaded.symptom_checks("veh-1")[0].symptom_text == "noise"

    def test_put_codes_rejects_foreign_vehicle(self, store):
        with pytest.raises(ValueError):
            store.put_codes("veh-1", [DiagnosticCode(vehicle_id="veh-2", code="P0420")])

    def test_reads_are_copies(self, store):
        code = DiagnosticCode(vehicle_id="veh-1", code="P0420")
        store.put_codes("veh-1", [code])

        copy = store.get_code("veh-1", code.diagnostic_id)
        copy.status = CodeStatus.RESOLVED

        assert store.get_code("veh-1", code.diagnostic_id).status == CodeStatus.ACTIVE

    def test_concurrent_writers(self, store):
        def writer(n):
            for i in range(20):
                store.put_codes("veh-1", [DiagnosticCode(vehicle_id="veh-1", code=f"P{n}{i:03d}")])

        threads = [Thread(target=writer, args=(n,)) for n in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.get_codes("veh-1")) == 60


class TestRepositories:
    def test_vehicle_ownership(self, vehicle):
        repository = InMemoryVehicleRepository([vehicle])

        assert repository.get_vehicle("veh-1", "user-1").make == "Honda"
        with pytest.raises(NotFound):
            repository.get_vehicle("veh-1", "someone-else")
        with pytest.raises(NotFound):
            repository.get_vehicle("veh-9", "user-1")

    def test_update_mileage(self, vehicle):
        repository = InMemoryVehicleRepository([vehicle])

        assert repository.update_mileage("veh-1", "user-1", 53000).mileage == 53000
        with pytest.raises(ValidationError):
            repository.update_mileage("veh-1", "user-1", -1)

    def test_compliance(self):
        source = StaticComplianceSource(default=75.0)
        source.set("veh-1", 40.0)

        assert source.compliance_pct("veh-1") == 40.0
        assert source.compliance_pct("veh-2") == 75.0
        with pytest.raises(ValidationError):
            source.set("veh-1", 120.0)
