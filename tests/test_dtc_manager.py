"""Tests for DTC lifecycle management."""

import pytest
from unittest.mock import MagicMock

from gear_diagnostics.collectors.dtc import DTCManager, adapter_freeze_frame_fetcher
from gear_diagnostics.errors import AdapterDisconnected, NotFound, ValidationError
from gear_diagnostics.models.dtc import CodeFilter, CodeStatus, CodeType, DTCAnalysis, Severity

from conftest import IDLE_PIDS, analysis_response


@pytest.fixture
def manager(store, decoder, config, clock):
    return DTCManager(store, decoder, config, clock)


def by_code(codes):
    return {c.code: c for c in codes}


class TestIngestScan:
    def test_new_codes_become_active(self, manager):
        codes = manager.ingest_scan("veh-1", "user-1", ["P0420", "p0171 "], mileage=52000)

        assert len(codes) == 2
        for record in codes:
            assert record.status == CodeStatus.ACTIVE
            assert record.code_type == CodeType.POWERTRAIN
            assert record.code_type.label == "Powertrain"
            assert record.mileage_at_detection == 52000
            assert record.user_id == "user-1"

        records = by_code(codes)
        assert "Catalyst" in records["P0420"].description
        assert records["P0171"].severity == Severity.MEDIUM

    def test_rescan_keeps_single_record(self, manager):
        first = by_code(manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=52000))
        second = by_code(manager.ingest_scan("veh-1", "user-1", ["P0420", "P0420"], mileage=52010))

        assert len(second) == 1
        assert second["P0420"].diagnostic_id == first["P0420"].diagnostic_id
        assert second["P0420"].mileage_at_detection == 52000

    def test_rescan_refreshes_after_mileage_delta(self, manager, clock):
        first = manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=52000)[0]
        clock.advance(minutes=30)

        refreshed = manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=52150)[0]

        assert refreshed.diagnostic_id == first.diagnostic_id
        assert refreshed.mileage_at_detection == 52150
        assert refreshed.detected_at == clock.now

    def test_rescan_refreshes_after_interval(self, manager, clock):
        manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=52000)
        clock.advance(hours=2)

        refreshed = manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=52000)[0]

        assert refreshed.detected_at == clock.now

    def test_pending_code_promoted(self, manager):
        pending = manager.ingest_scan("veh-1", "user-1", [], pending_codes=["P0171"])[0]
        assert pending.status == CodeStatus.PENDING

        active = manager.ingest_scan("veh-1", "user-1", ["P0171"])[0]

        assert active.status == CodeStatus.ACTIVE
        assert active.diagnostic_id == pending.diagnostic_id

    def test_stored_wins_over_pending(self, manager):
        codes = manager.ingest_scan("veh-1", "user-1", ["P0420"], pending_codes=["P0420", "P0171"])

        records = by_code(codes)
        assert records["P0420"].status == CodeStatus.ACTIVE
        assert records["P0171"].status == CodeStatus.PENDING

    def test_pending_scan_does_not_demote_active(self, manager):
        manager.ingest_scan("veh-1", "user-1", ["P0420"])

        codes = manager.ingest_scan("veh-1", "user-1", [], pending_codes=["P0420"])

        assert codes[0].status == CodeStatus.ACTIVE

    def test_invalid_code_rejects_whole_batch(self, manager):
        with pytest.raises(ValidationError):
            manager.ingest_scan("veh-1", "user-1", ["P0420", "X9999"])

        assert manager.list_codes("veh-1") == []

    def test_negative_mileage_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.ingest_scan("veh-1", "user-1", ["P0420"], mileage=-1)

    def test_fetcher_failure_leaves_codes_untouched(self, manager):
        fetcher = MagicMock(side_effect=AdapterDisconnected("gone"))

        with pytest.raises(AdapterDisconnected):
            manager.ingest_scan("veh-1", "user-1", ["P0420"], freeze_frame_fetcher=fetcher)

        assert manager.list_codes("veh-1") == []

    def test_freeze_frame_for_stored_codes_only(self, manager):
        fetcher = MagicMock(return_value={"rpm": 800.0})

        codes = by_code(manager.ingest_scan("veh-1", "user-1", ["P0420"], freeze_frame_fetcher=fetcher,
                                            pending_codes=["P0171"]))

        fetcher.assert_called_once_with("P0420")
        assert codes["P0420"].freeze_frame == {"rpm": 800.0}
        assert codes["P0171"].freeze_frame is None

    def test_adapter_fetcher_reads_frame_once(self, manager):
        read_freeze_frame = MagicMock(side_effect=lambda pid: IDLE_PIDS.get(pid))
        fetcher = adapter_freeze_frame_fetcher(read_freeze_frame)

        codes = manager.ingest_scan("veh-1", "user-1", ["P0420", "P0171"], freeze_frame_fetcher=fetcher)

        assert read_freeze_frame.call_count == len(IDLE_PIDS)
        assert all(c.freeze_frame["rpm"] == 800.0 for c in codes)


class TestStatusChanges:
    def test_resolve(self, manager, clock):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        clock.advance(days=1)

        resolved = manager.resolve("veh-1", code.diagnostic_id)

        assert resolved.status == CodeStatus.RESOLVED
        assert resolved.cleared_at == clock.now

    def test_resolve_is_idempotent(self, manager, clock):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        first = manager.resolve("veh-1", code.diagnostic_id)
        clock.advance(days=1)

        second = manager.resolve("veh-1", code.diagnostic_id)

        assert second.status == CodeStatus.RESOLVED
        assert second.cleared_at == first.cleared_at

    def test_closed_code_keeps_status(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        manager.resolve("veh-1", code.diagnostic_id)

        record = manager.mark_false_positive("veh-1", code.diagnostic_id)

        assert record.status == CodeStatus.RESOLVED

    def test_false_positive(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", [], pending_codes=["P0171"])[0]

        record = manager.mark_false_positive("veh-1", code.diagnostic_id)

        assert record.status == CodeStatus.FALSE_POSITIVE

    def test_resolved_code_seen_again_gets_new_record(self, manager):
        old = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        manager.resolve("veh-1", old.diagnostic_id)

        codes = manager.ingest_scan("veh-1", "user-1", ["P0420"])

        assert len(codes) == 2
        new = [c for c in codes if c.is_open][0]
        assert new.diagnostic_id != old.diagnostic_id
        assert manager.get_code("veh-1", old.diagnostic_id).status == CodeStatus.RESOLVED

    def test_unknown_code_not_found(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]

        with pytest.raises(NotFound):
            manager.resolve("veh-1", "missing")
        with pytest.raises(NotFound):
            manager.resolve("veh-2", code.diagnostic_id)


class TestListing:
    def test_filters_and_order(self, manager, clock):
        older = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        clock.advance(hours=2)
        manager.ingest_scan("veh-1", "user-1", ["P0171"])
        manager.resolve("veh-1", older.diagnostic_id)

        all_codes = manager.list_codes("veh-1")
        active = manager.list_codes("veh-1", CodeFilter.ACTIVE)
        resolved = manager.list_codes("veh-1", CodeFilter.RESOLVED)

        assert [c.code for c in all_codes] == ["P0171", "P0420"]
        assert [c.code for c in active] == ["P0171"]
        assert [c.code for c in resolved] == ["P0420"]

    def test_returned_records_are_copies(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        code.description = "changed"

        assert manager.get_code("veh-1", code.diagnostic_id).description != "changed"


class TestAdapterAndAnalysis:
    def test_clear_adapter_codes_keeps_records(self, manager):
        manager.ingest_scan("veh-1", "user-1", ["P0420"])
        clear_fn = MagicMock(return_value=True)

        assert manager.clear_adapter_codes(clear_fn) is True

        clear_fn.assert_called_once()
        assert manager.list_codes("veh-1", CodeFilter.ACTIVE)[0].code == "P0420"

    def test_attach_analysis(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", ["P0420"])[0]
        analysis = DTCAnalysis.model_validate(analysis_response("P0420"))

        record = manager.attach_analysis("veh-1", code.diagnostic_id, analysis)

        assert record.ai_analysis.code == "P0420"
        assert manager.get_code("veh-1", code.diagnostic_id).ai_analysis is not None

    def test_attach_analysis_for_other_code_rejected(self, manager):
        code = manager.ingest_scan("veh-1", "user-1", ["P0171"])[0]
        analysis = DTCAnalysis.model_validate(analysis_response("P0420"))

        with pytest.raises(ValidationError):
            manager.attach_analysis("veh-1", code.diagnostic_id, analysis)
