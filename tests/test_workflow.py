"""
Stage workflow tests - collection through batch creation, status machine and provenance.
"""

from unittest.mock import patch

import pytest

from herbtrace.core.errors import (
    CollectionNotFound,
    InvalidGeofence,
    InvalidStatusTransition,
    ProcessingNotFound,
    QualityGateFailed,
    QualityTestNotFound,
    SeasonalRestrictionViolation,
    YieldLimitExceeded,
)
from herbtrace.core.records import batch_key
from herbtrace.core.schema import (
    STATUS_COLLECTED,
    STATUS_MANUFACTURED,
    STATUS_PROCESSED,
    STATUS_QUALITY_FAILED,
    STATUS_QUALITY_PASSED,
)
from herbtrace.core.service import TraceabilityService
from herbtrace.util.logging import logger

from conftest import (
    COLLECTOR,
    attest_default_quality,
    create_default_batch,
    record_default_collection,
    run_full_chain,
    transfer_default_custody,
)


class TestRecordCollection:
    def test_records_event_with_caller_identity(self, service):
        event = record_default_collection(service)

        assert event.event_id.startswith("EVT_000001_")
        assert event.status == STATUS_COLLECTED
        assert event.collector_id == COLLECTOR.caller_id
        assert event.collector_org == COLLECTOR.org_tag
        assert '"type":"collection"' in event.qr_code
        assert service.get_collection_event(event.event_id) == event

    def test_zone_boundary_is_accepted(self, service):
        event = record_default_collection(service, latitude=26.9124, longitude=75.7873)
        assert event.latitude == 26.9124

    def test_outside_zones_rejected_without_writes(self, service):
        before = service.store.count()
        with pytest.raises(InvalidGeofence):
            record_default_collection(service, latitude=28.5, longitude=75.9)

        assert service.store.count() == before
        assert service.recent_events() == []

    def test_weight_over_cap_rejected(self, service):
        record_default_collection(service, weight=500.0)
        with pytest.raises(YieldLimitExceeded):
            record_default_collection(service, weight=500.5)

    def test_seasonal_window_enforced_when_enabled(self, store):
        service = TraceabilityService(
            store, seasonal_windows={"Ashwagandha": (10, 3)}, enforce_seasons=True
        )
        with pytest.raises(SeasonalRestrictionViolation):
            record_default_collection(service, timestamp="2024-06-15T08:00:00Z")

        event = record_default_collection(service, timestamp="2025-02-10T08:00:00Z")
        assert event.species == "Ashwagandha"

    def test_emits_collection_event(self, service):
        event = record_default_collection(service)
        events = service.recent_events()
        assert events[0]["name"] == "CollectionRecorded"
        assert events[0]["payload"]["event_id"] == event.event_id

    def test_unknown_collection_lookup(self, service):
        with pytest.raises(CollectionNotFound):
            service.get_collection_event("EVT_999999_deadbeef")


class TestQualityAttestation:
    def test_passing_results_update_collection(self, service):
        event = record_default_collection(service)
        attestation = attest_default_quality(service, event.event_id)

        assert attestation.passed is True
        assert attestation.event_id == event.event_id
        assert service.get_collection_event(event.event_id).status == STATUS_QUALITY_PASSED
        assert service.get_quality_test(attestation.test_id) == attestation

    def test_failing_gate_rejects_without_writes(self, service):
        event = record_default_collection(service)
        with pytest.raises(QualityGateFailed):
            attest_default_quality(service, event.event_id, microbial="Positive")

        assert service.get_collection_event(event.event_id).status == STATUS_COLLECTED
        assert service.store.count("QUALITY_") == 0

    def test_lab_can_fail_a_lot_within_thresholds(self, service):
        event = record_default_collection(service)
        attestation = attest_default_quality(service, event.event_id, passed=False)

        assert attestation.passed is False
        assert service.get_collection_event(event.event_id).status == STATUS_QUALITY_FAILED

    def test_failed_attestation_blocks_processing(self, service):
        event = record_default_collection(service)
        attestation = attest_default_quality(service, event.event_id, passed=False)

        with pytest.raises(QualityGateFailed):
            transfer_default_custody(service, attestation.test_id)
        assert service.store.count("PROCESSING_") == 0

    def test_second_attestation_rejected(self, service):
        event = record_default_collection(service)
        attest_default_quality(service, event.event_id)

        with pytest.raises(InvalidStatusTransition):
            attest_default_quality(service, event.event_id)
        assert service.store.count("QUALITY_") == 1

    def test_unknown_collection_rejected(self, service):
        with pytest.raises(CollectionNotFound):
            attest_default_quality(service, "EVT_999999_deadbeef")


class TestCustodyAndBatch:
    def test_processing_carries_forward_references(self, service):
        event = record_default_collection(service)
        attestation = attest_default_quality(service, event.event_id)
        processing = transfer_default_custody(service, attestation.test_id)

        assert processing.test_id == attestation.test_id
        assert processing.event_id == event.event_id
        assert processing.status == STATUS_PROCESSED
        assert service.get_processing_details(processing.process_id) == processing

    def test_unknown_test_rejected(self, service):
        with pytest.raises(QualityTestNotFound):
            transfer_default_custody(service, "TEST_999999_deadbeef")

    def test_unknown_process_rejected(self, service):
        with pytest.raises(ProcessingNotFound):
            create_default_batch(service, "PROC_999999_deadbeef")
        assert service.store.count("BATCH_") == 0

    def test_batch_embeds_provenance(self, service):
        collection, quality, processing, batch = run_full_chain(service)

        assert batch.status == STATUS_MANUFACTURED
        assert batch.process_id == processing.process_id
        chain = batch.provenance_chain
        assert chain.total_steps == 3
        assert chain.verified is True
        assert [s.stage for s in chain.steps] == ["Collection", "Quality Testing", "Processing"]
        assert [s.organization for s in chain.steps] == ["FarmersCoop", "LabsOrg", "ProcessorsOrg"]
        assert [s.timestamp for s in chain.steps] == [
            collection.timestamp, quality.test_date, processing.process_date
        ]
        assert [s.image_hash for s in chain.steps] == ["img-col", "img-qa", "img-proc"]
        assert [s.metadata_hash for s in chain.steps] == ["meta-col", "meta-qa", "meta-proc"]

    def test_only_collection_step_has_location(self, service):
        collection, _, _, batch = run_full_chain(service)
        steps = batch.provenance_chain.steps

        assert (steps[0].latitude, steps[0].longitude) == (collection.latitude, collection.longitude)
        assert all(s.latitude is None and s.longitude is None for s in steps[1:])

    def test_step_details_are_strings(self, service):
        _, _, _, batch = run_full_chain(service)
        collection_step, quality_step, processing_step = batch.provenance_chain.steps

        assert collection_step.details == {
            "species": "Ashwagandha", "weight": "100.0", "collector": "collector-001"
        }
        assert quality_step.details["passed"] == "true"
        assert quality_step.details["heavyMetals"] == "9.9"
        assert processing_step.details["processType"] == "Drying"
        assert processing_step.details["yield"] == "80.0"

    def test_stored_provenance_matches_returned_batch(self, service):
        _, _, _, batch = run_full_chain(service)

        assert service.get_provenance(batch.batch_id) == batch
        assert service.verify_provenance(batch.batch_id) == {
            "batch_id": batch.batch_id,
            "total_steps": 3,
            "snapshot_matches": True,
        }

    def test_altered_snapshot_detected(self, service):
        _, _, _, batch = run_full_chain(service)
        key = batch_key(batch.batch_id)
        with service.store.transaction() as tx:
            stored = tx.get(key)
            stored["provenance_chain"]["steps"][0]["details"]["weight"] = "10.0"
            tx.put(key, stored)

        assert service.verify_provenance(batch.batch_id)["snapshot_matches"] is False

    def test_events_follow_stage_order(self, service):
        run_full_chain(service)
        names = [e["name"] for e in reversed(service.recent_events())]
        assert names == ["CollectionRecorded", "QualityAttested", "CustodyTransferred", "BatchCreated"]

    def test_multiple_batches_from_one_processing_record(self, service):
        _, _, processing, first = run_full_chain(service)
        second = create_default_batch(service, processing.process_id)

        assert first.batch_id != second.batch_id
        assert service.health()["batches"] == 2


class TestRejectionLogging:
    def test_rejection_is_logged_and_reraised(self, service):
        with patch.object(logger, "log_rejection") as mock_log:
            with pytest.raises(InvalidGeofence):
                record_default_collection(service, latitude=0.0, longitude=0.0)

        mock_log.assert_called_once()
        operation, kind = mock_log.call_args[0][:2]
        assert operation == "record_collection"
        assert kind == "INVALID_GEOFENCE"
