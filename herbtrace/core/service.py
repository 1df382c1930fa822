"""
Stage-gated traceability workflow.

Every mutating operation follows the same order: authorization gate, load
and check the referenced predecessor, domain validators, identifier minting,
then buffered writes and the emitted event. All of it runs inside one ledger
transaction, so a rejection at any step leaves no trace in the ledger.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from . import config
from .access import (
    Caller,
    OP_ATTEST_QUALITY,
    OP_CREATE_BATCH,
    OP_INITIATE_RECALL,
    OP_RECORD_COLLECTION,
    OP_TRANSFER_CUSTODY,
    OP_UPDATE_ZONES,
    authorize,
)
from .errors import BatchNotFound, QualityGateFailed, TraceabilityError
from .identifiers import (
    PREFIX_BATCH,
    PREFIX_COLLECTION,
    PREFIX_PROCESSING,
    PREFIX_QUALITY,
    PREFIX_RECALL,
    PREFIX_ZONE_UPDATE,
    next_identifier,
    qr_payload,
)
from .provenance import assemble_from_process, assemble_for_batch
from .records import (
    BATCH_PREFIX,
    COLLECTION_PREFIX,
    batch_key,
    collection_key,
    ensure_transition,
    insert,
    list_recalls,
    list_zone_updates,
    load_batch,
    load_collection,
    load_processing,
    load_quality,
    processing_key,
    quality_key,
    recall_key,
    update_collection_status,
    zone_update_key,
)
from .schema import (
    STATUS_QUALITY_FAILED,
    STATUS_QUALITY_PASSED,
    ApprovedZone,
    CollectionEvent,
    ProcessingRecord,
    ProductBatch,
    QualityAttestation,
    RecallNotice,
    ZoneUpdate,
    ZoneYield,
)
from .store import LedgerStore
from .validators import (
    check_geofence,
    check_quality_gate,
    check_seasonal_window,
    check_yield_cap,
    check_zone_capacity,
)
from .yields import accumulate, accumulate_zone, current_yield, current_zone_total
from .zones import apply_zone_action, load_zones, seed_zones, store_zones
from ..util.logging import audit_event, logger

EVENT_COLLECTION_RECORDED = "CollectionRecorded"
EVENT_QUALITY_ATTESTED = "QualityAttested"
EVENT_CUSTODY_TRANSFERRED = "CustodyTransferred"
EVENT_BATCH_CREATED = "BatchCreated"
EVENT_ZONE_UPDATED = "ZoneUpdated"
EVENT_RECALL_INITIATED = "RecallInitiated"


class TraceabilityService:
    """Workflow engine over a transactional ledger store."""

    def __init__(self, store: LedgerStore, yield_cap: float = None, cell_resolution: int = None,
                 seasonal_windows: Dict = None, enforce_seasons: bool = None,
                 enforce_zone_capacity: bool = None, recall_requires_batch: bool = None,
                 initial_zones: List[Dict] = None):
        self.store = store
        self.yield_cap = yield_cap if yield_cap is not None else config.YIELD_CAP_PER_COLLECTION
        self.cell_resolution = cell_resolution or config.YIELD_CELL_RESOLUTION
        self.seasonal_windows = seasonal_windows if seasonal_windows is not None else config.get_seasonal_windows()
        self.enforce_seasons = enforce_seasons if enforce_seasons is not None else config.SEASONAL_ENFORCEMENT
        self.enforce_zone_capacity = (enforce_zone_capacity if enforce_zone_capacity is not None
                                      else config.ZONE_CAPACITY_ENFORCED)
        self.recall_requires_batch = (recall_requires_batch if recall_requires_batch is not None
                                      else config.RECALL_REQUIRE_BATCH)

        if seed_zones(store, initial_zones):
            logger.info(f"Seeded approved zones in {store.db_path}")

    @contextmanager
    def _gated(self, operation: str, caller: Caller):
        """Authorize first, and log any rejection raised by the operation."""
        try:
            authorize(operation, caller)
            yield
        except TraceabilityError as e:
            logger.log_rejection(operation, e.kind, e.message, caller.caller_id if caller else None)
            raise

    # Stage operations

    def record_collection(self, caller: Caller, species: str, weight: float, latitude: float,
                          longitude: float, timestamp: str, image_hash: str = "",
                          metadata_hash: str = "") -> CollectionEvent:
        with self._gated(OP_RECORD_COLLECTION, caller):
            with self.store.transaction() as tx:
                zone = check_geofence(latitude, longitude, load_zones(tx))
                check_seasonal_window(species, timestamp, self.seasonal_windows, self.enforce_seasons)
                check_yield_cap(weight, self.yield_cap)
                if self.enforce_zone_capacity:
                    total = current_zone_total(tx, zone.name)
                    check_zone_capacity(total.total_yield, weight, zone.max_yield, zone.name)

                event_id = next_identifier(tx, PREFIX_COLLECTION)
                event = CollectionEvent(
                    event_id=event_id,
                    species=species,
                    weight=weight,
                    latitude=latitude,
                    longitude=longitude,
                    timestamp=timestamp,
                    collector_id=caller.caller_id,
                    collector_org=caller.org_tag,
                    image_hash=image_hash,
                    metadata_hash=metadata_hash,
                    qr_code=qr_payload(event_id, "collection", timestamp),
                )
                insert(tx, collection_key(event_id), event)
                cell = accumulate(tx, latitude, longitude, weight, timestamp, self.cell_resolution)
                zone_total = accumulate_zone(tx, zone.name, weight, timestamp)
                tx.set_event(EVENT_COLLECTION_RECORDED, event.to_dict())

            logger.log_stage_record("collection", event_id, {
                "species": species,
                "zone": zone.name,
                "cell": cell.zone_id,
                "cell_total": cell.total_yield,
                "zone_total": zone_total.total_yield
            })
            return event

    def attest_quality(self, caller: Caller, event_id: str, moisture: float, pesticides: float,
                       heavy_metals: float, microbial: str, timestamp: str, image_hash: str = "",
                       metadata_hash: str = "", passed: Optional[bool] = None) -> QualityAttestation:
        """Record a lab attestation for a collection.

        The threshold gate decides whether the submission is accepted at all.
        The stored passed flag is the gate result narrowed by the lab's own
        verdict: a lab may fail a lot that meets the thresholds, but can never
        pass one that does not.
        """
        with self._gated(OP_ATTEST_QUALITY, caller):
            with self.store.transaction() as tx:
                collection = load_collection(tx, event_id)
                check_quality_gate(moisture, pesticides, heavy_metals, microbial)

                stored_passed = True if passed is None else bool(passed)
                new_status = STATUS_QUALITY_PASSED if stored_passed else STATUS_QUALITY_FAILED
                ensure_transition(collection, new_status)

                test_id = next_identifier(tx, PREFIX_QUALITY)
                attestation = QualityAttestation(
                    test_id=test_id,
                    event_id=event_id,
                    moisture_content=moisture,
                    pesticides_level=pesticides,
                    heavy_metals_level=heavy_metals,
                    microbial_test=microbial,
                    passed=stored_passed,
                    lab_tech_id=caller.caller_id,
                    lab_org=caller.org_tag,
                    test_date=timestamp,
                    image_hash=image_hash,
                    metadata_hash=metadata_hash,
                    qr_code=qr_payload(test_id, "quality", timestamp),
                )
                insert(tx, quality_key(test_id), attestation)
                update_collection_status(tx, collection, new_status)
                tx.set_event(EVENT_QUALITY_ATTESTED, attestation.to_dict())

            logger.log_stage_record("quality", test_id, {
                "event_id": event_id,
                "passed": stored_passed,
                "collection_status": new_status
            })
            return attestation

    def transfer_custody(self, caller: Caller, test_id: str, process_type: str, temperature: float,
                         duration: float, yield_amount: float, timestamp: str, image_hash: str = "",
                         metadata_hash: str = "") -> ProcessingRecord:
        with self._gated(OP_TRANSFER_CUSTODY, caller):
            with self.store.transaction() as tx:
                quality = load_quality(tx, test_id)
                if not quality.passed:
                    raise QualityGateFailed(
                        f"Cannot process batch that failed quality tests: {test_id}"
                    )

                process_id = next_identifier(tx, PREFIX_PROCESSING)
                processing = ProcessingRecord(
                    process_id=process_id,
                    test_id=test_id,
                    event_id=quality.event_id,
                    process_type=process_type,
                    temperature=temperature,
                    duration=duration,
                    yield_amount=yield_amount,
                    processor_id=caller.caller_id,
                    processor_org=caller.org_tag,
                    process_date=timestamp,
                    image_hash=image_hash,
                    metadata_hash=metadata_hash,
                    qr_code=qr_payload(process_id, "processing", timestamp),
                )
                insert(tx, processing_key(process_id), processing)
                tx.set_event(EVENT_CUSTODY_TRANSFERRED, processing.to_dict())

            logger.log_stage_record("processing", process_id, {
                "test_id": test_id,
                "event_id": quality.event_id
            })
            return processing

    def create_batch(self, caller: Caller, process_id: str, product_name: str, batch_size: int,
                     formulation: str, expiry_date: str, timestamp: str, image_hash: str = "",
                     metadata_hash: str = "") -> ProductBatch:
        with self._gated(OP_CREATE_BATCH, caller):
            with self.store.transaction() as tx:
                load_processing(tx, process_id)
                chain = assemble_from_process(tx, process_id)

                batch_id = next_identifier(tx, PREFIX_BATCH)
                batch = ProductBatch(
                    batch_id=batch_id,
                    process_id=process_id,
                    product_name=product_name,
                    batch_size=batch_size,
                    formulation=formulation,
                    expiry_date=expiry_date,
                    manufacturer_id=caller.caller_id,
                    manufacturer_org=caller.org_tag,
                    manufacturing_date=timestamp,
                    image_hash=image_hash,
                    metadata_hash=metadata_hash,
                    provenance_chain=chain,
                    qr_code=qr_payload(batch_id, "final-product", timestamp),
                )
                insert(tx, batch_key(batch_id), batch)
                tx.set_event(EVENT_BATCH_CREATED, batch.to_dict())

            logger.log_stage_record("batch", batch_id, {
                "process_id": process_id,
                "total_steps": chain.total_steps
            })
            return batch

    # Administrative workflow

    def update_zones(self, caller: Caller, action: str, zone: ApprovedZone, timestamp: str) -> ZoneUpdate:
        """Record a zone change and apply it to the approved-zone list."""
        with self._gated(OP_UPDATE_ZONES, caller):
            with self.store.transaction() as tx:
                zones, applied = apply_zone_action(load_zones(tx), action, zone)

                update_id = next_identifier(tx, PREFIX_ZONE_UPDATE)
                update = ZoneUpdate(
                    update_id=update_id,
                    action=action,
                    zone=zone.to_dict(),
                    requested_by=caller.caller_id,
                    timestamp=timestamp,
                    applied=applied,
                )
                insert(tx, zone_update_key(update_id), update)
                if applied:
                    store_zones(tx, zones)
                tx.set_event(EVENT_ZONE_UPDATED, update.to_dict())

            logger.log_zone_update(update_id, action, zone.name, applied)
            if not applied:
                logger.warning(f"Zone update {update_id}: no zone named '{zone.name}' to {action}")
            audit_event("admin.zone_update", {"update_id": update_id}, update.to_dict())
            return update

    def initiate_recall(self, caller: Caller, batch_id: str, reason: str, timestamp: str) -> RecallNotice:
        """Open a recall notice against a batch without touching the batch."""
        with self._gated(OP_INITIATE_RECALL, caller):
            with self.store.transaction() as tx:
                affected = []
                batch_data = tx.get(batch_key(batch_id))
                if batch_data is None:
                    if self.recall_requires_batch:
                        raise BatchNotFound(f"Product batch not found: {batch_id}")
                    logger.warning(f"Recall opened for unknown batch {batch_id}")
                else:
                    process_id = batch_data["process_id"]
                    affected.append(process_id)
                    processing = tx.get(processing_key(process_id))
                    if processing:
                        affected.extend([processing["test_id"], processing["event_id"]])

                recall_id = next_identifier(tx, PREFIX_RECALL)
                recall = RecallNotice(
                    recall_id=recall_id,
                    batch_id=batch_id,
                    reason=reason,
                    initiated_by=caller.caller_id,
                    initiated_date=timestamp,
                    affected_records=affected,
                )
                insert(tx, recall_key(recall_id), recall)
                tx.set_event(EVENT_RECALL_INITIATED, recall.to_dict())

            logger.log_recall(recall_id, batch_id, reason)
            audit_event("admin.recall", {"recall_id": recall_id}, recall.to_dict())
            return recall

    # Queries

    def get_collection_event(self, event_id: str) -> CollectionEvent:
        return load_collection(self.store, event_id)

    def get_quality_test(self, test_id: str) -> QualityAttestation:
        return load_quality(self.store, test_id)

    def get_processing_details(self, process_id: str) -> ProcessingRecord:
        return load_processing(self.store, process_id)

    def get_provenance(self, batch_id: str) -> ProductBatch:
        """The batch with the provenance snapshot taken at its creation."""
        return load_batch(self.store, batch_id)

    def verify_provenance(self, batch_id: str) -> Dict[str, Any]:
        """Tamper check of a batch's stored provenance JSON.

        Stage records are write-once and the step details carry no status, so
        a chain rebuilt from live records differs from the snapshot only when
        the stored JSON of the batch or of a referenced record was altered.
        """
        batch = load_batch(self.store, batch_id)
        live = assemble_for_batch(self.store, batch_id)
        return {
            "batch_id": batch_id,
            "total_steps": batch.provenance_chain.total_steps,
            "snapshot_matches": live.to_dict() == batch.provenance_chain.to_dict(),
        }

    def list_approved_zones(self) -> List[ApprovedZone]:
        return load_zones(self.store)

    def get_zone_yield(self, latitude: float, longitude: float) -> ZoneYield:
        return current_yield(self.store, latitude, longitude, self.cell_resolution)

    def get_zone_total(self, zone_name: str) -> ZoneYield:
        return current_zone_total(self.store, zone_name)

    def list_recalls(self, batch_id: str = None) -> List[RecallNotice]:
        return list_recalls(self.store, batch_id)

    def list_zone_updates(self) -> List[ZoneUpdate]:
        return list_zone_updates(self.store)

    def recent_events(self, limit: int = 20, name: str = None) -> List[Dict[str, Any]]:
        return self.store.list_events(limit=limit, name=name)

    def health(self) -> Dict[str, Any]:
        return {
            "db_health": self.store.healthy(),
            "collections": self.store.count(COLLECTION_PREFIX),
            "batches": self.store.count(BATCH_PREFIX),
        }
