"""
Stage record store - namespaced keys, typed loads and write-once inserts.

Records are never deleted or overwritten. The only in-place change is the
collection status, and it may only move along ALLOWED_TRANSITIONS.
"""

from typing import List

from .errors import (
    BatchNotFound,
    CollectionNotFound,
    InvalidStatusTransition,
    ProcessingNotFound,
    QualityTestNotFound,
)
from .schema import (
    ALLOWED_TRANSITIONS,
    CollectionEvent,
    ProcessingRecord,
    ProductBatch,
    QualityAttestation,
    RecallNotice,
    ZoneUpdate,
)

COLLECTION_PREFIX = "COLLECTION_"
QUALITY_PREFIX = "QUALITY_"
PROCESSING_PREFIX = "PROCESSING_"
BATCH_PREFIX = "BATCH_"
RECALL_PREFIX = "RECALL_"
ZONE_UPDATE_PREFIX = "ZONE_UPDATE_"


def collection_key(event_id: str) -> str:
    return f"{COLLECTION_PREFIX}{event_id}"


def quality_key(test_id: str) -> str:
    return f"{QUALITY_PREFIX}{test_id}"


def processing_key(process_id: str) -> str:
    return f"{PROCESSING_PREFIX}{process_id}"


def batch_key(batch_id: str) -> str:
    return f"{BATCH_PREFIX}{batch_id}"


def recall_key(recall_id: str) -> str:
    return f"{RECALL_PREFIX}{recall_id}"


def zone_update_key(update_id: str) -> str:
    return f"{ZONE_UPDATE_PREFIX}{update_id}"


def insert(tx, key: str, record) -> None:
    """Write a new record; an existing key is never overwritten."""
    if tx.get(key) is not None:
        raise ValueError(f"Record already exists: {key}")
    tx.put(key, record.to_dict())


def load_collection(reader, event_id: str) -> CollectionEvent:
    data = reader.get(collection_key(event_id))
    if data is None:
        raise CollectionNotFound(f"Collection event not found: {event_id}")
    return CollectionEvent.from_dict(data)


def load_quality(reader, test_id: str) -> QualityAttestation:
    data = reader.get(quality_key(test_id))
    if data is None:
        raise QualityTestNotFound(f"Quality test not found: {test_id}")
    return QualityAttestation.from_dict(data)


def load_processing(reader, process_id: str) -> ProcessingRecord:
    data = reader.get(processing_key(process_id))
    if data is None:
        raise ProcessingNotFound(f"Processing record not found: {process_id}")
    return ProcessingRecord.from_dict(data)


def load_batch(reader, batch_id: str) -> ProductBatch:
    data = reader.get(batch_key(batch_id))
    if data is None:
        raise BatchNotFound(f"Product batch not found: {batch_id}")
    return ProductBatch.from_dict(data)


def ensure_transition(collection: CollectionEvent, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(collection.status, set()):
        raise InvalidStatusTransition(
            f"Collection {collection.event_id} cannot move from {collection.status} to {new_status}"
        )


def update_collection_status(tx, collection: CollectionEvent, new_status: str) -> CollectionEvent:
    """Rewrite only the status field of a collection event."""
    ensure_transition(collection, new_status)
    collection.status = new_status
    tx.put(collection_key(collection.event_id), collection.to_dict())
    return collection


def list_recalls(reader, batch_id: str = None) -> List[RecallNotice]:
    recalls = [RecallNotice.from_dict(value) for _, value in reader.query_prefix(RECALL_PREFIX)]
    if batch_id is not None:
        recalls = [r for r in recalls if r.batch_id == batch_id]
    return recalls


def list_zone_updates(reader) -> List[ZoneUpdate]:
    return [ZoneUpdate.from_dict(value) for _, value in reader.query_prefix(ZONE_UPDATE_PREFIX)]
