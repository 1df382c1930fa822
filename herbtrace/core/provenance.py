"""
Provenance assembler.

Walks the backward references batch -> processing -> quality -> collection
and emits the forward-ordered chain consumers verify. The chain is embedded
in a batch once, at creation; reads return that snapshot.
"""

from typing import Dict

from .records import load_batch, load_collection, load_processing, load_quality
from .schema import (
    CollectionEvent,
    ProcessingRecord,
    ProvenanceChain,
    ProvenanceStep,
    QualityAttestation,
)

STAGE_COLLECTION = "Collection"
STAGE_QUALITY = "Quality Testing"
STAGE_PROCESSING = "Processing"

STAGE_ORGANIZATIONS = {
    STAGE_COLLECTION: "FarmersCoop",
    STAGE_QUALITY: "LabsOrg",
    STAGE_PROCESSING: "ProcessorsOrg",
}


def _fmt(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _details(**values) -> Dict[str, str]:
    return {k: _fmt(v) for k, v in values.items()}


def collection_step(collection: CollectionEvent) -> ProvenanceStep:
    return ProvenanceStep(
        stage=STAGE_COLLECTION,
        timestamp=collection.timestamp,
        organization=STAGE_ORGANIZATIONS[STAGE_COLLECTION],
        details=_details(
            species=collection.species,
            weight=collection.weight,
            collector=collection.collector_id,
        ),
        image_hash=collection.image_hash,
        metadata_hash=collection.metadata_hash,
        latitude=collection.latitude,
        longitude=collection.longitude,
    )


def quality_step(quality: QualityAttestation) -> ProvenanceStep:
    return ProvenanceStep(
        stage=STAGE_QUALITY,
        timestamp=quality.test_date,
        organization=STAGE_ORGANIZATIONS[STAGE_QUALITY],
        details=_details(
            moisture=quality.moisture_content,
            pesticides=quality.pesticides_level,
            heavyMetals=quality.heavy_metals_level,
            microbial=quality.microbial_test,
            passed=quality.passed,
        ),
        image_hash=quality.image_hash,
        metadata_hash=quality.metadata_hash,
    )


def processing_step(processing: ProcessingRecord) -> ProvenanceStep:
    return ProvenanceStep(
        stage=STAGE_PROCESSING,
        timestamp=processing.process_date,
        organization=STAGE_ORGANIZATIONS[STAGE_PROCESSING],
        details=_details(**{
            "processType": processing.process_type,
            "temperature": processing.temperature,
            "duration": processing.duration,
            "yield": processing.yield_amount,
        }),
        image_hash=processing.image_hash,
        metadata_hash=processing.metadata_hash,
    )


def assemble_from_process(reader, process_id: str) -> ProvenanceChain:
    """Build the chain ending at a processing record.

    Raises the not-found error of whichever link is missing.
    """
    processing = load_processing(reader, process_id)
    quality = load_quality(reader, processing.test_id)
    collection = load_collection(reader, quality.event_id)

    steps = [
        collection_step(collection),
        quality_step(quality),
        processing_step(processing),
    ]
    return ProvenanceChain(steps=steps, total_steps=len(steps), verified=True)


def assemble_for_batch(reader, batch_id: str) -> ProvenanceChain:
    """Recompute the chain for an existing batch from the live records."""
    batch = load_batch(reader, batch_id)
    return assemble_from_process(reader, batch.process_id)
