"""
Stage record types - immutable hand-off records plus zone and recall overlays.
Records are stored as JSON dicts; to_dict/from_dict are the only codecs.
"""

from dataclasses import dataclass, asdict, field, fields
from typing import Dict, List, Optional

# Collection status machine
STATUS_COLLECTED = "COLLECTED"
STATUS_QUALITY_PASSED = "QUALITY_PASSED"
STATUS_QUALITY_FAILED = "QUALITY_FAILED"

# Downstream stage statuses
STATUS_PROCESSED = "PROCESSED"
STATUS_MANUFACTURED = "MANUFACTURED"

RECALL_ACTIVE = "ACTIVE"

ALLOWED_TRANSITIONS = {
    STATUS_COLLECTED: {STATUS_QUALITY_PASSED, STATUS_QUALITY_FAILED},
    STATUS_QUALITY_PASSED: set(),
    STATUS_QUALITY_FAILED: set(),
}


class RecordMixin:
    """Shared dict codec for flat record dataclasses."""

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict):
        # Ignore unknown keys so older readers tolerate newer records
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class CollectionEvent(RecordMixin):
    event_id: str
    species: str
    weight: float
    latitude: float
    longitude: float
    timestamp: str
    collector_id: str
    collector_org: str
    image_hash: str
    metadata_hash: str
    status: str = STATUS_COLLECTED
    qr_code: str = ""


@dataclass
class QualityAttestation(RecordMixin):
    test_id: str
    event_id: str
    moisture_content: float
    pesticides_level: float
    heavy_metals_level: float
    microbial_test: str
    passed: bool
    lab_tech_id: str
    lab_org: str
    test_date: str
    image_hash: str
    metadata_hash: str
    qr_code: str = ""


@dataclass
class ProcessingRecord(RecordMixin):
    process_id: str
    test_id: str
    event_id: str
    process_type: str
    temperature: float
    duration: float
    yield_amount: float
    processor_id: str
    processor_org: str
    process_date: str
    image_hash: str
    metadata_hash: str
    status: str = STATUS_PROCESSED
    qr_code: str = ""


@dataclass
class ProvenanceStep(RecordMixin):
    stage: str
    timestamp: str
    organization: str
    details: Dict[str, str]
    image_hash: str
    metadata_hash: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class ProvenanceChain:
    steps: List[ProvenanceStep]
    total_steps: int
    verified: bool

    def to_dict(self) -> Dict:
        return {
            "steps": [step.to_dict() for step in self.steps],
            "total_steps": self.total_steps,
            "verified": self.verified,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ProvenanceChain':
        return cls(
            steps=[ProvenanceStep.from_dict(s) for s in data.get("steps", [])],
            total_steps=data["total_steps"],
            verified=data["verified"],
        )


@dataclass
class ProductBatch:
    batch_id: str
    process_id: str
    product_name: str
    batch_size: int
    formulation: str
    expiry_date: str
    manufacturer_id: str
    manufacturer_org: str
    manufacturing_date: str
    image_hash: str
    metadata_hash: str
    provenance_chain: ProvenanceChain
    status: str = STATUS_MANUFACTURED
    qr_code: str = ""

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["provenance_chain"] = self.provenance_chain.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ProductBatch':
        data = dict(data)
        data["provenance_chain"] = ProvenanceChain.from_dict(data["provenance_chain"])
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class ApprovedZone(RecordMixin):
    name: str
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float
    max_yield: float

    def contains(self, latitude: float, longitude: float) -> bool:
        """Inclusive bounding-box containment."""
        return (self.min_lat <= latitude <= self.max_lat and
                self.min_lng <= longitude <= self.max_lng)


@dataclass
class ZoneYield(RecordMixin):
    zone_id: str
    total_yield: float
    last_updated: str
    collections: int = 0


@dataclass
class ZoneUpdate(RecordMixin):
    update_id: str
    action: str
    zone: Dict
    requested_by: str
    timestamp: str
    applied: bool = True


@dataclass
class RecallNotice(RecordMixin):
    recall_id: str
    batch_id: str
    reason: str
    initiated_by: str
    initiated_date: str
    status: str = RECALL_ACTIVE
    affected_records: List[str] = field(default_factory=list)
