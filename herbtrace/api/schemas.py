"""
Request/response models for the traceability API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..core.validators import parse_timestamp


def _timestamp_must_be_iso(v: str) -> str:
    try:
        parse_timestamp(v)
    except ValueError:
        raise ValueError('timestamp must be ISO 8601')
    return v


class CollectionRequest(BaseModel):
    species: str
    weight: float = Field(gt=0)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timestamp: str
    image_hash: str = ""
    metadata_hash: str = ""

    @field_validator('species')
    @classmethod
    def species_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('species cannot be empty')
        return v

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class QualityTestResults(BaseModel):
    moisture: float
    pesticides: float
    heavy_metals: float
    microbial: str


class QualityAttestationRequest(BaseModel):
    event_id: str
    test_results: QualityTestResults
    passed: Optional[bool] = None
    timestamp: str
    image_hash: str = ""
    metadata_hash: str = ""

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class CustodyTransferRequest(BaseModel):
    test_id: str
    process_type: str
    temperature: float
    duration: float = Field(ge=0)
    yield_amount: float = Field(ge=0)
    timestamp: str
    image_hash: str = ""
    metadata_hash: str = ""

    @field_validator('process_type')
    @classmethod
    def process_type_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('process_type cannot be empty')
        return v

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class BatchCreationRequest(BaseModel):
    process_id: str
    product_name: str
    batch_size: int = Field(gt=0)
    formulation: str = ""
    expiry_date: str
    timestamp: str
    image_hash: str = ""
    metadata_hash: str = ""

    @field_validator('product_name')
    @classmethod
    def product_name_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('product_name cannot be empty')
        return v

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class ZoneModel(BaseModel):
    name: str
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float
    max_yield: float = 0


class ZoneUpdateRequest(BaseModel):
    action: str
    zone: ZoneModel
    timestamp: str

    @field_validator('action')
    @classmethod
    def action_must_be_valid(cls, v):
        valid_actions = ['add', 'update', 'remove']
        if v not in valid_actions:
            raise ValueError(f'action must be one of: {valid_actions}')
        return v

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class RecallRequest(BaseModel):
    batch_id: str
    reason: str
    timestamp: str

    @field_validator('reason')
    @classmethod
    def reason_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('reason cannot be empty')
        return v

    @field_validator('timestamp')
    @classmethod
    def timestamp_must_be_valid(cls, v):
        return _timestamp_must_be_iso(v)


class ProvenanceResponse(BaseModel):
    batch: Dict[str, Any]
    recalls: List[Dict[str, Any]]
    recalled: bool


class ZoneListResponse(BaseModel):
    zones: List[ZoneModel]


class ZoneYieldResponse(BaseModel):
    zone_id: str
    total_yield: float
    last_updated: str
    collections: int


class EventListResponse(BaseModel):
    events: List[Dict[str, Any]]
    count: int


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    collections: int
    batches: int


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None
    details: Optional[Dict[str, Any]] = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)
