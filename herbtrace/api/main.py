"""
HTTP surface of the traceability workflow.

Caller identity arrives already resolved by the identity layer, as the
X-Caller-Id and X-Org-Tag headers; authorization itself happens in the core.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .schemas import (
    BatchCreationRequest,
    CollectionRequest,
    CustodyTransferRequest,
    ErrorResponse,
    EventListResponse,
    HealthResponse,
    ProvenanceResponse,
    QualityAttestationRequest,
    RecallRequest,
    ZoneListResponse,
    ZoneModel,
    ZoneUpdateRequest,
    ZoneYieldResponse,
)
from ..core import config
from ..core.access import Caller
from ..core.errors import RecordNotFound, TraceabilityError, TransactionConflict, UnauthorizedAccess
from ..core.schema import ApprovedZone, RECALL_ACTIVE
from ..core.service import TraceabilityService
from ..core.store import LedgerStore
from ..util.logging import logger

app = FastAPI(
    title="Herb Traceability API",
    version=config.VERSION,
    description="Stage-gated provenance tracking for herb lots, from collection to product batch",
    docs_url="/docs" if config.debug_enabled() else None,
    redoc_url="/redoc" if config.debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[TraceabilityService] = None


def get_service() -> TraceabilityService:
    """Process-wide service over the configured ledger."""
    global _service
    if _service is None:
        _service = TraceabilityService(LedgerStore(config.DB_PATH))
    return _service


def get_caller(x_caller_id: str = Header(""), x_org_tag: str = Header("")) -> Caller:
    return Caller(caller_id=x_caller_id, org_tag=x_org_tag)


def _status_for(error: TraceabilityError) -> int:
    if isinstance(error, UnauthorizedAccess):
        return 403
    if isinstance(error, RecordNotFound):
        return 404
    if isinstance(error, TransactionConflict):
        return 409
    return 422


@app.exception_handler(TraceabilityError)
async def traceability_error_handler(request, exc: TraceabilityError):
    body = ErrorResponse(error_type=exc.kind, message=exc.message)
    return JSONResponse(status_code=_status_for(exc), content=body.model_dump(mode="json"))


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(service: TraceabilityService = Depends(get_service)):
    """Check system health."""
    stats = service.health()
    return HealthResponse(
        status="healthy" if stats["db_health"] else "unhealthy",
        version=config.VERSION,
        **stats
    )


# Stage operations

@app.post("/collections", response_model=Dict[str, Any])
def record_collection_endpoint(request: CollectionRequest, caller: Caller = Depends(get_caller),
                               service: TraceabilityService = Depends(get_service)):
    event = service.record_collection(
        caller,
        species=request.species,
        weight=request.weight,
        latitude=request.latitude,
        longitude=request.longitude,
        timestamp=request.timestamp,
        image_hash=request.image_hash,
        metadata_hash=request.metadata_hash
    )
    return event.to_dict()


@app.post("/quality", response_model=Dict[str, Any])
def attest_quality_endpoint(request: QualityAttestationRequest, caller: Caller = Depends(get_caller),
                            service: TraceabilityService = Depends(get_service)):
    results = request.test_results
    attestation = service.attest_quality(
        caller,
        event_id=request.event_id,
        moisture=results.moisture,
        pesticides=results.pesticides,
        heavy_metals=results.heavy_metals,
        microbial=results.microbial,
        timestamp=request.timestamp,
        image_hash=request.image_hash,
        metadata_hash=request.metadata_hash,
        passed=request.passed
    )
    return attestation.to_dict()


@app.post("/processing", response_model=Dict[str, Any])
def transfer_custody_endpoint(request: CustodyTransferRequest, caller: Caller = Depends(get_caller),
                              service: TraceabilityService = Depends(get_service)):
    processing = service.transfer_custody(
        caller,
        test_id=request.test_id,
        process_type=request.process_type,
        temperature=request.temperature,
        duration=request.duration,
        yield_amount=request.yield_amount,
        timestamp=request.timestamp,
        image_hash=request.image_hash,
        metadata_hash=request.metadata_hash
    )
    return processing.to_dict()


@app.post("/batches", response_model=Dict[str, Any])
def create_batch_endpoint(request: BatchCreationRequest, caller: Caller = Depends(get_caller),
                          service: TraceabilityService = Depends(get_service)):
    batch = service.create_batch(
        caller,
        process_id=request.process_id,
        product_name=request.product_name,
        batch_size=request.batch_size,
        formulation=request.formulation,
        expiry_date=request.expiry_date,
        timestamp=request.timestamp,
        image_hash=request.image_hash,
        metadata_hash=request.metadata_hash
    )
    return batch.to_dict()


# Administrative workflow

@app.post("/admin/zones", response_model=Dict[str, Any])
def update_zones_endpoint(request: ZoneUpdateRequest, caller: Caller = Depends(get_caller),
                          service: TraceabilityService = Depends(get_service)):
    update = service.update_zones(
        caller,
        action=request.action,
        zone=ApprovedZone(**request.zone.model_dump()),
        timestamp=request.timestamp
    )
    return {
        "success": True,
        "message": "Zone update recorded successfully",
        "update": update.to_dict()
    }


@app.post("/admin/recalls", response_model=Dict[str, Any])
def initiate_recall_endpoint(request: RecallRequest, caller: Caller = Depends(get_caller),
                             service: TraceabilityService = Depends(get_service)):
    recall = service.initiate_recall(
        caller,
        batch_id=request.batch_id,
        reason=request.reason,
        timestamp=request.timestamp
    )
    return {
        "success": True,
        "message": f"Recall initiated successfully: {recall.recall_id}",
        "recall": recall.to_dict()
    }


# Queries

@app.get("/collections/{event_id}", response_model=Dict[str, Any])
def get_collection_endpoint(event_id: str, service: TraceabilityService = Depends(get_service)):
    return service.get_collection_event(event_id).to_dict()


@app.get("/quality/{test_id}", response_model=Dict[str, Any])
def get_quality_endpoint(test_id: str, service: TraceabilityService = Depends(get_service)):
    return service.get_quality_test(test_id).to_dict()


@app.get("/processing/{process_id}", response_model=Dict[str, Any])
def get_processing_endpoint(process_id: str, service: TraceabilityService = Depends(get_service)):
    return service.get_processing_details(process_id).to_dict()


@app.get("/provenance/{batch_id}", response_model=ProvenanceResponse)
def get_provenance_endpoint(batch_id: str, service: TraceabilityService = Depends(get_service)):
    """Consumer verification: the batch, its provenance snapshot and any recalls."""
    batch = service.get_provenance(batch_id)
    recalls = service.list_recalls(batch_id)
    return ProvenanceResponse(
        batch=batch.to_dict(),
        recalls=[r.to_dict() for r in recalls],
        recalled=any(r.status == RECALL_ACTIVE for r in recalls)
    )


@app.get("/provenance/{batch_id}/verify", response_model=Dict[str, Any])
def verify_provenance_endpoint(batch_id: str, service: TraceabilityService = Depends(get_service)):
    return service.verify_provenance(batch_id)


@app.get("/zones", response_model=ZoneListResponse)
def list_zones_endpoint(service: TraceabilityService = Depends(get_service)):
    return ZoneListResponse(
        zones=[ZoneModel(**z.to_dict()) for z in service.list_approved_zones()]
    )


@app.get("/zones/yield", response_model=ZoneYieldResponse)
def zone_yield_endpoint(latitude: float = Query(..., ge=-90, le=90),
                        longitude: float = Query(..., ge=-180, le=180),
                        service: TraceabilityService = Depends(get_service)):
    return ZoneYieldResponse(**service.get_zone_yield(latitude, longitude).to_dict())


@app.get("/recalls", response_model=Dict[str, Any])
def list_recalls_endpoint(batch_id: Optional[str] = None,
                          service: TraceabilityService = Depends(get_service)):
    recalls = service.list_recalls(batch_id)
    return {"recalls": [r.to_dict() for r in recalls], "count": len(recalls)}


@app.get("/events", response_model=EventListResponse)
def list_events_endpoint(limit: int = Query(20, description="Maximum number of events to return", le=200),
                         name: Optional[str] = Query(None, description="Filter by event name"),
                         service: TraceabilityService = Depends(get_service)):
    events = service.recent_events(limit=limit, name=name)
    return EventListResponse(events=events, count=len(events))


@app.get("/debug", response_model=Dict[str, Any])
def debug_endpoint():
    """Debug information (only available in DEBUG mode)."""
    if not config.debug_enabled():
        raise HTTPException(status_code=403, detail="Debug endpoint disabled")

    issues = config.validate_config()
    if issues:
        logger.warning(f"Configuration issues: {issues}")

    return {
        "message": "Debug endpoint active",
        "timestamp": datetime.now().isoformat(),
        "config_issues": issues
    }
