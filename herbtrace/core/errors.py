"""
Traceability error taxonomy.
Every rejection carries a stable kind and a human-readable message.
"""

from typing import Dict


class TraceabilityError(Exception):
    """Base class for all workflow rejections."""

    kind = "TRACEABILITY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"error_type": self.kind, "message": self.message}


class UnauthorizedAccess(TraceabilityError):
    kind = "UNAUTHORIZED_ACCESS"


class InvalidGeofence(TraceabilityError):
    kind = "INVALID_GEOFENCE"


class SeasonalRestrictionViolation(TraceabilityError):
    kind = "SEASONAL_RESTRICTION_VIOLATION"


class InvalidWeight(TraceabilityError):
    kind = "INVALID_WEIGHT"


class YieldLimitExceeded(TraceabilityError):
    kind = "YIELD_LIMIT_EXCEEDED"


class QualityGateFailed(TraceabilityError):
    kind = "QUALITY_GATE_FAILED"


class InvalidStatusTransition(TraceabilityError):
    kind = "INVALID_STATUS_TRANSITION"


class RecordNotFound(TraceabilityError):
    kind = "RECORD_NOT_FOUND"


class CollectionNotFound(RecordNotFound):
    kind = "COLLECTION_NOT_FOUND"


class QualityTestNotFound(RecordNotFound):
    kind = "QUALITY_TEST_NOT_FOUND"


class ProcessingNotFound(RecordNotFound):
    kind = "PROCESSING_NOT_FOUND"


class BatchNotFound(RecordNotFound):
    kind = "BATCH_NOT_FOUND"


class TransactionConflict(TraceabilityError):
    """Raised at commit when a concurrent transaction changed our read set.

    Transient: nothing was written, the caller may resubmit.
    """

    kind = "TRANSACTION_CONFLICT"

    def __init__(self, message: str, keys=None):
        super().__init__(message)
        self.keys = list(keys or [])
