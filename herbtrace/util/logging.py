"""
Structured logging for workflow operations, rejections and ledger commits.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for stage records, rejections and administrative actions."""

    def __init__(self, name: str = "herbtrace"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_stage_record(self, stage: str, record_id: str, details: Dict[str, Any] = None):
        """Log creation of a stage record."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"stage.{stage}", "recorded", log_details)

    def log_rejection(self, operation: str, kind: str, message: str, caller_id: str = None):
        """Log a rejected operation. Nothing was persisted."""
        log_details = {
            "kind": kind,
            "message": message[:200],
        }
        if caller_id:
            log_details["caller_id"] = caller_id

        self.logger.warning(f"Operation: {operation}, Status: rejected, Details: {log_details}")

    def log_event_emitted(self, event_name: str, tx_id: str, record_id: str = None):
        """Log an event appended to the ledger event log."""
        log_details = {"tx_id": tx_id}
        if record_id:
            log_details["record_id"] = record_id

        self.log_operation(f"event.{event_name}", "emitted", log_details)

    def log_commit(self, tx_id: str, writes: int, events: int):
        """Log a committed ledger transaction."""
        self.log_operation("ledger.commit", "success", {
            "tx_id": tx_id,
            "writes": writes,
            "events": events
        })

    def log_conflict(self, tx_id: str, keys: List[str]):
        """Log an optimistic concurrency conflict."""
        log_details = {
            "tx_id": tx_id,
            "conflicting_keys": keys[:10],
            "conflict_count": len(keys)
        }
        self.logger.warning(f"Operation: ledger.commit, Status: conflict, Details: {log_details}")

    def log_zone_update(self, update_id: str, action: str, zone_name: str, applied: bool = True):
        """Log an approved-zone configuration change."""
        log_details = {
            "update_id": update_id,
            "action": action,
            "zone": zone_name,
            "applied": applied
        }
        self.log_operation("admin.zone_update", "applied" if applied else "noop", log_details)

    def log_recall(self, recall_id: str, batch_id: str, reason: str = ""):
        """Log a recall notice."""
        log_details = {
            "recall_id": recall_id,
            "batch_id": batch_id,
            "reason": reason[:100] if reason else ""
        }
        self.log_operation("admin.recall", "active", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()

SENSITIVE_FIELDS = ['caller_id', 'collector_id', 'lab_tech_id', 'processor_id',
                    'manufacturer_id', 'initiated_by', 'requested_by']


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
