"""
Identifier minting for stage records.

Identifiers look like EVT_000042_3fa9c1d2: a per-prefix sequence kept in the
ledger itself plus a fragment of the minting transaction id. The sequence is
read and written inside the caller's transaction, so two concurrent mints of
the same prefix cannot both commit.
"""

import json

from . import config
from .store import Transaction

PREFIX_COLLECTION = "EVT"
PREFIX_QUALITY = "TEST"
PREFIX_PROCESSING = "PROC"
PREFIX_BATCH = "BATCH"
PREFIX_RECALL = "RECALL"
PREFIX_ZONE_UPDATE = "ZUPD"

SEQUENCE_KEY_PREFIX = "SEQ_"


def sequence_key(prefix: str) -> str:
    return f"{SEQUENCE_KEY_PREFIX}{prefix}"


def next_identifier(tx: Transaction, prefix: str) -> str:
    """Mint the next identifier for prefix within tx."""
    key = sequence_key(prefix)
    current = tx.get(key) or {"value": 0}
    value = current["value"] + 1
    tx.put(key, {"value": value})
    return f"{prefix}_{value:06d}_{tx.tx_id[:8]}"


def qr_payload(record_id: str, record_type: str, timestamp: str) -> str:
    """Stable string a QR renderer can encode for a record.

    Uses the record's own timestamp so the payload is reproducible.
    """
    return json.dumps({
        "id": record_id,
        "type": record_type,
        "timestamp": timestamp,
        "network": config.NETWORK_NAME,
    }, separators=(",", ":"))
