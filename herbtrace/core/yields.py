"""
Zone yield accumulator - running collected weight per quantized cell and per approved zone.

The read-add-write runs inside the caller's transaction, so the cell key is
in the read set; a concurrent commit to the same cell makes the later
committer fail with TransactionConflict instead of losing an update.
"""

from . import config
from .schema import ZoneYield

YIELD_KEY_PREFIX = "ZONE_YIELD_"


def cell_key(latitude: float, longitude: float, resolution: int = None) -> str:
    """Cell key from coordinates truncated (toward zero) to the grid resolution."""
    res = resolution or config.YIELD_CELL_RESOLUTION
    return f"{YIELD_KEY_PREFIX}{int(latitude * res)}_{int(longitude * res)}"


def current_yield(reader, latitude: float, longitude: float, resolution: int = None) -> ZoneYield:
    key = cell_key(latitude, longitude, resolution)
    entry = reader.get(key)
    if entry is None:
        return ZoneYield(zone_id=key, total_yield=0.0, last_updated="", collections=0)
    return ZoneYield.from_dict(entry)


def accumulate(tx, latitude: float, longitude: float, weight: float, timestamp: str, resolution: int = None) -> ZoneYield:
    """Add weight to the cell total and write it back with timestamp."""
    zone_yield = current_yield(tx, latitude, longitude, resolution)
    updated = ZoneYield(
        zone_id=zone_yield.zone_id,
        total_yield=zone_yield.total_yield + weight,
        last_updated=timestamp,
        collections=zone_yield.collections + 1,
    )
    tx.put(updated.zone_id, updated.to_dict())
    return updated


ZONE_TOTAL_KEY_PREFIX = "ZONE_TOTAL_"


def zone_total_key(zone_name: str) -> str:
    return f"{ZONE_TOTAL_KEY_PREFIX}{zone_name}"


def current_zone_total(reader, zone_name: str) -> ZoneYield:
    """Running weight collected anywhere inside an approved zone."""
    key = zone_total_key(zone_name)
    entry = reader.get(key)
    if entry is None:
        return ZoneYield(zone_id=key, total_yield=0.0, last_updated="", collections=0)
    return ZoneYield.from_dict(entry)


def accumulate_zone(tx, zone_name: str, weight: float, timestamp: str) -> ZoneYield:
    total = current_zone_total(tx, zone_name)
    updated = ZoneYield(
        zone_id=total.zone_id,
        total_yield=total.total_yield + weight,
        last_updated=timestamp,
        collections=total.collections + 1,
    )
    tx.put(updated.zone_id, updated.to_dict())
    return updated
