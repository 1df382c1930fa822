"""
Approved-zone configuration held in the ledger.
Seeded once from configuration; afterwards changed only by update_zones.
"""

from typing import Dict, List, Tuple

from . import config
from .schema import ApprovedZone

ZONES_KEY = "CONFIG_APPROVED_ZONES"

ZONE_ACTIONS = ("add", "update", "remove")


def seed_zones(store, zones: List[Dict] = None) -> bool:
    """Write the initial zone list if the ledger has none yet."""
    with store.transaction() as tx:
        if tx.get(ZONES_KEY) is not None:
            return False
        initial = zones if zones is not None else config.load_initial_zones()
        normalized = [ApprovedZone.from_dict(z).to_dict() for z in initial]
        tx.put(ZONES_KEY, {"zones": normalized})
    return True


def load_zones(reader) -> List[ApprovedZone]:
    """Read the current zone list from a transaction or a store."""
    entry = reader.get(ZONES_KEY)
    if not entry:
        return []
    return [ApprovedZone.from_dict(z) for z in entry["zones"]]


def apply_zone_action(zones: List[ApprovedZone], action: str, zone: ApprovedZone) -> Tuple[List[ApprovedZone], bool]:
    """Apply one zone change by name and report whether anything changed.

    add on an existing name replaces it; update or remove of an unknown name
    is a no-op.
    """
    if action not in ZONE_ACTIONS:
        raise ValueError(f"Invalid zone action: {action}")

    existing = [z for z in zones if z.name == zone.name]
    others = [z for z in zones if z.name != zone.name]

    if action == "remove":
        return others, bool(existing)
    if action == "update" and not existing:
        return list(zones), False

    if existing:
        return [zone if z.name == zone.name else z for z in zones], True
    return others + [zone], True


def store_zones(tx, zones: List[ApprovedZone]) -> None:
    tx.put(ZONES_KEY, {"zones": [z.to_dict() for z in zones]})
