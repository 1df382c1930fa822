"""
Domain validators - pure checks run before any ledger write.
Each check_* function raises the matching TraceabilityError on violation.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import (
    InvalidGeofence,
    InvalidWeight,
    QualityGateFailed,
    SeasonalRestrictionViolation,
    YieldLimitExceeded,
)
from .schema import ApprovedZone

# Quality gate thresholds (exclusive upper bounds)
MAX_MOISTURE = 12.0
MAX_PESTICIDES = 0.01
MAX_HEAVY_METALS = 10.0
REQUIRED_MICROBIAL = "Negative"


def find_zone(latitude: float, longitude: float, zones: Iterable[ApprovedZone]) -> Optional[ApprovedZone]:
    """First zone whose bounding box contains the point, bounds inclusive."""
    for zone in zones:
        if zone.contains(latitude, longitude):
            return zone
    return None


def point_in_zones(latitude: float, longitude: float, zones: Iterable[ApprovedZone]) -> bool:
    return find_zone(latitude, longitude, zones) is not None


def check_geofence(latitude: float, longitude: float, zones: Iterable[ApprovedZone]) -> ApprovedZone:
    zone = find_zone(latitude, longitude, zones)
    if zone is None:
        raise InvalidGeofence(
            f"Collection location ({latitude}, {longitude}) is not in an approved zone"
        )
    return zone


def parse_timestamp(timestamp: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing 'Z'."""
    value = timestamp.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def month_in_window(month: int, window: Tuple[int, int]) -> bool:
    """Month range check; a window like (10, 3) wraps the year end."""
    start, end = window
    if start <= end:
        return start <= month <= end
    return month >= start or month <= end


def within_season(species: str, timestamp: str, windows: Dict[str, Tuple[int, int]]) -> bool:
    window = windows.get(species)
    if window is None:
        return True

    try:
        month = parse_timestamp(timestamp).month
    except (ValueError, AttributeError):
        return False
    return month_in_window(month, window)


def check_seasonal_window(species: str, timestamp: str, windows: Dict[str, Tuple[int, int]], enforce: bool = False) -> None:
    """Harvest-window check.

    With enforce=False every collection is permitted; species without a
    configured window are always permitted.
    """
    if not enforce:
        return

    if not within_season(species, timestamp, windows):
        start, end = windows[species]
        raise SeasonalRestrictionViolation(
            f"Collection of {species} at {timestamp} is outside the permitted window "
            f"(months {start}-{end})"
        )


def check_yield_cap(weight: float, cap: float) -> None:
    """Reject a non-positive weight or a single collection heavier than cap."""
    # also rejects NaN
    if not weight > 0:
        raise InvalidWeight(f"Collection weight must be positive, got {weight}")
    if weight > cap:
        raise YieldLimitExceeded(
            f"Collection weight {weight} exceeds the per-collection limit of {cap}"
        )


def check_zone_capacity(current_total: float, weight: float, capacity: float, zone_name: str = "") -> None:
    """Reject a collection that would push a zone's running total past capacity."""
    if current_total + weight > capacity:
        raise YieldLimitExceeded(
            f"Collection would exceed zone yield limits for {zone_name or 'zone'}: "
            f"{current_total} + {weight} > {capacity}"
        )


def evaluate_quality_gate(moisture: float, pesticides: float, heavy_metals: float, microbial: str) -> List[str]:
    """Return the list of threshold violations; empty means the gate passes."""
    violations = []
    if not moisture < MAX_MOISTURE:
        violations.append(f"moisture {moisture} >= {MAX_MOISTURE}")
    if not pesticides < MAX_PESTICIDES:
        violations.append(f"pesticides {pesticides} >= {MAX_PESTICIDES}")
    if not heavy_metals < MAX_HEAVY_METALS:
        violations.append(f"heavy metals {heavy_metals} >= {MAX_HEAVY_METALS}")
    if microbial != REQUIRED_MICROBIAL:
        violations.append(f"microbial result '{microbial}' is not '{REQUIRED_MICROBIAL}'")
    return violations


def check_quality_gate(moisture: float, pesticides: float, heavy_metals: float, microbial: str) -> None:
    violations = evaluate_quality_gate(moisture, pesticides, heavy_metals, microbial)
    if violations:
        raise QualityGateFailed("Batch failed quality gate validation: " + "; ".join(violations))
