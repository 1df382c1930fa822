"""
Traceability configuration - environment driven, with optional .env overrides.
Values are read once at import; tests patch the module attributes directly.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Tuple

from dotenv import load_dotenv

load_dotenv()

# Ledger storage
DB_PATH = os.getenv("DB_PATH", "./data/herbtrace.db")
STORE_BUSY_TIMEOUT_SEC = float(os.getenv("STORE_BUSY_TIMEOUT_SEC", "5"))

DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Collection constraints
YIELD_CAP_PER_COLLECTION = float(os.getenv("YIELD_CAP_PER_COLLECTION", "500"))
YIELD_CELL_RESOLUTION = int(os.getenv("YIELD_CELL_RESOLUTION", "100"))
ZONE_CAPACITY_ENFORCED = os.getenv("ZONE_CAPACITY_ENFORCED", "false").lower() == "true"
SEASONAL_ENFORCEMENT = os.getenv("SEASONAL_ENFORCEMENT", "false").lower() == "true"
SEASONAL_WINDOWS = os.getenv("SEASONAL_WINDOWS", "Ashwagandha:10-3")
ZONES_FILE = os.getenv("ZONES_FILE")

# Administrative workflow
RECALL_REQUIRE_BATCH = os.getenv("RECALL_REQUIRE_BATCH", "false").lower() == "true"

# Organization tags (resolved upstream by the identity layer)
ORG_COLLECTOR = os.getenv("ORG_COLLECTOR", "FarmersCoopMSP")
ORG_LAB = os.getenv("ORG_LAB", "LabsOrgMSP")
ORG_PROCESSOR = os.getenv("ORG_PROCESSOR", "ProcessorsOrgMSP")
ORG_MANUFACTURER = os.getenv("ORG_MANUFACTURER", "ManufacturersOrgMSP")
ORG_REGULATOR = os.getenv("ORG_REGULATOR", "NMPBOrgMSP")

NETWORK_NAME = os.getenv("NETWORK_NAME", "herbtrace")

VERSION = "1.0.0"

# name, min_lat, min_lng, max_lat, max_lng, max_yield
DEFAULT_ZONES = [
    ("Rajasthan Zone 1", 26.9124, 75.7873, 27.2124, 76.0873, 500),
    ("Gujarat Zone 1", 23.0225, 72.5714, 23.3225, 72.8714, 400),
    ("Maharashtra Zone 1", 19.0760, 72.8777, 19.3760, 73.1777, 600),
    ("Karnataka Zone 1", 12.9716, 77.5946, 13.2716, 77.8946, 450),
    ("Tamil Nadu Zone 1", 13.0827, 80.2707, 13.3827, 80.5707, 350),
]


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the ledger directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_role_orgs() -> Dict[str, str]:
    """Map each workflow role to the organization tag allowed to act in it."""
    return {
        "collector": ORG_COLLECTOR,
        "lab": ORG_LAB,
        "processor": ORG_PROCESSOR,
        "manufacturer": ORG_MANUFACTURER,
        "regulator": ORG_REGULATOR,
    }


def parse_seasonal_windows(raw: str) -> Dict[str, Tuple[int, int]]:
    """Parse 'Species:start-end,...' into {species: (start_month, end_month)}.

    Entries that do not parse are skipped; validate_config() reports them.
    """
    windows = {}
    if not raw:
        return windows

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry or ":" not in entry:
            continue
        species, months = entry.rsplit(":", 1)
        try:
            start, end = (int(m) for m in months.split("-", 1))
        except ValueError:
            continue
        if 1 <= start <= 12 and 1 <= end <= 12:
            windows[species.strip()] = (start, end)
    return windows


def get_seasonal_windows() -> Dict[str, Tuple[int, int]]:
    return parse_seasonal_windows(SEASONAL_WINDOWS)


def load_initial_zones() -> List[Dict]:
    """Load the approved zones used to seed a fresh ledger.

    ZONES_FILE, when set, must hold a JSON list of zone objects with the
    ApprovedZone field names. Otherwise the built-in defaults are used.
    """
    if ZONES_FILE:
        with open(ZONES_FILE, "r", encoding="utf-8") as fh:
            return json.load(fh)

    return [
        {
            "name": name,
            "min_lat": min_lat,
            "min_lng": min_lng,
            "max_lat": max_lat,
            "max_lng": max_lng,
            "max_yield": max_yield,
        }
        for name, min_lat, min_lng, max_lat, max_lng, max_yield in DEFAULT_ZONES
    ]


def validate_config():
    """Validate traceability configuration and return any issues."""
    issues = []

    if YIELD_CAP_PER_COLLECTION <= 0:
        issues.append("YIELD_CAP_PER_COLLECTION must be > 0")

    if YIELD_CELL_RESOLUTION < 1:
        issues.append("YIELD_CELL_RESOLUTION must be >= 1")

    if STORE_BUSY_TIMEOUT_SEC < 0:
        issues.append("STORE_BUSY_TIMEOUT_SEC must be >= 0")

    raw_entries = [e for e in SEASONAL_WINDOWS.split(",") if e.strip()] if SEASONAL_WINDOWS else []
    if len(parse_seasonal_windows(SEASONAL_WINDOWS)) != len(raw_entries):
        issues.append(f"Invalid SEASONAL_WINDOWS: {SEASONAL_WINDOWS}")

    orgs = list(get_role_orgs().values())
    if len(set(orgs)) != len(orgs):
        issues.append("Organization tags must be distinct per role")

    if ZONES_FILE and not Path(ZONES_FILE).exists():
        issues.append(f"ZONES_FILE not found: {ZONES_FILE}")

    return issues
