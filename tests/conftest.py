"""
Shared fixtures: a throwaway ledger per test and one caller per role.
"""

import pytest

from herbtrace.core.access import Caller
from herbtrace.core.service import TraceabilityService
from herbtrace.core.store import LedgerStore

COLLECTOR = Caller("collector-001", "FarmersCoopMSP")
LAB = Caller("labtech-001", "LabsOrgMSP")
PROCESSOR = Caller("processor-001", "ProcessorsOrgMSP")
MANUFACTURER = Caller("manufacturer-001", "ManufacturersOrgMSP")
REGULATOR = Caller("regulator-001", "NMPBOrgMSP")

# Inside "Rajasthan Zone 1"
RAJASTHAN_LAT = 27.0
RAJASTHAN_LNG = 75.9


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")


@pytest.fixture
def store(db_path):
    return LedgerStore(db_path)


@pytest.fixture
def service(store):
    """Service with default rules; seasonal and zone capacity checks off."""
    return TraceabilityService(
        store,
        seasonal_windows={"Ashwagandha": (10, 3)},
        enforce_seasons=False,
        enforce_zone_capacity=False,
        recall_requires_batch=False,
    )


def record_default_collection(service, weight=100.0, **overrides):
    params = dict(
        species="Ashwagandha",
        weight=weight,
        latitude=RAJASTHAN_LAT,
        longitude=RAJASTHAN_LNG,
        timestamp="2024-11-15T08:30:00Z",
        image_hash="img-col",
        metadata_hash="meta-col",
    )
    params.update(overrides)
    return service.record_collection(COLLECTOR, **params)


def attest_default_quality(service, event_id, passed=None, **overrides):
    params = dict(
        moisture=11.9,
        pesticides=0.009,
        heavy_metals=9.9,
        microbial="Negative",
        timestamp="2024-11-16T10:00:00Z",
        image_hash="img-qa",
        metadata_hash="meta-qa",
        passed=passed,
    )
    params.update(overrides)
    return service.attest_quality(LAB, event_id, **params)


def transfer_default_custody(service, test_id):
    return service.transfer_custody(
        PROCESSOR, test_id,
        process_type="Drying",
        temperature=45.0,
        duration=12.0,
        yield_amount=80.0,
        timestamp="2024-11-18T09:00:00Z",
        image_hash="img-proc",
        metadata_hash="meta-proc",
    )


def create_default_batch(service, process_id):
    return service.create_batch(
        MANUFACTURER, process_id,
        product_name="Ashwagandha Root Powder",
        batch_size=200,
        formulation="100% root powder",
        expiry_date="2026-11-30",
        timestamp="2024-11-20T12:00:00Z",
        image_hash="img-batch",
        metadata_hash="meta-batch",
    )


def run_full_chain(service):
    """Drive one lot through every stage and return the four records."""
    collection = record_default_collection(service)
    quality = attest_default_quality(service, collection.event_id)
    processing = transfer_default_custody(service, quality.test_id)
    batch = create_default_batch(service, processing.process_id)
    return collection, quality, processing, batch
