"""
Zone yield accumulator tests - cell keys, running totals and concurrent collections.
"""

import threading

import pytest

from herbtrace.core.errors import InvalidWeight, TransactionConflict, YieldLimitExceeded
from herbtrace.core.service import TraceabilityService
from herbtrace.core.yields import accumulate, cell_key, current_yield

from conftest import COLLECTOR, RAJASTHAN_LAT, RAJASTHAN_LNG, record_default_collection


class TestCellKey:
    def test_truncates_toward_zero(self):
        assert cell_key(27.0049, 75.9099, 100) == "ZONE_YIELD_2700_7590"

    def test_negative_coordinates_truncate_toward_zero(self):
        assert cell_key(-12.349, -45.671, 100) == "ZONE_YIELD_-1234_-4567"

    def test_resolution_changes_grid(self):
        assert cell_key(27.26, 75.91, 10) == "ZONE_YIELD_272_759"


class TestAccumulate:
    def test_empty_cell_reads_zero(self, store):
        zone_yield = current_yield(store, 27.0, 75.9, 100)
        assert zone_yield.total_yield == 0.0
        assert zone_yield.collections == 0

    def test_accumulate_adds_and_stamps(self, store):
        with store.transaction() as tx:
            accumulate(tx, 27.0, 75.9, 40.0, "2024-11-15T08:30:00Z", 100)
        with store.transaction() as tx:
            updated = accumulate(tx, 27.001, 75.901, 60.0, "2024-11-16T08:30:00Z", 100)

        assert updated.total_yield == 100.0
        assert updated.collections == 2
        stored = current_yield(store, 27.0, 75.9, 100)
        assert stored.total_yield == 100.0
        assert stored.last_updated == "2024-11-16T08:30:00Z"


class TestCollectionYields:
    def test_collections_accumulate_in_cell(self, service):
        record_default_collection(service, weight=120.0)
        record_default_collection(service, weight=80.0)

        zone_yield = service.get_zone_yield(RAJASTHAN_LAT, RAJASTHAN_LNG)
        assert zone_yield.total_yield == 200.0
        assert zone_yield.collections == 2

    def test_rejected_collection_leaves_cell_untouched(self, service):
        record_default_collection(service, weight=100.0)
        with pytest.raises(YieldLimitExceeded):
            record_default_collection(service, weight=501.0)

        assert service.get_zone_yield(RAJASTHAN_LAT, RAJASTHAN_LNG).total_yield == 100.0

    def test_zone_capacity_enforced_on_cumulative_total(self, store):
        service = TraceabilityService(store, enforce_zone_capacity=True)
        # Tamil Nadu Zone 1 allows 350 in total
        params = dict(latitude=13.2, longitude=80.4)
        record_default_collection(service, weight=200.0, **params)
        with pytest.raises(YieldLimitExceeded):
            record_default_collection(service, weight=200.0, **params)
        record_default_collection(service, weight=150.0, **params)

        assert service.get_zone_yield(13.2, 80.4).total_yield == 350.0

    def test_zone_capacity_spans_cells(self, store):
        service = TraceabilityService(store, enforce_zone_capacity=True)
        # Two different cells inside Tamil Nadu Zone 1 (cap 350)
        record_default_collection(service, weight=200.0, latitude=13.20, longitude=80.40)
        with pytest.raises(YieldLimitExceeded):
            record_default_collection(service, weight=200.0, latitude=13.25, longitude=80.45)

        assert service.get_zone_yield(13.25, 80.45).total_yield == 0.0
        assert service.get_zone_total("Tamil Nadu Zone 1").total_yield == 200.0

    def test_zone_total_tracked_without_enforcement(self, service):
        record_default_collection(service, weight=120.0)
        record_default_collection(service, weight=30.0, latitude=27.1, longitude=76.0)

        total = service.get_zone_total("Rajasthan Zone 1")
        assert total.total_yield == 150.0
        assert total.collections == 2

    @pytest.mark.parametrize("weight", [0.0, -100.0, float("nan")])
    def test_non_positive_weight_leaves_totals_untouched(self, service, weight):
        record_default_collection(service, weight=100.0)
        with pytest.raises(InvalidWeight):
            record_default_collection(service, weight=weight)

        assert service.get_zone_yield(RAJASTHAN_LAT, RAJASTHAN_LNG).total_yield == 100.0
        assert service.get_zone_total("Rajasthan Zone 1").total_yield == 100.0
        assert service.store.count("COLLECTION_") == 1

    def test_concurrent_collections_lose_no_update(self, service):
        errors = []
        barrier = threading.Barrier(2)

        def collect():
            barrier.wait()
            for _ in range(50):
                try:
                    service.record_collection(
                        COLLECTOR, "Ashwagandha", 100.0, RAJASTHAN_LAT, RAJASTHAN_LNG,
                        "2024-11-15T08:30:00Z"
                    )
                    return
                except TransactionConflict:
                    continue
                except Exception as e:
                    errors.append(e)
                    return
            errors.append(RuntimeError("too many conflicts"))

        threads = [threading.Thread(target=collect) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        zone_yield = service.get_zone_yield(RAJASTHAN_LAT, RAJASTHAN_LNG)
        assert zone_yield.total_yield == 200.0
        assert zone_yield.collections == 2
        assert service.store.count("COLLECTION_") == 2
