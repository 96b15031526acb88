"""
Tests for Market Snapshot Service

Tests:
1. compute_trends - first snapshot, price and supply deltas, floors at zero
2. generate_snapshot - same-day idempotency, next-day trends, empty locality
3. Trigger validation
"""

from datetime import date

import pytest

from fakes import FixedClock, InMemoryCompetitorStore, InMemorySnapshotRepository, make_competitor
from services.errors import InvalidSnapshotTriggerError
from services.market_overview_service import MarketOverviewBuilder
from services.market_snapshot_service import (
    MarketSnapshotService,
    compute_trends,
    empty_trends,
)


def _metrics(avg=10000, projects=10, units=1000, completed=0):
    return {
        'pricePerSqft': {'avg': avg},
        'totalActiveProjects': projects,
        'totalUnitsInMarket': units,
        'projectStatusDistribution': [{'status': 'completed', 'count': completed}] if completed else [],
    }


class TestComputeTrends:

    def test_no_previous_is_all_zero(self):
        assert compute_trends(_metrics(), None) == empty_trends()

    def test_price_change(self):
        trends = compute_trends(_metrics(avg=10500), _metrics(avg=10000))
        assert trends['pricePerSqftChange'] == 5.0
        assert trends['pricePerSqftChangeAbsolute'] == 500

    def test_zero_previous_price_leaves_change_at_zero(self):
        trends = compute_trends(_metrics(avg=9000), _metrics(avg=0))
        assert trends['pricePerSqftChange'] == 0
        assert trends['pricePerSqftChangeAbsolute'] == 0

    def test_supply_growth(self):
        trends = compute_trends(_metrics(projects=12, units=1250), _metrics(projects=10, units=1000))
        assert trends['newProjectsAdded'] == 2
        assert trends['newUnitsAdded'] == 250
        assert trends['supplyChange'] == 25.0

    def test_shrinking_supply_floors_additions(self):
        trends = compute_trends(_metrics(projects=8, units=800), _metrics(projects=10, units=1000))
        assert trends['newProjectsAdded'] == 0
        assert trends['newUnitsAdded'] == 0
        assert trends['supplyChange'] == -20.0

    def test_projects_completed(self):
        trends = compute_trends(_metrics(completed=3), _metrics(completed=1))
        assert trends['projectsCompleted'] == 2
        assert compute_trends(_metrics(completed=1), _metrics(completed=3))['projectsCompleted'] == 0


class TestGenerateSnapshot:

    @pytest.fixture
    def clock(self):
        return FixedClock()

    @pytest.fixture
    def store(self):
        return InMemoryCompetitorStore([
            make_competitor(1, price=10000, totalUnits=400),
            make_competitor(2, price=10400, totalUnits=600),
        ])

    @pytest.fixture
    def repository(self):
        return InMemorySnapshotRepository()

    @pytest.fixture
    def service(self, store, repository, clock):
        return MarketSnapshotService(MarketOverviewBuilder(store, clock=clock), repository, clock=clock)

    def test_first_snapshot(self, service, repository):
        snapshot = service.generate_snapshot('org-1', 'Pune', 'Baner', trigger='manual')

        assert snapshot['snapshotDate'] == date(2025, 6, 15)
        assert snapshot['generatedBy'] == 'manual'
        assert snapshot['trends'] == empty_trends()
        assert snapshot['marketMetrics']['totalActiveProjects'] == 2
        assert snapshot['marketMetrics']['totalUnitsInMarket'] == 1000
        assert snapshot['marketMetrics']['pricePerSqft']['avg'] == 10200
        assert snapshot['sourceCompetitorIds'] == [1, 2]
        assert snapshot['dataFingerprint']
        assert repository.count('org-1', 'Pune', 'Baner') == 1

    def test_same_day_upserts_one_row(self, service, repository, clock):
        service.generate_snapshot('org-1', 'Pune', 'Baner', trigger='manual')
        clock.advance(hours=5)
        second = service.generate_snapshot('org-1', 'Pune', 'Baner', trigger='scheduled')

        assert repository.count('org-1', 'Pune', 'Baner') == 1
        assert second['generatedBy'] == 'scheduled'
        assert second['trends'] == empty_trends()

    def test_locality_case_and_whitespace_share_a_row(self, service, repository):
        service.generate_snapshot('org-1', 'Pune', 'Baner')
        service.generate_snapshot('org-1', ' pune ', 'BANER ')
        assert repository.count('org-1', 'Pune', 'Baner') == 1

    def test_next_day_trends(self, service, store, clock):
        service.generate_snapshot('org-1', 'Pune', 'Baner')

        store.records.append(make_competitor(3, price=10200, totalUnits=500))
        clock.advance(days=1)
        snapshot = service.generate_snapshot('org-1', 'Pune', 'Baner')

        assert snapshot['snapshotDate'] == date(2025, 6, 16)
        assert snapshot['trends']['newProjectsAdded'] == 1
        assert snapshot['trends']['newUnitsAdded'] == 500
        assert snapshot['trends']['supplyChange'] == 50.0
        # avg 10200 -> 10200
        assert snapshot['trends']['pricePerSqftChange'] == 0

    def test_empty_locality_returns_none(self, service, repository):
        assert service.generate_snapshot('org-1', 'Pune', 'Wakad') is None
        assert repository.upserts == 0

    def test_other_organization_not_visible(self, service):
        assert service.generate_snapshot('org-2', 'Pune', 'Baner') is None

    def test_invalid_trigger(self, service, repository):
        with pytest.raises(InvalidSnapshotTriggerError):
            service.generate_snapshot('org-1', 'Pune', 'Baner', trigger='cron')
        assert repository.upserts == 0
