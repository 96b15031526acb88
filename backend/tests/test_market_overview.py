"""
Tests for Market Overview Service

Tests:
1. Empty locality - normal response with message
2. Price statistics on the outlier-cleaned series
3. Distributions - unit types, lifecycle status, amenities
4. Data quality and freshness classification
"""

from datetime import datetime, timedelta

import pytest

from fakes import FixedClock, InMemoryCompetitorStore, make_competitor
from services.data_fingerprint import compute_data_fingerprint
from services.market_overview_service import (
    MarketOverviewBuilder,
    classify_age,
    compute_data_freshness,
)

NOW = datetime(2025, 6, 15, 10, 0, 0)


def _builder(records):
    return MarketOverviewBuilder(InMemoryCompetitorStore(records), clock=FixedClock(NOW))


class TestEmptyLocality:

    def test_zero_competitors(self):
        overview = _builder([]).build_overview('org-1', 'Pune', 'Baner')
        assert overview['totalProjects'] == 0
        assert 'message' in overview

    def test_other_locality_ignored(self):
        records = [make_competitor(1, price=9000, location={'city': 'Pune', 'area': 'Wakad'})]
        assert _builder(records).build_overview('org-1', 'Pune', 'Baner')['totalProjects'] == 0

    def test_inactive_ignored(self):
        records = [make_competitor(1, price=9000, isActive=False)]
        assert _builder(records).build_overview('org-1', 'Pune', 'Baner')['totalProjects'] == 0


class TestPriceStatistics:

    def test_outlier_removed_from_price_stats(self):
        prices = [100, 102, 98, 101, 99, 500]
        records = [make_competitor(i + 1, price=p) for i, p in enumerate(prices)]
        overview = _builder(records).build_overview('org-1', 'Pune', 'Baner')

        assert overview['totalProjects'] == 6
        assert overview['pricePerSqft']['outliersRemoved'] == 1
        assert overview['pricePerSqft']['avg'] == 100
        assert overview['pricePerSqft']['median'] == 100
        assert overview['pricePerSqft']['max'] == 102

    def test_locality_match_is_case_insensitive(self):
        records = [make_competitor(1, price=9000)]
        overview = _builder(records).build_overview('org-1', ' pune ', 'BANER')
        assert overview['totalProjects'] == 1

    def test_floor_rise_and_units(self):
        records = [
            make_competitor(1, totalUnits=120, pricing={'pricePerSqft': {'avg': 9000}, 'floorRiseCharge': 40}),
            make_competitor(2, totalUnits=80, pricing={'pricePerSqft': {'avg': 9400}, 'floorRiseCharge': 60}),
            make_competitor(3, totalUnits=None, pricing={}),
        ]
        overview = _builder(records).build_overview('org-1', 'Pune', 'Baner')
        assert overview['totalUnitsInMarket'] == 200
        assert overview['floorRiseCharge'] == {'min': 40, 'max': 60, 'avg': 50}
        assert overview['pricePerSqft']['avg'] == 9200

    def test_data_hash_matches_fingerprint(self):
        records = [make_competitor(1, price=9000), make_competitor(2, price=9100)]
        overview = _builder(records).build_overview('org-1', 'Pune', 'Baner')
        assert overview['dataHash'] == compute_data_fingerprint(records)


class TestDistributions:

    def test_unit_type_distribution(self):
        records = [
            make_competitor(1, unitMix=[{'unitType': '2BHK', 'totalCount': 60},
                                        {'unitType': '3BHK', 'totalCount': 40}]),
            make_competitor(2, unitMix=[{'unitType': '2BHK', 'totalCount': 100}]),
        ]
        rows = _builder(records).build_overview('org-1', 'Pune', 'Baner')['unitTypeDistribution']
        assert rows == [
            {'unitType': '2BHK', 'count': 160, 'percentage': 80},
            {'unitType': '3BHK', 'count': 40, 'percentage': 20},
        ]

    def test_unit_entry_without_count_counts_once(self):
        records = [make_competitor(1, unitMix=[{'unitType': '1BHK'}, {'unitType': '2BHK', 'totalCount': 3}])]
        rows = _builder(records).build_overview('org-1', 'Pune', 'Baner')['unitTypeDistribution']
        assert {r['unitType']: r['count'] for r in rows} == {'2BHK': 3, '1BHK': 1}

    def test_status_distribution(self):
        records = [
            make_competitor(1, projectStatus='pre_launch'),
            make_competitor(2, projectStatus='ready_to_move'),
            make_competitor(3, projectStatus='ready_to_move'),
            make_competitor(4, projectStatus='completed'),
        ]
        rows = _builder(records).build_overview('org-1', 'Pune', 'Baner')['projectStatusDistribution']
        assert rows[0] == {'status': 'ready_to_move', 'count': 2, 'percentage': 50}
        assert {r['status'] for r in rows} == {'pre_launch', 'ready_to_move', 'completed'}

    def test_amenity_prevalence_uses_fixed_vocabulary(self):
        records = [
            make_competitor(1, amenities={'gym': True, 'swimmingPool': True, 'helipad': True}),
            make_competitor(2, amenities={'gym': True, 'swimmingPool': False}),
        ]
        rows = _builder(records).build_overview('org-1', 'Pune', 'Baner')['amenityPrevalence']
        assert rows == [
            {'amenity': 'gym', 'count': 2, 'percentage': 100},
            {'amenity': 'swimmingPool', 'count': 1, 'percentage': 50},
        ]


class TestDataQuality:

    @pytest.mark.parametrize("age_days,expected", [
        (0, 'fresh'),
        (29, 'fresh'),
        (45, 'recent'),
        (90, 'recent'),
        (91, 'stale'),
    ])
    def test_classify_age(self, age_days, expected):
        assert classify_age(NOW - timedelta(days=age_days), NOW) == expected

    def test_unknown_collection_date_is_stale(self):
        assert classify_age(None, NOW) == 'stale'

    def test_data_quality_block(self):
        records = [
            make_competitor(1, dataCollectionDate=NOW - timedelta(days=5), lastVerifiedAt=NOW,
                            confidenceScore=80),
            make_competitor(2, dataCollectionDate=NOW - timedelta(days=60), confidenceScore=None),
            make_competitor(3, dataCollectionDate=NOW - timedelta(days=200), confidenceScore=20),
        ]
        quality = _builder(records).build_overview('org-1', 'Pune', 'Baner')['dataQuality']
        assert quality == {
            'totalDataPoints': 3,
            'verifiedDataPoints': 1,
            'freshDataPoints': 1,
            'recentDataPoints': 1,
            'staleDataPoints': 1,
            'averageConfidenceScore': 50,
        }


class TestDataFreshness:

    def test_empty(self):
        freshness = compute_data_freshness([], NOW)
        assert freshness['overallFreshnessScore'] == 0
        assert freshness['recommendation'].startswith('No competitive data')

    def test_score_and_stale_recommendation(self):
        records = [
            make_competitor(1, dataCollectionDate=NOW - timedelta(days=1)),
            make_competitor(2, dataCollectionDate=NOW - timedelta(days=40)),
            make_competitor(3, dataCollectionDate=NOW - timedelta(days=120)),
        ]
        freshness = compute_data_freshness(records, NOW)
        # (100 + 50 + 10) / 3
        assert freshness['overallFreshnessScore'] == 53
        assert freshness['staleCount'] == 1
        assert freshness['oldestDataDate'] == NOW - timedelta(days=120)
        assert freshness['newestDataDate'] == NOW - timedelta(days=1)
        assert '1 competitor record is stale' in freshness['recommendation']

    def test_mostly_recent_recommendation(self):
        records = [
            make_competitor(1, dataCollectionDate=NOW - timedelta(days=40)),
            make_competitor(2, dataCollectionDate=NOW - timedelta(days=50)),
            make_competitor(3, dataCollectionDate=NOW - timedelta(days=2)),
        ]
        freshness = compute_data_freshness(records, NOW)
        assert freshness['recommendation'] == 'Most data is 30-90 days old. Consider refreshing soon.'

    def test_all_fresh_has_no_recommendation(self):
        records = [make_competitor(1, dataCollectionDate=NOW)]
        freshness = compute_data_freshness(records, NOW)
        assert freshness['overallFreshnessScore'] == 100
        assert freshness['recommendation'] is None
