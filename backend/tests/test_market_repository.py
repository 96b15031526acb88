"""
SQLite-backed tests for the SQL stores and repositories.

Exercises the real models and queries: locality matching, deterministic
ordering, unique-key upserts and expiry purging.
"""

from datetime import date, datetime, timedelta

import pytest

from models.competitive_analysis import CompetitiveAnalysis
from models.competitor_project import CompetitorProject
from models.market_snapshot import MarketDataSnapshot
from models.project import Project
from services.competitor_store import SqlCompetitorStore, SqlProjectLookup
from services.market_repository import (
    SqlAnalysisCacheRepository,
    SqlSnapshotRepository,
    _upsert,
)

NOW = datetime(2025, 6, 15, 10, 0)


def _competitor(name, city='Pune', area='Baner', org='org-1', confidence=70, price=None,
                status='under_construction', **kwargs):
    return CompetitorProject(
        organization_id=org,
        project_name=name,
        developer_name='Acme Developers',
        city=city,
        area=area,
        project_status=status,
        confidence_score=confidence,
        pricing={'pricePerSqft': {'avg': price}} if price else {},
        data_collection_date=datetime(2025, 6, 1),
        **kwargs,
    )


def _snapshot_values(avg=9000, generated_by='manual'):
    return {
        'marketMetrics': {'pricePerSqft': {'avg': avg}, 'totalActiveProjects': 2, 'totalUnitsInMarket': 200},
        'trends': {'pricePerSqftChange': 0},
        'dataQuality': {'totalDataPoints': 2},
        'dataFingerprint': 'f' * 32,
        'sourceCompetitorIds': [1, 2],
        'generatedBy': generated_by,
    }


def _analysis_values(expires_at, fingerprint='abc', city='Pune', area='Baner'):
    return {
        'city': city,
        'area': area,
        'competitorIds': [1, 2, 3],
        'results': {'recommendations': []},
        'recommendations': [],
        'marketPositioning': None,
        'metadata': {'attempts': 1},
        'expiresAt': expires_at,
        'dataFingerprint': fingerprint,
        'requestedBy': 'user-1',
    }


# =============================================================================
# COMPETITOR STORE
# =============================================================================

class TestSqlCompetitorStore:

    @pytest.fixture
    def seeded(self, db_session):
        db_session.add_all([
            _competitor('Skyline', confidence=60, price=9000),
            _competitor('Harbour View', city='pune', area='BANER', confidence=90, price=9500),
            _competitor('Old Mill', confidence=80, is_active=False),
            _competitor('Riverside', area='Wakad'),
            _competitor('Elsewhere', org='org-2'),
        ])
        db_session.commit()
        return db_session

    def test_find_active_case_insensitive(self, seeded):
        rows = SqlCompetitorStore().find_active('org-1', 'PUNE', ' baner ')
        assert [r['projectName'] for r in rows] == ['Skyline', 'Harbour View']

    def test_find_active_by_confidence(self, seeded):
        rows = SqlCompetitorStore().find_active('org-1', 'Pune', 'Baner', order_by_confidence=True)
        assert [r['confidenceScore'] for r in rows] == [90, 60]

    def test_find_active_limit(self, seeded):
        rows = SqlCompetitorStore().find_active('org-1', 'Pune', 'Baner', limit=1, order_by_confidence=True)
        assert [r['projectName'] for r in rows] == ['Harbour View']

    def test_tenant_isolation(self, seeded):
        assert SqlCompetitorStore().find_active('org-2', 'Pune', 'Baner')[0]['projectName'] == 'Elsewhere'
        assert SqlCompetitorStore().find_active('org-3', 'Pune', 'Baner') == []

    def test_list_tracked_localities(self, seeded):
        localities = SqlCompetitorStore().list_tracked_localities()
        summary = {(l['organizationId'], l['area'].lower()): l['count'] for l in localities}
        assert summary == {('org-1', 'baner'): 2, ('org-1', 'wakad'): 1, ('org-2', 'baner'): 1}


class TestSqlProjectLookup:

    def test_get_project(self, db_session):
        project = Project(organization_id='org-1', name='Green Acres', city='Pune', area='Baner', total_units=240)
        db_session.add(project)
        db_session.commit()

        found = SqlProjectLookup().get_project('org-1', str(project.id))
        assert found['name'] == 'Green Acres'
        assert found['location'] == {'city': 'Pune', 'area': 'Baner'}

    def test_other_organization(self, db_session):
        project = Project(organization_id='org-1', name='Green Acres')
        db_session.add(project)
        db_session.commit()

        assert SqlProjectLookup().get_project('org-2', project.id) is None

    def test_non_numeric_id(self, db_session):
        assert SqlProjectLookup().get_project('org-1', 'abc') is None


# =============================================================================
# SNAPSHOTS
# =============================================================================

class TestSqlSnapshotRepository:

    def test_upsert_same_day_overwrites(self, db_session):
        repo = SqlSnapshotRepository()
        repo.upsert('org-1', 'Pune', 'Baner', date(2025, 6, 15), _snapshot_values(avg=9000))
        stored = repo.upsert('org-1', 'pune ', 'baner', date(2025, 6, 15),
                             _snapshot_values(avg=9100, generated_by='scheduled'))

        assert db_session.query(MarketDataSnapshot).count() == 1
        assert stored['marketMetrics']['pricePerSqft']['avg'] == 9100
        assert stored['generatedBy'] == 'scheduled'
        assert stored['snapshotDate'] == date(2025, 6, 15)

    def test_get_previous_and_list_since(self, db_session):
        repo = SqlSnapshotRepository()
        for day, avg in ((1, 9000), (5, 9100), (10, 9200)):
            repo.upsert('org-1', 'Pune', 'Baner', date(2025, 6, day), _snapshot_values(avg=avg))
        repo.upsert('org-1', 'Pune', 'Wakad', date(2025, 6, 9), _snapshot_values(avg=7000))

        previous = repo.get_previous('org-1', 'Pune', 'Baner', date(2025, 6, 10))
        assert previous['snapshotDate'] == date(2025, 6, 5)
        assert repo.get_previous('org-1', 'Pune', 'Baner', date(2025, 6, 1)) is None

        since = repo.list_since('org-1', 'Pune', 'Baner', date(2025, 6, 5))
        assert [s['snapshotDate'] for s in since] == [date(2025, 6, 5), date(2025, 6, 10)]

    def test_conflicting_insert_replayed_as_update(self, db_session):
        repo = SqlSnapshotRepository()
        repo.upsert('org-1', 'Pune', 'Baner', date(2025, 6, 15), _snapshot_values(avg=9000))

        lookups = []

        def find():
            # First lookup misses, as if a concurrent writer had not committed yet
            lookups.append(1)
            if len(lookups) == 1:
                return None
            return db_session.query(MarketDataSnapshot).first()

        def create():
            return MarketDataSnapshot(organization_id='org-1', city_key='pune', area_key='baner',
                                      snapshot_date=date(2025, 6, 15))

        def apply(row):
            row.city, row.area = 'Pune', 'Baner'
            row.market_metrics = {'pricePerSqft': {'avg': 9999}}

        row = _upsert(db_session, find, create, apply)

        assert len(lookups) == 2
        assert db_session.query(MarketDataSnapshot).count() == 1
        assert row.market_metrics['pricePerSqft']['avg'] == 9999


# =============================================================================
# ANALYSIS CACHE
# =============================================================================

class TestSqlAnalysisCacheRepository:

    def test_upsert_and_get(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 7, 'comprehensive', _analysis_values(NOW + timedelta(hours=24)))

        entry = repo.get('org-1', '7', 'comprehensive', now=NOW)
        assert entry['analysisScope']['competitorCount'] == 3
        assert entry['dataHashAtGeneration'] == 'abc'
        assert entry['metadata'] == {'attempts': 1}

    def test_upsert_replaces(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 7, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))
        repo.expire_locality('org-1', 'Pune', 'Baner')
        stored = repo.upsert('org-1', 7, 'comprehensive', _analysis_values(NOW + timedelta(hours=24), 'def'))

        assert db_session.query(CompetitiveAnalysis).count() == 1
        assert stored['isExpired'] is False
        assert stored['dataHashAtGeneration'] == 'def'

    def test_get_past_expiry_is_absent(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 7, 'comprehensive', _analysis_values(NOW))

        assert repo.get('org-1', 7, 'comprehensive', now=NOW) is None
        assert repo.get('org-1', 7, 'comprehensive') is not None

    def test_keyed_by_type_and_organization(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 7, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))

        assert repo.get('org-1', 7, 'launch_timing', now=NOW) is None
        assert repo.get('org-2', 7, 'comprehensive', now=NOW) is None

    def test_expire_locality(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 1, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))
        repo.upsert('org-1', 1, 'launch_timing', _analysis_values(NOW + timedelta(hours=1)))
        repo.upsert('org-1', 2, 'comprehensive', _analysis_values(NOW + timedelta(hours=1), area='Wakad'))
        repo.upsert('org-2', 1, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))

        assert repo.expire_locality('org-1', ' pune', 'BANER') == 2
        assert repo.get('org-1', 1, 'comprehensive', now=NOW)['isExpired'] is True
        assert repo.get('org-1', 2, 'comprehensive', now=NOW)['isExpired'] is False
        assert repo.get('org-2', 1, 'comprehensive', now=NOW)['isExpired'] is False
        # Already flagged rows are not counted again
        assert repo.expire_locality('org-1', 'Pune', 'Baner') == 0

    def test_purge_expired(self, db_session):
        repo = SqlAnalysisCacheRepository()
        repo.upsert('org-1', 1, 'comprehensive', _analysis_values(NOW - timedelta(hours=1)))
        repo.upsert('org-1', 2, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))
        repo.upsert('org-1', 3, 'comprehensive', _analysis_values(NOW + timedelta(hours=1)))
        repo.upsert('org-1', 4, 'comprehensive', _analysis_values(NOW + timedelta(hours=1), area='Wakad'))
        repo.expire_locality('org-1', 'Pune', 'Wakad')

        assert repo.purge_expired(NOW) == 2
        remaining = db_session.query(CompetitiveAnalysis).all()
        assert sorted(r.project_id for r in remaining) == ['2', '3']
