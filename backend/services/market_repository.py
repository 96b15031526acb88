"""
Persistence for derived market artifacts: daily snapshots and cached analyses.

Both tables are written with an explicit upsert against their unique key:
read the row for the key, update it if present, insert otherwise. If a
concurrent writer inserts the same key first, the IntegrityError is rolled
back and the write is replayed as an update. Last writer wins; both writers
compute the same deterministic result from the same data.
"""
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from models.competitive_analysis import CompetitiveAnalysis
from models.database import db
from models.market_snapshot import MarketDataSnapshot, locality_key

logger = logging.getLogger(__name__)


def _upsert(session, find: Callable, create: Callable, apply: Callable):
    """
    Read-then-write under a unique key with one conflict replay.

    Args:
        find: returns the existing row or None
        create: returns a new transient row for the key
        apply: copies the values onto a row
    """
    row = find()
    if row is None:
        row = create()
        session.add(row)
    apply(row)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("Upsert conflict on %s, replaying as update", type(row).__name__)
        row = find()
        if row is None:
            raise
        apply(row)
        session.commit()
    return row


class SqlSnapshotRepository:
    """Daily market snapshots keyed on (organization, city, area, day)."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _scope(self, organization_id: str, city: str, area: str):
        return self.session.query(MarketDataSnapshot).filter(
            MarketDataSnapshot.organization_id == organization_id,
            MarketDataSnapshot.city_key == locality_key(city),
            MarketDataSnapshot.area_key == locality_key(area),
        )

    def get_previous(self, organization_id: str, city: str, area: str,
                     before_date: date) -> Optional[Dict[str, Any]]:
        """Most recent snapshot strictly before before_date."""
        row = (
            self._scope(organization_id, city, area)
            .filter(MarketDataSnapshot.snapshot_date < before_date)
            .order_by(MarketDataSnapshot.snapshot_date.desc())
            .first()
        )
        return row.to_dict() if row else None

    def list_since(self, organization_id: str, city: str, area: str,
                   since_date: date) -> List[Dict[str, Any]]:
        """Snapshots on or after since_date, ascending by date."""
        rows = (
            self._scope(organization_id, city, area)
            .filter(MarketDataSnapshot.snapshot_date >= since_date)
            .order_by(MarketDataSnapshot.snapshot_date.asc())
            .all()
        )
        return [r.to_dict() for r in rows]

    def upsert(self, organization_id: str, city: str, area: str,
               snapshot_date: date, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert or overwrite the snapshot for one locality-day.

        values keys: marketMetrics, trends, dataQuality, dataFingerprint,
        sourceCompetitorIds, generatedBy
        """
        def find():
            return (
                self._scope(organization_id, city, area)
                .filter(MarketDataSnapshot.snapshot_date == snapshot_date)
                .first()
            )

        def create():
            return MarketDataSnapshot(
                organization_id=organization_id,
                city_key=locality_key(city),
                area_key=locality_key(area),
                snapshot_date=snapshot_date,
            )

        def apply(row):
            row.city = city.strip()
            row.area = area.strip()
            row.market_metrics = values.get('marketMetrics') or {}
            row.trends = values.get('trends') or {}
            row.data_quality = values.get('dataQuality') or {}
            row.data_fingerprint = values.get('dataFingerprint')
            row.source_competitor_ids = values.get('sourceCompetitorIds') or []
            row.generated_by = values.get('generatedBy') or 'on_demand'

        row = _upsert(self.session, find, create, apply)
        return row.to_dict()


class SqlAnalysisCacheRepository:
    """Cached AI analyses keyed on (organization, project, analysis type)."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _find(self, organization_id: str, project_id, analysis_type: str):
        return self.session.query(CompetitiveAnalysis).filter(
            CompetitiveAnalysis.organization_id == organization_id,
            CompetitiveAnalysis.project_id == str(project_id),
            CompetitiveAnalysis.analysis_type == analysis_type,
        ).first()

    def get(self, organization_id: str, project_id, analysis_type: str,
            now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        Cached entry for the key, or None.

        When now is given, an entry past its expiry is treated as absent
        whether or not it has been purged yet.
        """
        row = self._find(organization_id, project_id, analysis_type)
        if row is None:
            return None
        if now is not None and row.expires_at <= now:
            return None
        return row.to_dict()

    def upsert(self, organization_id: str, project_id, analysis_type: str,
               values: Dict[str, Any]) -> Dict[str, Any]:
        """
        values keys: city, area, competitorIds, results, recommendations,
        marketPositioning, metadata, expiresAt, dataFingerprint, requestedBy
        """
        def find():
            return self._find(organization_id, project_id, analysis_type)

        def create():
            return CompetitiveAnalysis(
                organization_id=organization_id,
                project_id=str(project_id),
                analysis_type=analysis_type,
            )

        def apply(row):
            competitor_ids = values.get('competitorIds') or []
            row.city = values['city']
            row.area = values['area']
            row.competitor_ids = competitor_ids
            row.competitor_count = len(competitor_ids)
            row.results = values.get('results') or {}
            row.recommendations = values.get('recommendations') or []
            row.market_positioning = values.get('marketPositioning')
            row.analysis_metadata = values.get('metadata') or {}
            row.expires_at = values['expiresAt']
            row.is_expired = False
            row.data_fingerprint = values.get('dataFingerprint')
            row.requested_by = values.get('requestedBy')

        row = _upsert(self.session, find, create, apply)
        return row.to_dict()

    def expire_locality(self, organization_id: str, city: str, area: str) -> int:
        """
        Flag every cached analysis of a locality expired (its competitor set
        changed). Returns the number of entries flagged.
        """
        flagged = (
            self.session.query(CompetitiveAnalysis)
            .filter(
                CompetitiveAnalysis.organization_id == organization_id,
                func.lower(func.trim(CompetitiveAnalysis.city)) == locality_key(city),
                func.lower(func.trim(CompetitiveAnalysis.area)) == locality_key(area),
                CompetitiveAnalysis.is_expired.is_(False),
            )
            .update({CompetitiveAnalysis.is_expired: True}, synchronize_session=False)
        )
        self.session.commit()
        return flagged

    def purge_expired(self, now: datetime) -> int:
        """Physically delete entries past expiry or flagged expired."""
        deleted = (
            self.session.query(CompetitiveAnalysis)
            .filter(or_(CompetitiveAnalysis.expires_at <= now,
                        CompetitiveAnalysis.is_expired.is_(True)))
            .delete(synchronize_session=False)
        )
        self.session.commit()
        logger.info("Purged %d expired cached analyses", deleted)
        return deleted
