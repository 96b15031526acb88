"""
Competitor and project lookups backed by SQLAlchemy.

These are the collaborators the market services receive through their
constructors. Services only ever see plain dicts (CompetitorProject.to_dict()),
so in-memory stand-ins work the same way in tests.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from models.competitor_project import CompetitorProject
from models.database import db
from models.market_snapshot import locality_key
from models.project import Project

logger = logging.getLogger(__name__)


class SqlCompetitorStore:
    """Read side of competitor data for one database session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def _locality_query(self, organization_id: str, city: str, area: str):
        return self.session.query(CompetitorProject).filter(
            CompetitorProject.organization_id == organization_id,
            func.lower(CompetitorProject.city) == locality_key(city),
            func.lower(CompetitorProject.area) == locality_key(area),
            CompetitorProject.is_active.is_(True),
        )

    def find_active(
        self,
        organization_id: str,
        city: str,
        area: str,
        limit: Optional[int] = None,
        order_by_confidence: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Active competitors for a locality (case-insensitive city/area match).

        Ordering is deterministic: by id, or by confidence desc then id when
        order_by_confidence is set. Fingerprints depend on it.
        """
        query = self._locality_query(organization_id, city, area)
        if order_by_confidence:
            query = query.order_by(CompetitorProject.confidence_score.desc(), CompetitorProject.id)
        else:
            query = query.order_by(CompetitorProject.id)
        if limit:
            query = query.limit(limit)
        return [c.to_dict() for c in query.all()]

    def list_tracked_localities(self) -> List[Dict[str, Any]]:
        """Distinct (organization, city, area) groups that have active competitors."""
        city = func.lower(CompetitorProject.city)
        area = func.lower(CompetitorProject.area)
        rows = (
            self.session.query(
                CompetitorProject.organization_id,
                func.min(CompetitorProject.city),
                func.min(CompetitorProject.area),
                func.count(CompetitorProject.id),
            )
            .filter(CompetitorProject.is_active.is_(True))
            .group_by(CompetitorProject.organization_id, city, area)
            .order_by(CompetitorProject.organization_id, city, area)
            .all()
        )
        return [
            {'organizationId': org, 'city': c, 'area': a, 'count': count}
            for org, c, a, count in rows
        ]


class SqlProjectLookup:
    """Resolves the organization's own project for AI analysis."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def get_project(self, organization_id: str, project_id) -> Optional[Dict[str, Any]]:
        try:
            pk = int(project_id)
        except (TypeError, ValueError):
            logger.debug("Non-numeric project id %r", project_id)
            return None
        project = self.session.query(Project).filter(
            Project.id == pk,
            Project.organization_id == organization_id,
        ).first()
        return project.to_dict() if project else None
