"""
Competitor Service - Curation of competitor records and the dashboard summary

Competitor records are the only input of every market computation. This
module owns their lifecycle:
- create (duplicate guard on organization + project name + area)
- read / update / soft delete
- filtered, paginated listing with a data-freshness summary
- ingestion of imported records (CSV, AI research): create, or fill the
  empty fields of the existing record with the same name and area
- organization dashboard: locality stats, source mix, recently added

Records are never hard-deleted; DELETE deactivates.
"""

import copy
import logging
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models.competitor_project import CompetitorProject
from models.database import db
from models.market_snapshot import locality_key
from services.errors import CompetitorNotFoundError, DuplicateCompetitorError
from services.market_overview_service import (
    compute_data_freshness,
    confidence_of,
    representative_price,
)
from services.market_repository import SqlAnalysisCacheRepository
from services.market_stats import mean
from utils.clock import utc_now
from utils.normalize import ValidationError, to_datetime, to_str

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('projectName', 'developerName', 'projectStatus')

SORTABLE_COLUMNS = {
    'dataCollectionDate': CompetitorProject.data_collection_date,
    'confidenceScore': CompetitorProject.confidence_score,
    'projectName': CompetitorProject.project_name,
    'createdAt': CompetitorProject.created_at,
    'updatedAt': CompetitorProject.updated_at,
    'totalUnits': CompetitorProject.total_units,
}

RECENTLY_ADDED_LIMIT = 5

UNKNOWN_DEVELOPER = 'Unknown'

# Location keys an import may fill; city and area identify the record
FILLABLE_LOCATION_FIELDS = ('state', 'micromarket')


def _coerce_dates(payload: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(payload)
    for field in ('dataCollectionDate', 'lastVerifiedAt'):
        if field in payload:
            payload[field] = to_datetime(payload[field], field=field)
    return payload


def _flatten(doc: Dict[str, Any], prefix: str = ''):
    for key, value in doc.items():
        path = f'{prefix}.{key}' if prefix else key
        if isinstance(value, dict):
            yield from _flatten(value, path)
        else:
            yield path, value


def _is_empty(value) -> bool:
    if isinstance(value, bool):
        return False
    return value is None or value == '' or value == 0 or value == [] or value == {}


def fill_empty_fields(competitor: CompetitorProject, record: Dict[str, Any],
                      paths: Optional[Iterable[str]] = None) -> int:
    """
    Copy values of a camelCase record onto fields the competitor has left
    empty (None, '', 0). Populated fields are never overwritten.

    Args:
        paths: dotted paths (e.g. 'pricing.pricePerSqft.min') allowed to be
            filled; None allows every path in the record

    Returns:
        Number of fields filled
    """
    allowed = set(paths) if paths is not None else None
    pricing = copy.deepcopy(competitor.pricing or {})
    filled = 0

    for path, value in _flatten(record):
        if _is_empty(value) or (allowed is not None and path not in allowed):
            continue
        head, _, rest = path.partition('.')
        if head == 'pricing' and rest:
            *parents, leaf = rest.split('.')
            node = pricing
            for part in parents:
                child = node.setdefault(part, {})
                if not isinstance(child, dict):
                    node = None
                    break
                node = child
            if node is not None and _is_empty(node.get(leaf)):
                node[leaf] = value
                filled += 1
        elif head == 'location' and rest in FILLABLE_LOCATION_FIELDS:
            if _is_empty(getattr(competitor, rest)):
                setattr(competitor, rest, value)
                filled += 1
        elif not rest and head in CompetitorProject.EDITABLE_FIELDS and head != 'dataSource':
            column = CompetitorProject.EDITABLE_FIELDS[head]
            if _is_empty(getattr(competitor, column)):
                setattr(competitor, column, value)
                filled += 1

    if pricing != (competitor.pricing or {}):
        competitor.pricing = pricing
    return filled


class CompetitorService:
    """
    Args:
        session: SQLAlchemy session (defaults to db.session)
        clock: returns the current naive-UTC datetime
        analysis_repository: exposes expire_locality(org, city, area); cached
            analyses of a locality are flagged expired whenever one of its
            competitors is created, edited or deactivated
    """

    def __init__(self, session=None, clock: Callable[[], datetime] = utc_now,
                 analysis_repository=None):
        self._session = session
        self.clock = clock
        self.analysis_repository = analysis_repository or SqlAnalysisCacheRepository(session)

    @property
    def session(self):
        return self._session or db.session

    # =========================================================================
    # CRUD
    # =========================================================================

    def _get(self, organization_id: str, competitor_id) -> CompetitorProject:
        competitor = self.session.query(CompetitorProject).filter(
            CompetitorProject.id == competitor_id,
            CompetitorProject.organization_id == organization_id,
        ).first()
        if competitor is None:
            raise CompetitorNotFoundError('Competitor project not found', competitor_id=competitor_id)
        return competitor

    def _find_duplicate(self, organization_id: str, project_name: str, area: str,
                        exclude_id=None) -> Optional[CompetitorProject]:
        query = self.session.query(CompetitorProject).filter(
            CompetitorProject.organization_id == organization_id,
            func.lower(CompetitorProject.project_name) == locality_key(project_name),
            func.lower(CompetitorProject.area) == locality_key(area),
        )
        if exclude_id is not None:
            query = query.filter(CompetitorProject.id != exclude_id)
        return query.first()

    @staticmethod
    def _duplicate_error(project_name: str, area: str, hint: str = '') -> DuplicateCompetitorError:
        message = f'A competitor project named "{project_name}" already exists in "{area}".'
        return DuplicateCompetitorError(f'{message} {hint}' if hint else message)

    def _commit_or_duplicate(self, project_name: str, area: str):
        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent writer took the (organization, name, area) key
            self.session.rollback()
            raise self._duplicate_error(project_name, area)

    def _expire_analyses(self, organization_id: str, *localities):
        """Flag cached analyses of every touched locality expired."""
        seen = set()
        for city, area in localities:
            key = (locality_key(city), locality_key(area))
            if key in seen:
                continue
            seen.add(key)
            flagged = self.analysis_repository.expire_locality(organization_id, city, area)
            if flagged:
                logger.info("Expired %d cached analyses for %s, %s org=%s", flagged, area, city, organization_id)

    def _apply(self, competitor: CompetitorProject, payload: Dict[str, Any]):
        try:
            competitor.apply_payload(_coerce_dates(payload))
        except ValidationError:
            self.session.rollback()
            raise
        except ValueError as e:
            # Model-level @validates failures (status, type, source, confidence)
            self.session.rollback()
            raise ValidationError(str(e))

    def create(self, organization_id: str, payload: Dict[str, Any],
               user_id: Optional[str] = None) -> Dict[str, Any]:
        for field in REQUIRED_FIELDS:
            if not to_str(payload.get(field)):
                raise ValidationError(f'"{field}" is required', field=field)
        location = payload.get('location') or {}
        city = to_str(location.get('city'))
        area = to_str(location.get('area'))
        if not city or not area:
            raise ValidationError('"location.city" and "location.area" are required', field='location')

        project_name = payload['projectName'].strip()
        if self._find_duplicate(organization_id, project_name, area):
            raise self._duplicate_error(project_name, area, hint='Use PUT to update it.')

        competitor = CompetitorProject(organization_id=organization_id, created_by=user_id)
        self._apply(competitor, payload)
        if competitor.data_collection_date is None:
            competitor.data_collection_date = self.clock()
        self.session.add(competitor)
        self._commit_or_duplicate(project_name, area)
        logger.info("Competitor created: %s (%s, %s) org=%s",
                    competitor.project_name, competitor.area, competitor.city, organization_id)
        self._expire_analyses(organization_id, (competitor.city, competitor.area))
        return competitor.to_dict()

    def get(self, organization_id: str, competitor_id) -> Dict[str, Any]:
        return self._get(organization_id, competitor_id).to_dict()

    def update(self, organization_id: str, competitor_id, payload: Dict[str, Any],
               user_id: Optional[str] = None) -> Dict[str, Any]:
        competitor = self._get(organization_id, competitor_id)
        payload = {k: v for k, v in payload.items() if k not in ('organizationId', 'id', 'createdBy')}
        previous_locality = (competitor.city, competitor.area)

        # The pending rename must not be flushed before the duplicate lookup
        with self.session.no_autoflush:
            self._apply(competitor, payload)
            duplicate = self._find_duplicate(organization_id, competitor.project_name, competitor.area,
                                             exclude_id=competitor.id)
        project_name, area = competitor.project_name, competitor.area
        if duplicate is not None:
            self.session.rollback()
            raise self._duplicate_error(project_name, area)

        competitor.updated_by = user_id
        self._commit_or_duplicate(project_name, area)
        self._expire_analyses(organization_id, previous_locality, (competitor.city, competitor.area))
        return competitor.to_dict()

    def deactivate(self, organization_id: str, competitor_id,
                   user_id: Optional[str] = None) -> Dict[str, Any]:
        competitor = self._get(organization_id, competitor_id)
        competitor.deactivate(user_id)
        self.session.commit()
        logger.info("Competitor deactivated: id=%s org=%s", competitor_id, organization_id)
        self._expire_analyses(organization_id, (competitor.city, competitor.area))
        return competitor.to_dict()

    # =========================================================================
    # INGESTION
    # =========================================================================

    def ingest(self, organization_id: str, record: Dict[str, Any], data_source: str,
               user_id: Optional[str] = None,
               merge_paths: Optional[Iterable[str]] = None) -> Tuple[str, Dict[str, Any], int]:
        """
        Store one imported record.

        A record whose (project name, area) already exists for the
        organization only fills that competitor's empty fields; otherwise a
        new competitor is created with the given data source.

        Returns:
            (outcome, competitor dict, fields filled) where outcome is one of
            'created', 'updated', 'unchanged'

        Raises:
            ValidationError: missing identity or status, or a field the model rejects
            DuplicateCompetitorError: a concurrent writer created the same key
        """
        location = record.get('location') or {}
        project_name = to_str(record.get('projectName'))
        area = to_str(location.get('area'))
        if not project_name:
            raise ValidationError('"projectName" is required', field='projectName')
        if not to_str(location.get('city')) or not area:
            raise ValidationError('"location.city" and "location.area" are required', field='location')

        existing = self._find_duplicate(organization_id, project_name, area)
        if existing is not None:
            try:
                filled = fill_empty_fields(existing, record, merge_paths)
            except ValueError as e:
                self.session.rollback()
                raise ValidationError(str(e))
            if not filled:
                return 'unchanged', existing.to_dict(), 0
            existing.updated_by = user_id
            self._commit_or_duplicate(project_name, area)
            self._expire_analyses(organization_id, (existing.city, existing.area))
            return 'updated', existing.to_dict(), filled

        if not to_str(record.get('projectStatus')):
            raise ValidationError('"projectStatus" is required', field='projectStatus')
        competitor = CompetitorProject(organization_id=organization_id, created_by=user_id)
        self._apply(competitor, {
            **record,
            'projectName': project_name,
            'developerName': to_str(record.get('developerName')) or UNKNOWN_DEVELOPER,
            'projectType': record.get('projectType') or 'residential',
            'dataSource': data_source,
        })
        if competitor.data_collection_date is None:
            competitor.data_collection_date = self.clock()
        self.session.add(competitor)
        self._commit_or_duplicate(project_name, area)
        self._expire_analyses(organization_id, (competitor.city, competitor.area))
        return 'created', competitor.to_dict(), 0

    # =========================================================================
    # LISTING
    # =========================================================================

    def _filtered(self, organization_id: str, filters: Dict[str, Any]):
        query = self.session.query(CompetitorProject).filter(
            CompetitorProject.organization_id == organization_id
        )
        if filters.get('city'):
            query = query.filter(CompetitorProject.city.ilike(f"%{filters['city']}%"))
        if filters.get('area'):
            query = query.filter(CompetitorProject.area.ilike(f"%{filters['area']}%"))
        if filters.get('projectType'):
            query = query.filter(CompetitorProject.project_type == filters['projectType'])
        if filters.get('projectStatus'):
            query = query.filter(CompetitorProject.project_status == filters['projectStatus'])
        if filters.get('dataSource'):
            query = query.filter(CompetitorProject.data_source == filters['dataSource'])
        is_active = filters.get('isActive', True)
        if is_active is not None:
            query = query.filter(CompetitorProject.is_active.is_(is_active))
        return query

    def list(self, organization_id: str, filters: Optional[Dict[str, Any]] = None,
             page: int = 1, limit: int = 20, sort_by: str = 'dataCollectionDate',
             sort_order: str = 'desc') -> Dict[str, Any]:
        """
        Filters: city / area (case-insensitive substring), projectType,
        projectStatus, dataSource, isActive (default True; None for all).
        """
        query = self._filtered(organization_id, filters or {})

        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(
                f"sortBy must be one of {sorted(SORTABLE_COLUMNS)}, got {sort_by!r}",
                field='sortBy', received_value=sort_by,
            )
        column = SORTABLE_COLUMNS[sort_by]
        order = column.asc() if sort_order == 'asc' else column.desc()

        total = query.count()
        rows = (
            query.order_by(order, CompetitorProject.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        data = [r.to_dict() for r in rows]

        return {
            'data': data,
            'dataFreshness': compute_data_freshness(data, self.clock()),
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'totalPages': -(-total // limit) if limit else 0,
            },
        }

    def export_rows(self, organization_id: str,
                    filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Active competitors matching the list filters, ordered by city, area, name."""
        query = self._filtered(organization_id, {**(filters or {}), 'isActive': True})
        rows = query.order_by(
            CompetitorProject.city, CompetitorProject.area, CompetitorProject.project_name,
        ).all()
        return [r.to_dict() for r in rows]

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    def dashboard_summary(self, organization_id: str) -> Dict[str, Any]:
        total = self.session.query(CompetitorProject).filter(
            CompetitorProject.organization_id == organization_id
        ).count()
        active_rows = (
            self.session.query(CompetitorProject)
            .filter(CompetitorProject.organization_id == organization_id,
                    CompetitorProject.is_active.is_(True))
            .order_by(CompetitorProject.id)
            .all()
        )
        active = [r.to_dict() for r in active_rows]

        groups: "OrderedDict[tuple, list]" = OrderedDict()
        for record in active:
            location = record['location']
            key = (locality_key(location['city']), locality_key(location['area']))
            groups.setdefault(key, []).append(record)

        localities = []
        for records in groups.values():
            prices = [p for p in (representative_price(r) for r in records) if p is not None]
            dates = [r['dataCollectionDate'] for r in records if r.get('dataCollectionDate')]
            localities.append({
                'city': records[0]['location']['city'],
                'area': records[0]['location']['area'],
                'competitorCount': len(records),
                'avgConfidenceScore': round(mean([confidence_of(r) for r in records])),
                'avgPricePerSqft': round(mean(prices)),
                'latestDataDate': max(dates) if dates else None,
            })
        localities.sort(key=lambda l: (-l['competitorCount'], l['city'], l['area']))

        sources = Counter(r['dataSource'] for r in active)
        source_distribution = [
            {'source': source, 'count': count}
            for source, count in sorted(sources.items(), key=lambda item: (-item[1], item[0]))
        ]

        recent = sorted(active, key=lambda r: (r['createdAt'], r['id']), reverse=True)
        recently_added = [
            {
                'id': r['id'],
                'projectName': r['projectName'],
                'developerName': r['developerName'],
                'location': {'city': r['location']['city'], 'area': r['location']['area']},
                'pricePerSqftAvg': representative_price(r),
                'dataSource': r['dataSource'],
                'dataCollectionDate': r['dataCollectionDate'],
                'confidenceScore': r['confidenceScore'],
            }
            for r in recent[:RECENTLY_ADDED_LIMIT]
        ]

        return {
            'totalCompetitors': total,
            'activeCompetitors': len(active),
            'localitiesTracked': len(localities),
            'localities': localities,
            'sourceDistribution': source_distribution,
            'recentlyAdded': recently_added,
            'dataFreshness': compute_data_freshness(active, self.clock()),
        }
