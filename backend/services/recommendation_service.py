"""
Recommendation Service - Cached AI competitive analysis per project

Request flow for generate_analysis():

    Requested -> CacheCheck -> (CacheHit | GenerateNew) -> Persisted -> Returned

CacheCheck:
    A cached row is served only when it is not flagged expired, the clock is
    before its expires_at, and its stored fingerprint equals the fingerprint
    of the live competitor set. A data change invalidates exactly like time
    does. force_refresh skips the check.

GenerateNew:
    1. Resolve the project; it must carry city and area.
    2. Load the top-N competitors by confidence for that locality.
    3. Drop competitors priced outside the IQR-cleaned range (unpriced kept).
    4. Call the reasoning engine: at most len(GENERATION_TEMPERATURES)
       attempts, lower temperature on the retry. Output must parse as JSON
       and validate against the analysis type's schema.
    5. Upsert on (organization, project, analysis type) with a fixed TTL.

Collaborators are injected so the orchestrator never builds a database
session or SDK client itself.

Usage:
    orchestrator = RecommendationOrchestrator(
        project_lookup=SqlProjectLookup().get_project,
        competitor_lookup=lambda org, city, area, limit: store.find_active(
            org, city, area, limit=limit, order_by_confidence=True),
        analysis_repository=SqlAnalysisCacheRepository(),
        reasoning_engine=AnthropicReasoningClient(),
        overview_builder=MarketOverviewBuilder(store),
    )
    analysis = orchestrator.generate_analysis(org_id, project_id, 'pricing_recommendations')
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from constants import (
    ANALYSIS_TYPES,
    DEFAULT_ANALYSIS_TYPE,
    GENERATION_TEMPERATURES,
    PROMPT_VERSION,
)
from services.analysis_prompts import (
    SYSTEM_PROMPT,
    build_user_prompt,
    extract_market_positioning,
    parse_json_response,
    validate_analysis_result,
)
from services.data_fingerprint import compute_data_fingerprint
from services.errors import (
    AnalysisGenerationError,
    InvalidAnalysisTypeError,
    NoComparableDataError,
    ProjectLocationMissingError,
    ProjectNotFoundError,
    ReasoningEngineUnavailable,
)
from services.market_overview_service import confidence_of, freshness_counts, representative_price
from services.market_stats import mean, remove_outliers
from utils.clock import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=24)
DEFAULT_COMPETITOR_LIMIT = 20


# =============================================================================
# DATA QUALITY
# =============================================================================

def assess_data_quality(competitors: List[Dict[str, Any]], now: datetime) -> str:
    """
    Tier for response metadata only; never gates generation.

    high:   >= 5 competitors, >= 70% fresh, avg confidence >= 60
    medium: >= 3 competitors, >= 40% fresh, avg confidence >= 40
    low:    >= 2 competitors
    """
    total = len(competitors)
    if total == 0:
        return 'very_low'

    fresh_ratio = freshness_counts(competitors, now)['freshCount'] / total
    avg_confidence = mean([confidence_of(c) for c in competitors])

    if total >= 5 and fresh_ratio >= 0.7 and avg_confidence >= 60:
        return 'high'
    if total >= 3 and fresh_ratio >= 0.4 and avg_confidence >= 40:
        return 'medium'
    if total >= 2:
        return 'low'
    return 'very_low'


# =============================================================================
# PAYLOAD PREPARATION
# =============================================================================

def filter_price_outliers(competitors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep competitors priced within the cleaned min/max; unpriced always kept."""
    prices = [p for p in (representative_price(c) for c in competitors) if p is not None]
    cleaned = remove_outliers(prices).cleaned
    if not cleaned:
        return list(competitors)

    low, high = cleaned[0], cleaned[-1]
    kept = []
    for competitor in competitors:
        price = representative_price(competitor)
        if price is None or low <= price <= high:
            kept.append(competitor)
    return kept


def slim_competitor(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'projectName': record.get('projectName'),
        'developerName': record.get('developerName'),
        'projectStatus': record.get('projectStatus'),
        'totalUnits': record.get('totalUnits'),
        'pricing': record.get('pricing'),
        'unitMix': [
            {
                'unitType': u.get('unitType'),
                'carpetAreaRange': u.get('carpetAreaRange'),
                'priceRange': u.get('priceRange'),
                'totalCount': u.get('totalCount'),
            }
            for u in record.get('unitMix') or []
        ],
        'amenities': record.get('amenities'),
        'confidenceScore': record.get('confidenceScore'),
    }


def slim_project(project: Dict[str, Any]) -> Dict[str, Any]:
    keys = ('name', 'type', 'status', 'location', 'totalUnits', 'priceRange',
            'targetRevenue', 'launchDate', 'amenities', 'pricingRules')
    return {key: project.get(key) for key in keys}


def is_cache_hit(entry: Optional[Dict[str, Any]], now: datetime, fingerprint: str) -> bool:
    if not entry:
        return False
    return (
        not entry.get('isExpired')
        and entry.get('expiresAt') is not None
        and now < entry['expiresAt']
        and entry.get('dataHashAtGeneration') == fingerprint
    )


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RecommendationOrchestrator:
    """
    Args:
        project_lookup: (org, project_id) -> project dict or None
        competitor_lookup: (org, city, area, limit) -> competitor dicts,
            highest confidence first
        analysis_repository: exposes get(org, project, type, now) and upsert()
        reasoning_engine: ReasoningEngine
        overview_builder: MarketOverviewBuilder (market context for the prompt)
        clock: returns the current naive-UTC datetime
        cache_ttl: lifetime of a generated analysis
        competitor_limit: max competitors sent to the reasoning engine
    """

    def __init__(
        self,
        project_lookup: Callable,
        competitor_lookup: Callable,
        analysis_repository,
        reasoning_engine,
        overview_builder,
        clock: Callable[[], datetime] = utc_now,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        competitor_limit: int = DEFAULT_COMPETITOR_LIMIT,
    ):
        self.project_lookup = project_lookup
        self.competitor_lookup = competitor_lookup
        self.analysis_repository = analysis_repository
        self.reasoning_engine = reasoning_engine
        self.overview_builder = overview_builder
        self.clock = clock
        self.cache_ttl = cache_ttl
        self.competitor_limit = competitor_limit

    def generate_analysis(
        self,
        organization_id: str,
        project_id,
        analysis_type: str = DEFAULT_ANALYSIS_TYPE,
        force_refresh: bool = False,
        requested_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Serve a cached analysis or generate and cache a new one.

        Returns:
            Stored analysis dict plus fromCache

        Raises:
            InvalidAnalysisTypeError, ProjectNotFoundError,
            ProjectLocationMissingError, NoComparableDataError,
            AnalysisGenerationError, ReasoningEngineUnavailable
        """
        if analysis_type not in ANALYSIS_TYPES:
            raise InvalidAnalysisTypeError(
                f"Invalid analysis type {analysis_type!r}. Must be one of: {', '.join(ANALYSIS_TYPES)}"
            )

        started = time.monotonic()

        project = self.project_lookup(organization_id, project_id)
        if not project:
            raise ProjectNotFoundError(f"Project {project_id} not found", project_id=project_id)

        location = project.get('location') or {}
        city = (location.get('city') or '').strip()
        area = (location.get('area') or '').strip()
        if not city or not area:
            raise ProjectLocationMissingError(
                'Project must have location.city and location.area set', project_id=project_id
            )

        competitors = self.competitor_lookup(organization_id, city, area, self.competitor_limit)
        if not competitors:
            raise NoComparableDataError(
                f"No competitor data found for {area}, {city}. Add competitors or run AI Research first.",
                city=city, area=area,
            )

        fingerprint = compute_data_fingerprint(competitors)

        if not force_refresh:
            checked_at = self.clock()
            cached = self.analysis_repository.get(
                organization_id, project_id, analysis_type, now=checked_at
            )
            if is_cache_hit(cached, checked_at, fingerprint):
                logger.info("Analysis cache hit: project=%s type=%s", project_id, analysis_type)
                return {**cached, 'fromCache': True}
            logger.info("Analysis cache miss: project=%s type=%s (%s)", project_id, analysis_type,
                        'stale' if cached else 'absent')

        filtered = filter_price_outliers(competitors)
        if len(filtered) < len(competitors):
            logger.info("Dropped %d outlier-priced competitors from prompt",
                        len(competitors) - len(filtered))

        overview = self.overview_builder.build_overview(organization_id, city, area)
        user_prompt = build_user_prompt(
            analysis_type,
            slim_project(project),
            [slim_competitor(c) for c in filtered],
            overview,
        )

        results, attempts = self._generate(analysis_type, user_prompt)

        now = self.clock()
        metadata = {
            'model': getattr(self.reasoning_engine, 'model_name', None),
            'generationTimeMs': int((time.monotonic() - started) * 1000),
            'promptVersion': PROMPT_VERSION,
            'dataQuality': assess_data_quality(competitors, now),
            'competitorDataFreshness': freshness_counts(competitors, now),
            'attempts': attempts,
        }

        stored = self.analysis_repository.upsert(
            organization_id, project_id, analysis_type,
            {
                'city': city,
                'area': area,
                'competitorIds': [c.get('id') for c in competitors],
                'results': results,
                'recommendations': results.get('recommendations') or [],
                'marketPositioning': extract_market_positioning(results),
                'metadata': metadata,
                'expiresAt': now + self.cache_ttl,
                'dataFingerprint': fingerprint,
                'requestedBy': requested_by,
            },
        )
        logger.info("Analysis generated: project=%s type=%s attempts=%d in %dms",
                    project_id, analysis_type, attempts, metadata['generationTimeMs'])
        return {**stored, 'fromCache': False}

    def _generate(self, analysis_type: str, user_prompt: str):
        """Bounded retry over GENERATION_TEMPERATURES. Returns (results, attempts)."""
        last_error = None
        for attempt, temperature in enumerate(GENERATION_TEMPERATURES, start=1):
            try:
                raw = self.reasoning_engine.complete(SYSTEM_PROMPT, user_prompt, temperature)
                parsed = parse_json_response(raw)
                return validate_analysis_result(analysis_type, parsed), attempt
            except ReasoningEngineUnavailable:
                raise
            except Exception as e:
                last_error = e
                logger.warning("Analysis attempt %d/%d failed (temperature=%s): %s",
                               attempt, len(GENERATION_TEMPERATURES), temperature, e)

        raise AnalysisGenerationError(
            f"AI analysis failed after {len(GENERATION_TEMPERATURES)} attempts: {last_error}",
            analysis_type=analysis_type,
        ) from last_error
