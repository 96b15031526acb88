"""
Market Snapshot Service - One persisted market summary per locality per day

generate_snapshot() is idempotent within a calendar day: the row is upserted
on (organization, city, area, today), so a manual request and the scheduled
job racing for the same locality converge on one record.

Trends compare against the most recent snapshot from an earlier day:
- pricePerSqftChange: % change of the cleaned average (2 dp)
- pricePerSqftChangeAbsolute: currency change of the cleaned average
- newProjectsAdded / newUnitsAdded: growth floored at 0
- projectsCompleted: growth in completed-status projects, floored at 0
- supplyChange: % change of total units in market
The first snapshot for a locality has all-zero trends.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from constants import COMPLETED, SNAPSHOT_TRIGGERS
from services.errors import InvalidSnapshotTriggerError
from services.market_stats import percent_change
from utils.clock import utc_now

logger = logging.getLogger(__name__)


def _status_count(metrics: Dict[str, Any], status: str) -> int:
    for row in metrics.get('projectStatusDistribution') or []:
        if row.get('status') == status:
            return row.get('count') or 0
    return 0


def empty_trends() -> Dict[str, Any]:
    return {
        'pricePerSqftChange': 0,
        'pricePerSqftChangeAbsolute': 0,
        'newProjectsAdded': 0,
        'newUnitsAdded': 0,
        'projectsCompleted': 0,
        'supplyChange': 0,
    }


def compute_trends(current: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Period-over-period deltas between two market-metric blocks.

    Args:
        current: marketMetrics of the snapshot being written
        previous: marketMetrics of the prior snapshot, or None

    Returns:
        Trend dict; all zeros when there is no prior snapshot
    """
    trends = empty_trends()
    if not previous:
        return trends

    prev_avg = (previous.get('pricePerSqft') or {}).get('avg') or 0
    curr_avg = (current.get('pricePerSqft') or {}).get('avg') or 0
    if prev_avg > 0:
        trends['pricePerSqftChange'] = percent_change(curr_avg, prev_avg)
        trends['pricePerSqftChangeAbsolute'] = curr_avg - prev_avg

    prev_projects = previous.get('totalActiveProjects') or 0
    curr_projects = current.get('totalActiveProjects') or 0
    trends['newProjectsAdded'] = max(0, curr_projects - prev_projects)

    prev_units = previous.get('totalUnitsInMarket') or 0
    curr_units = current.get('totalUnitsInMarket') or 0
    trends['newUnitsAdded'] = max(0, curr_units - prev_units)
    trends['supplyChange'] = percent_change(curr_units, prev_units)

    trends['projectsCompleted'] = max(
        0, _status_count(current, COMPLETED) - _status_count(previous, COMPLETED)
    )
    return trends


def market_metrics_from_overview(overview: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'totalActiveProjects': overview['totalProjects'],
        'totalUnitsInMarket': overview['totalUnitsInMarket'],
        'pricePerSqft': overview['pricePerSqft'],
        'floorRiseCharge': overview['floorRiseCharge'],
        'unitTypeDistribution': overview['unitTypeDistribution'],
        'projectStatusDistribution': overview['projectStatusDistribution'],
        'amenityPrevalence': overview['amenityPrevalence'],
    }


class MarketSnapshotService:
    """
    Args:
        overview_builder: MarketOverviewBuilder
        snapshot_repository: exposes get_previous() and upsert()
        clock: returns the current naive-UTC datetime
    """

    def __init__(self, overview_builder, snapshot_repository,
                 clock: Callable[[], datetime] = utc_now):
        self.overview_builder = overview_builder
        self.snapshot_repository = snapshot_repository
        self.clock = clock

    def generate_snapshot(self, organization_id: str, city: str, area: str,
                          trigger: str = 'on_demand') -> Optional[Dict[str, Any]]:
        """
        Compute and upsert today's snapshot for a locality.

        Returns:
            The stored snapshot dict, or None when the locality has no competitors
        """
        if trigger not in SNAPSHOT_TRIGGERS:
            raise InvalidSnapshotTriggerError(
                f"Invalid snapshot trigger {trigger!r}. Must be one of: {', '.join(SNAPSHOT_TRIGGERS)}"
            )

        city, area = city.strip(), area.strip()
        competitors = self.overview_builder.load_competitors(organization_id, city, area)
        if not competitors:
            logger.info("No competitors for %s, %s; snapshot skipped", area, city)
            return None

        overview = self.overview_builder.summarize(competitors)
        metrics = market_metrics_from_overview(overview)

        today = self.clock().date()
        previous = self.snapshot_repository.get_previous(organization_id, city, area, today)
        trends = compute_trends(metrics, previous.get('marketMetrics') if previous else None)

        snapshot = self.snapshot_repository.upsert(
            organization_id, city, area, today,
            {
                'marketMetrics': metrics,
                'trends': trends,
                'dataQuality': overview['dataQuality'],
                'dataFingerprint': overview['dataHash'],
                'sourceCompetitorIds': [c.get('id') for c in competitors],
                'generatedBy': trigger,
            },
        )
        logger.info(
            "Snapshot upserted for %s, %s on %s (%s): %d projects, avg psf %s",
            area, city, today, trigger, metrics['totalActiveProjects'],
            metrics['pricePerSqft']['avg'],
        )
        return snapshot
