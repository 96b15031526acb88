"""
Market Trends Service - Time series over persisted snapshots

Trend data accumulates only as snapshots are generated, so an empty window
is a normal response ({"dataPoints": 0, "message": ...}), not an error.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from dateutil.relativedelta import relativedelta

from constants import TREND_MAX_MONTHS
from utils.clock import utc_now
from utils.normalize import ValidationError

logger = logging.getLogger(__name__)

INSUFFICIENT_HISTORY_MESSAGE = (
    'No historical snapshots. Market trends will build over time as snapshots are generated.'
)


class MarketTrendReader:
    """
    Args:
        snapshot_repository: exposes list_since(org, city, area, since_date)
        clock: returns the current naive-UTC datetime
    """

    def __init__(self, snapshot_repository, clock: Callable[[], datetime] = utc_now):
        self.snapshot_repository = snapshot_repository
        self.clock = clock

    def get_trends(self, organization_id: str, city: str, area: str,
                   months: int = 6) -> Dict[str, Any]:
        """
        Price and supply history for the trailing `months` calendar months.

        Raises:
            ValidationError: months outside 1..TREND_MAX_MONTHS
        """
        if months < 1 or months > TREND_MAX_MONTHS:
            raise ValidationError(
                f"months must be between 1 and {TREND_MAX_MONTHS}, got {months}",
                field='months',
                received_value=months,
            )

        since = (self.clock() - relativedelta(months=months)).date()
        snapshots = self.snapshot_repository.list_since(
            organization_id, city.strip(), area.strip(), since
        )
        # Repositories return ascending already; sorting keeps the contract explicit
        snapshots = sorted(snapshots, key=lambda s: s['snapshotDate'])

        if not snapshots:
            return {'dataPoints': 0, 'message': INSUFFICIENT_HISTORY_MESSAGE}

        def price_of(snapshot, key):
            return ((snapshot.get('marketMetrics') or {}).get('pricePerSqft') or {}).get(key) or 0

        def metric_of(snapshot, key):
            return (snapshot.get('marketMetrics') or {}).get(key) or 0

        return {
            'dataPoints': len(snapshots),
            'period': {
                'from': snapshots[0]['snapshotDate'],
                'to': snapshots[-1]['snapshotDate'],
            },
            'priceHistory': [
                {
                    'date': s['snapshotDate'],
                    'avg': price_of(s, 'avg'),
                    'min': price_of(s, 'min'),
                    'max': price_of(s, 'max'),
                    'median': price_of(s, 'median'),
                }
                for s in snapshots
            ],
            'supplyHistory': [
                {
                    'date': s['snapshotDate'],
                    'totalProjects': metric_of(s, 'totalActiveProjects'),
                    'totalUnits': metric_of(s, 'totalUnitsInMarket'),
                }
                for s in snapshots
            ],
            'latestTrends': snapshots[-1].get('trends') or {},
        }
