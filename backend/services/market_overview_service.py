"""
Market Overview Service - Aggregated competitor statistics for one locality

Builds the market summary served by /market-overview and persisted into
daily snapshots:
- price-per-sqft distribution on the outlier-cleaned series
- floor-rise charge range
- unit-type, lifecycle-status and amenity mixes
- data-quality block (fresh / recent / stale inputs, confidence)
- fingerprint of the input set for cache keys

An empty locality is a normal outcome: {"totalProjects": 0, "message": ...}.

Usage:
    builder = MarketOverviewBuilder(SqlCompetitorStore())
    overview = builder.build_overview(org_id, "Pune", "Baner")
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from constants import (
    AMENITY_NAMES,
    DEFAULT_CONFIDENCE_SCORE,
    FRESH,
    FRESH_MAX_AGE_DAYS,
    RECENT,
    RECENT_MAX_AGE_DAYS,
    STALE,
)
from services.data_fingerprint import compute_data_fingerprint
from services.market_stats import mean, percentage, summarize_prices, summarize_range
from utils.clock import age_in_days, utc_now

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = 'No competitor data for this locality'


# =============================================================================
# RECORD ACCESSORS
# =============================================================================

def representative_price(record: Dict[str, Any]) -> Optional[float]:
    """Average price per sqft of a competitor, or None when not priced."""
    price = ((record.get('pricing') or {}).get('pricePerSqft') or {}).get('avg')
    return price if price and price > 0 else None


def confidence_of(record: Dict[str, Any]) -> float:
    score = record.get('confidenceScore')
    return DEFAULT_CONFIDENCE_SCORE if score is None else score


# =============================================================================
# FRESHNESS
# =============================================================================

def classify_age(collected_at: Optional[datetime], now: datetime) -> str:
    """fresh (< 30 days), recent (30-90 days) or stale (> 90 days / unknown)."""
    if collected_at is None:
        return STALE
    days = age_in_days(collected_at, now)
    if days < FRESH_MAX_AGE_DAYS:
        return FRESH
    if days <= RECENT_MAX_AGE_DAYS:
        return RECENT
    return STALE


def freshness_counts(records: Iterable[Dict[str, Any]], now: datetime) -> Dict[str, int]:
    counts = Counter(classify_age(r.get('dataCollectionDate'), now) for r in records)
    return {
        'freshCount': counts.get(FRESH, 0),
        'recentCount': counts.get(RECENT, 0),
        'staleCount': counts.get(STALE, 0),
    }


def compute_data_freshness(records: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    """
    Freshness summary shown next to competitor lists and on the dashboard.

    Score weights: fresh 100, recent 50, stale 10 (averaged, capped at 100).
    """
    if not records:
        return {
            'freshCount': 0,
            'recentCount': 0,
            'staleCount': 0,
            'oldestDataDate': None,
            'newestDataDate': None,
            'overallFreshnessScore': 0,
            'recommendation': 'No competitive data available. Start by adding competitors or running AI Research.',
        }

    counts = freshness_counts(records, now)
    fresh, recent, stale = counts['freshCount'], counts['recentCount'], counts['staleCount']
    total = len(records)
    dates = [r['dataCollectionDate'] for r in records if r.get('dataCollectionDate')]
    score = round((fresh * 100 + recent * 50 + stale * 10) / total)

    recommendation = None
    if stale > 0:
        noun = 'records are' if stale > 1 else 'record is'
        recommendation = (
            f"{stale} competitor {noun} stale (>{RECENT_MAX_AGE_DAYS} days old). "
            "Consider running AI Research to refresh."
        )
    elif recent > total / 2:
        recommendation = 'Most data is 30-90 days old. Consider refreshing soon.'

    return {
        **counts,
        'oldestDataDate': min(dates) if dates else None,
        'newestDataDate': max(dates) if dates else None,
        'overallFreshnessScore': min(score, 100),
        'recommendation': recommendation,
    }


def build_data_quality(records: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    counts = freshness_counts(records, now)
    return {
        'totalDataPoints': len(records),
        'verifiedDataPoints': sum(1 for r in records if r.get('lastVerifiedAt')),
        'freshDataPoints': counts['freshCount'],
        'recentDataPoints': counts['recentCount'],
        'staleDataPoints': counts['staleCount'],
        'averageConfidenceScore': round(mean([confidence_of(r) for r in records])),
    }


# =============================================================================
# DISTRIBUTIONS
# =============================================================================

def _distribution(counts: Counter, denominator: float, label: str) -> List[Dict[str, Any]]:
    """Rows of {label, count, percentage}, largest first, ties by label."""
    rows = [
        {label: key, 'count': count, 'percentage': percentage(count, denominator)}
        for key, count in counts.items()
    ]
    rows.sort(key=lambda row: (-row['count'], str(row[label])))
    return rows


def unit_type_distribution(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Observed units per type; an entry without a count stands for one unit."""
    counts = Counter()
    for record in records:
        for entry in record.get('unitMix') or []:
            unit_type = entry.get('unitType') or 'Unknown'
            counts[unit_type] += entry.get('totalCount') or 1
    return _distribution(counts, sum(counts.values()), 'unitType')


def status_distribution(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    counts = Counter(r.get('projectStatus') for r in records)
    return _distribution(counts, len(records), 'status')


def amenity_prevalence(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Share of projects carrying each amenity of the fixed vocabulary."""
    counts = Counter()
    for record in records:
        amenities = record.get('amenities') or {}
        for name in AMENITY_NAMES:
            if amenities.get(name):
                counts[name] += 1
    return _distribution(counts, len(records), 'amenity')


# =============================================================================
# BUILDER
# =============================================================================

class MarketOverviewBuilder:
    """
    Aggregates active competitor records for a locality.

    Args:
        store: object exposing find_active(org, city, area, ...) -> [dict]
        clock: returns the current naive-UTC datetime
    """

    def __init__(self, store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def load_competitors(self, organization_id: str, city: str, area: str) -> List[Dict[str, Any]]:
        return self.store.find_active(organization_id, city.strip(), area.strip())

    def build_overview(self, organization_id: str, city: str, area: str) -> Dict[str, Any]:
        competitors = self.load_competitors(organization_id, city, area)
        return self.summarize(competitors)

    def summarize(self, competitors: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Market summary for an already-loaded competitor set."""
        if not competitors:
            return {'totalProjects': 0, 'message': NO_DATA_MESSAGE}

        now = self.clock()
        price_per_sqft = summarize_prices([representative_price(c) for c in competitors])
        if price_per_sqft['outliersRemoved']:
            logger.info("Removed %d price outliers from %d competitors",
                        price_per_sqft['outliersRemoved'], len(competitors))

        floor_rise = summarize_range([
            (c.get('pricing') or {}).get('floorRiseCharge') for c in competitors
        ])

        return {
            'totalProjects': len(competitors),
            'totalUnitsInMarket': sum(c.get('totalUnits') or 0 for c in competitors),
            'pricePerSqft': price_per_sqft,
            'floorRiseCharge': floor_rise,
            'unitTypeDistribution': unit_type_distribution(competitors),
            'projectStatusDistribution': status_distribution(competitors),
            'amenityPrevalence': amenity_prevalence(competitors),
            'dataQuality': build_data_quality(competitors, now),
            'dataHash': compute_data_fingerprint(competitors),
        }
