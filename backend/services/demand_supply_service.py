"""
Demand-Supply Service - Unit-type inventory and lifecycle pipeline

Surfaces over/undersupply signals for a locality:
- supply per unit type (total, available, projects, avg price per sqft)
- pipeline by lifecycle stage: upcoming / active / completed
- supply concentration: each unit type's share of total market supply (the
  pipeline total of project units), largest first
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List

from constants import ACTIVE_STATUSES, COMPLETED, PROJECT_STATUSES, UPCOMING_STATUSES
from services.market_stats import mean, percentage

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = 'No competitor data available'


def supply_by_unit_type(competitors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Aggregate unit-mix entries per unit type.

    Average price uses only entries that carry a pricePerSqftRange (both
    bounds contribute); a type with no priced entry reports None.
    """
    totals: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for competitor in competitors:
        for entry in competitor.get('unitMix') or []:
            unit_type = entry.get('unitType') or 'Unknown'
            bucket = totals.setdefault(
                unit_type, {'total': 0, 'available': 0, 'projects': 0, 'prices': []}
            )
            bucket['total'] += entry.get('totalCount') or 0
            bucket['available'] += entry.get('availableCount') or 0
            bucket['projects'] += 1
            price_range = entry.get('pricePerSqftRange') or {}
            for bound in ('min', 'max'):
                if price_range.get(bound):
                    bucket['prices'].append(price_range[bound])

    return [
        {
            'unitType': unit_type,
            'totalUnits': data['total'],
            'availableUnits': data['available'],
            'projectCount': data['projects'],
            'avgPricePerSqft': round(mean(data['prices'])) if data['prices'] else None,
        }
        for unit_type, data in totals.items()
    ]


def supply_pipeline(competitors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Total units bucketed by project lifecycle status."""
    breakdown = {status: 0 for status in PROJECT_STATUSES}
    for competitor in competitors:
        status = competitor.get('projectStatus')
        if status in breakdown:
            breakdown[status] += competitor.get('totalUnits') or 0

    return {
        'upcoming': sum(breakdown[s] for s in UPCOMING_STATUSES),
        'active': sum(breakdown[s] for s in ACTIVE_STATUSES),
        'completed': breakdown[COMPLETED],
        'breakdown': breakdown,
    }


def supply_concentration(by_type: List[Dict[str, Any]], total_supply: int) -> List[Dict[str, Any]]:
    """
    Each unit type's share of total market supply, largest first.

    Shares are taken against the project-level unit total, so they need not
    sum to 100 when unit-mix counts are incomplete. Empty when total is 0.
    """
    if total_supply <= 0:
        return []
    shares = [
        {'type': row['unitType'], 'units': row['totalUnits'],
         'share': percentage(row['totalUnits'], total_supply)}
        for row in by_type
    ]
    shares.sort(key=lambda row: (-row['units'], row['type']))
    return [{'type': row['type'], 'share': row['share']} for row in shares]


class DemandSupplyAnalyzer:
    """
    Args:
        store: object exposing find_active(org, city, area, ...) -> [dict]
    """

    def __init__(self, store):
        self.store = store

    def analyze(self, organization_id: str, city: str, area: str) -> Dict[str, Any]:
        competitors = self.store.find_active(organization_id, city.strip(), area.strip())
        if not competitors:
            return {'totalProjects': 0, 'message': NO_DATA_MESSAGE}

        by_type = supply_by_unit_type(competitors)
        pipeline = supply_pipeline(competitors)
        total_supply = sum(pipeline['breakdown'].values())

        return {
            'totalProjects': len(competitors),
            'totalSupply': total_supply,
            'supplyByUnitType': by_type,
            'supplyPipeline': pipeline,
            'marketSaturation': {
                'projectDensity': len(competitors),
                'supplyConcentration': supply_concentration(by_type, total_supply),
            },
        }
