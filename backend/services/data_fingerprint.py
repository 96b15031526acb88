"""
Competitor Data Fingerprinting

Provides a stable hash over a competitor record set, used to decide whether
a cached AI analysis or snapshot was built from the data that is live now.

Only fields that can move a pricing conclusion are projected:
- record identity (id, name)
- representative price (pricePerSqft.avg)
- last-modified timestamp

Display-only edits (notes, amenities, developer name) leave the hash
unchanged, which keeps the analysis cache from thrashing.
"""
import hashlib
import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List


def _normalize_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def project_competitor(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce a competitor record to the fields that feed the fingerprint.

    Args:
        record: Competitor dict as produced by CompetitorProject.to_dict()

    Returns:
        Dict with id, name, priceAvg, updatedAt
    """
    price_per_sqft = (record.get('pricing') or {}).get('pricePerSqft') or {}
    record_id = record.get('id')
    return {
        'id': str(record_id) if record_id is not None else None,
        'name': record.get('projectName'),
        'priceAvg': price_per_sqft.get('avg'),
        'updatedAt': _normalize_value(record.get('updatedAt')),
    }


def compute_data_fingerprint(records: Iterable[Dict[str, Any]]) -> str:
    """
    Compute MD5 hex digest of the projected record list.

    Record order is preserved; callers load competitors in a deterministic
    order so repeated calls over unchanged data yield the same digest.

    Returns:
        32-character hex hash
    """
    summary: List[Dict[str, Any]] = [project_competitor(r) for r in records]
    payload = json.dumps(summary, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.md5(payload.encode()).hexdigest()
