"""
Snapshot Scheduler - Daily snapshot generation for every tracked locality

Runs the same idempotent generate_snapshot() entry point as a manual request,
with trigger='scheduled'. Intended to be invoked by an external cron through
`python cli.py snapshot-all`; there is no in-process timer.

A failure in one locality is logged and counted; the session is rolled back
so the next locality starts clean, and the run continues.
"""

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def run_snapshot_generation(store, snapshot_service, session=None) -> Dict[str, Any]:
    """
    Args:
        store: exposes list_tracked_localities()
        snapshot_service: MarketSnapshotService
        session: SQLAlchemy session shared by the repositories; rolled back
            after a failed locality

    Returns:
        {"localities", "success", "skipped", "failed", "errors"}
    """
    localities = store.list_tracked_localities()
    logger.info("Scheduled snapshot run: %d localities", len(localities))

    summary = {'localities': len(localities), 'success': 0, 'skipped': 0, 'failed': 0, 'errors': []}
    for locality in localities:
        org = locality['organizationId']
        city, area = locality['city'], locality['area']
        try:
            snapshot = snapshot_service.generate_snapshot(org, city, area, trigger='scheduled')
        except Exception as e:
            summary['failed'] += 1
            summary['errors'].append({'organizationId': org, 'city': city, 'area': area, 'error': str(e)})
            logger.exception("Snapshot failed for %s, %s (org=%s)", area, city, org)
            if session is not None:
                session.rollback()
            continue

        if snapshot is None:
            summary['skipped'] += 1
        else:
            summary['success'] += 1

    logger.info("Scheduled snapshot run complete: %d success, %d skipped, %d failed",
                summary['success'], summary['skipped'], summary['failed'])
    return summary
