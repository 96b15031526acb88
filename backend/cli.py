#!/usr/bin/env python3
"""
CLI for Market Snapshot Maintenance

Commands:
    snapshot                - Generate today's snapshot for one locality
    snapshot-all            - Generate today's snapshot for every tracked locality
    trends                  - Print snapshot trends for one locality
    purge-expired-analyses  - Delete cached AI analyses past expiry

Usage:
    python cli.py snapshot ORG_ID Pune Baner
    python cli.py snapshot-all
    python cli.py trends ORG_ID Pune Baner --months 12
    python cli.py purge-expired-analyses

Examples:
    # Nightly cron
    0 2 * * * cd /srv/market-intel/backend && python cli.py snapshot-all

    # Inspect a locality as JSON
    python cli.py trends ORG_ID Pune Baner --json
"""

import sys

import click

from constants import SNAPSHOT_TRIGGERS, TREND_MAX_MONTHS


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


def _snapshot_service():
    from services.competitor_store import SqlCompetitorStore
    from services.market_overview_service import MarketOverviewBuilder
    from services.market_repository import SqlSnapshotRepository
    from services.market_snapshot_service import MarketSnapshotService

    return MarketSnapshotService(MarketOverviewBuilder(SqlCompetitorStore()), SqlSnapshotRepository())


@click.group()
@click.version_option(version="1.0.0", prog_name="market-intel-cli")
def cli():
    """Market Intelligence CLI - snapshot generation and cache maintenance."""
    pass


@cli.command("snapshot")
@click.argument("organization_id")
@click.argument("city")
@click.argument("area")
@click.option("--trigger", type=click.Choice(SNAPSHOT_TRIGGERS), default="manual", show_default=True)
def snapshot(organization_id, city, area, trigger):
    """
    Generate (or overwrite) today's snapshot for one locality.

    ORGANIZATION_ID: Tenant id
    CITY / AREA: Locality
    """
    with get_app_context():
        result = _snapshot_service().generate_snapshot(organization_id, city, area, trigger=trigger)

    if result is None:
        click.secho(f"No active competitors in {area}, {city}; no snapshot written", fg="yellow")
        return

    metrics = result["marketMetrics"]
    trends = result["trends"]
    click.secho(f"Snapshot {result['snapshotDate']} for {area}, {city}", fg="cyan", bold=True)
    click.echo(f"  Projects:        {metrics['totalActiveProjects']}")
    click.echo(f"  Units:           {metrics['totalUnitsInMarket']}")
    click.echo(f"  Avg price/sqft:  {metrics['pricePerSqft']['avg']}")
    click.echo(f"  Price change:    {trends['pricePerSqftChange']}%")
    click.echo(f"  New projects:    {trends['newProjectsAdded']}")


@cli.command("snapshot-all")
def snapshot_all():
    """Generate today's snapshot for every locality with active competitors."""
    from models.database import db
    from services.competitor_store import SqlCompetitorStore
    from services.snapshot_scheduler import run_snapshot_generation

    with get_app_context():
        summary = run_snapshot_generation(SqlCompetitorStore(), _snapshot_service(), session=db.session)

    click.echo("=" * 60)
    click.secho("SNAPSHOT RUN", fg="cyan", bold=True)
    click.echo("=" * 60)
    click.echo(f"  Localities: {summary['localities']}")
    click.echo(click.style("  Success:    ", fg="white") + click.style(str(summary['success']), fg="green"))
    click.echo(click.style("  Skipped:    ", fg="white") + click.style(str(summary['skipped']), fg="yellow"))
    click.echo(click.style("  Failed:     ", fg="white")
               + click.style(str(summary['failed']), fg="red" if summary['failed'] else "green"))

    for error in summary['errors']:
        click.echo(f"    - {error['area']}, {error['city']} ({error['organizationId']}): {error['error']}")

    if summary['failed']:
        sys.exit(1)


@cli.command("trends")
@click.argument("organization_id")
@click.argument("city")
@click.argument("area")
@click.option("--months", type=click.IntRange(1, TREND_MAX_MONTHS), default=6, show_default=True)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def trends(organization_id, city, area, months, output_json):
    """Print price and supply history for a locality."""
    from services.market_repository import SqlSnapshotRepository
    from services.market_trends_service import MarketTrendReader
    from utils.json_serializer import safe_json_dumps

    with get_app_context():
        report = MarketTrendReader(SqlSnapshotRepository()).get_trends(organization_id, city, area, months)

    if output_json:
        click.echo(safe_json_dumps(report, indent=2))
        return

    if not report['dataPoints']:
        click.secho(report['message'], fg="yellow")
        return

    click.secho(f"{area}, {city}: {report['dataPoints']} snapshots "
                f"({report['period']['from']} to {report['period']['to']})", fg="cyan", bold=True)
    for price, supply in zip(report['priceHistory'], report['supplyHistory']):
        click.echo(f"  {price['date']}  avg {price['avg']:>8}  projects {supply['totalProjects']:>3}  "
                   f"units {supply['totalUnits']:>5}")


@cli.command("purge-expired-analyses")
def purge_expired_analyses():
    """Physically delete cached analyses past expiry (reads already ignore them)."""
    from services.market_repository import SqlAnalysisCacheRepository
    from utils.clock import utc_now

    with get_app_context():
        deleted = SqlAnalysisCacheRepository().purge_expired(utc_now())

    click.echo(f"Purged {deleted} expired analyses")


if __name__ == "__main__":
    cli()
