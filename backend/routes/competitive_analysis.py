"""
Competitive Analysis API Routes

Endpoints (prefix /api/competitive-analysis):
- GET    /market-overview?city=&area=         Aggregated locality statistics
- GET    /market-trends?city=&area=&months=   Snapshot time series
- GET    /demand-supply?city=&area=           Unit-type supply and pipeline
- POST   /snapshots                           Generate today's snapshot
- GET    /analysis/<project_id>?type=         Cached or fresh AI analysis
- POST   /analysis/<project_id>/refresh       Force regeneration
- GET    /competitors                         Filtered, paginated list
- POST   /competitors                         Create (409 on duplicate)
- GET    /competitors/<id>
- PUT    /competitors/<id>
- DELETE /competitors/<id>                    Soft delete
- GET    /dashboard                           Organization summary
- POST   /research                            AI research of a locality's projects
- POST   /import-csv                          Bulk import (multipart field "file")
- GET    /export-csv                          Active competitors as CSV
- GET    /csv-template                        Import template with an example row

This is a THIN route handler - all business logic is in services/.
Tenant scope comes from the X-Organization-ID header; errors propagate to
the error envelope middleware.
"""

import json
from datetime import timedelta

from flask import Blueprint, Response, current_app, jsonify, request

from api.middleware import current_organization_id, current_user_id
from constants import (
    ANALYSIS_TYPES,
    DATA_SOURCES,
    DEFAULT_ANALYSIS_TYPE,
    PROJECT_STATUSES,
    PROJECT_TYPES,
    SNAPSHOT_TRIGGERS,
    TREND_MAX_MONTHS,
)
from services.competitor_csv import csv_template, export_competitors_csv, import_competitors_csv
from services.competitor_service import CompetitorService
from services.competitor_store import SqlCompetitorStore, SqlProjectLookup
from services.demand_supply_service import DemandSupplyAnalyzer
from services.errors import CompetitorNotFoundError, CsvImportError, InvalidAnalysisTypeError
from services.market_overview_service import MarketOverviewBuilder
from services.market_repository import SqlAnalysisCacheRepository, SqlSnapshotRepository
from services.market_snapshot_service import MarketSnapshotService
from services.market_trends_service import MarketTrendReader
from services.recommendation_service import RecommendationOrchestrator
from services.research_service import CompetitorResearchService
from utils.clock import utc_now
from utils.normalize import ValidationError, require_str, to_bool, to_choice, to_int, to_str

competitive_bp = Blueprint('competitive_analysis', __name__)


# =============================================================================
# WIRING
# =============================================================================

def _clock():
    return current_app.extensions.get('market_clock', utc_now)


def _store():
    return SqlCompetitorStore()


def _overview_builder():
    return MarketOverviewBuilder(_store(), clock=_clock())


def _snapshot_service():
    return MarketSnapshotService(_overview_builder(), SqlSnapshotRepository(), clock=_clock())


def _orchestrator():
    store = _store()

    def competitor_lookup(org, city, area, limit):
        return store.find_active(org, city, area, limit=limit, order_by_confidence=True)

    return RecommendationOrchestrator(
        project_lookup=SqlProjectLookup().get_project,
        competitor_lookup=competitor_lookup,
        analysis_repository=SqlAnalysisCacheRepository(),
        reasoning_engine=current_app.extensions['reasoning_engine'],
        overview_builder=MarketOverviewBuilder(store, clock=_clock()),
        clock=_clock(),
        cache_ttl=timedelta(hours=current_app.config['ANALYSIS_CACHE_TTL_HOURS']),
        competitor_limit=current_app.config['ANALYSIS_COMPETITOR_LIMIT'],
    )


def _competitor_service():
    return CompetitorService(clock=_clock())


def _csv_response(text, filename):
    return Response(
        text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


def _locality_args():
    return (
        require_str(request.args.get('city'), field='city'),
        require_str(request.args.get('area'), field='area'),
    )


def _analysis_type(raw):
    analysis_type = raw or DEFAULT_ANALYSIS_TYPE
    if analysis_type not in ANALYSIS_TYPES:
        raise InvalidAnalysisTypeError(
            f'Invalid analysis type "{analysis_type}". Must be one of: {", ".join(ANALYSIS_TYPES)}'
        )
    return analysis_type


# =============================================================================
# MARKET DATA
# =============================================================================

@competitive_bp.route('/market-overview', methods=['GET'])
def market_overview():
    """
    Aggregated market overview for a locality; also refreshes today's
    snapshot when the locality has data.
    """
    org = current_organization_id()
    city, area = _locality_args()

    overview = _overview_builder().build_overview(org, city, area)
    if overview['totalProjects'] > 0:
        _snapshot_service().generate_snapshot(org, city, area, trigger='on_demand')

    return jsonify({'success': True, 'data': overview})


@competitive_bp.route('/market-trends', methods=['GET'])
def market_trends():
    org = current_organization_id()
    city, area = _locality_args()
    months = to_int(
        request.args.get('months'),
        default=current_app.config['TREND_DEFAULT_MONTHS'],
        minimum=1, maximum=TREND_MAX_MONTHS, field='months',
    )
    trends = MarketTrendReader(SqlSnapshotRepository(), clock=_clock()).get_trends(org, city, area, months)
    return jsonify({'success': True, 'data': trends})


@competitive_bp.route('/demand-supply', methods=['GET'])
def demand_supply():
    org = current_organization_id()
    city, area = _locality_args()
    report = DemandSupplyAnalyzer(_store()).analyze(org, city, area)
    return jsonify({'success': True, 'data': report})


@competitive_bp.route('/snapshots', methods=['POST'])
def create_snapshot():
    org = current_organization_id()
    body = request.get_json(silent=True) or {}
    city = require_str(body.get('city'), field='city')
    area = require_str(body.get('area'), field='area')
    trigger = to_choice(body.get('generatedBy'), SNAPSHOT_TRIGGERS, default='manual', field='generatedBy')

    snapshot = _snapshot_service().generate_snapshot(org, city, area, trigger=trigger)
    if snapshot is None:
        return jsonify({
            'success': True,
            'data': None,
            'message': f'No competitor data for {area}, {city}; no snapshot generated',
        })
    return jsonify({'success': True, 'data': snapshot, 'message': 'Snapshot generated'}), 201


# =============================================================================
# AI ANALYSIS
# =============================================================================

@competitive_bp.route('/analysis/<project_id>', methods=['GET'])
def get_analysis(project_id):
    org = current_organization_id()
    analysis_type = _analysis_type(request.args.get('type'))

    result = _orchestrator().generate_analysis(
        org, project_id, analysis_type, requested_by=current_user_id(),
    )
    message = (
        'Returning cached analysis (data unchanged since last generation)'
        if result['fromCache'] else f'{analysis_type} analysis generated successfully'
    )
    return jsonify({'success': True, 'data': result, 'message': message})


@competitive_bp.route('/analysis/<project_id>/refresh', methods=['POST'])
def refresh_analysis(project_id):
    org = current_organization_id()
    body = request.get_json(silent=True) or {}
    analysis_type = _analysis_type(body.get('type'))

    result = _orchestrator().generate_analysis(
        org, project_id, analysis_type, force_refresh=True, requested_by=current_user_id(),
    )
    return jsonify({
        'success': True,
        'data': result,
        'message': f'{analysis_type} analysis refreshed successfully',
    })


# =============================================================================
# COMPETITOR CURATION
# =============================================================================

@competitive_bp.route('/competitors', methods=['GET'])
def list_competitors():
    org = current_organization_id()
    args = request.args
    is_active_raw = args.get('isActive', 'true')
    filters = {
        'city': args.get('city'),
        'area': args.get('area'),
        'projectType': to_choice(args.get('projectType'), PROJECT_TYPES, field='projectType'),
        'projectStatus': to_choice(args.get('projectStatus'), PROJECT_STATUSES, field='projectStatus'),
        'dataSource': to_choice(args.get('dataSource'), DATA_SOURCES, field='dataSource'),
        'isActive': None if is_active_raw == 'all' else to_bool(is_active_raw, default=True, field='isActive'),
    }
    result = _competitor_service().list(
        org,
        filters,
        page=to_int(args.get('page'), default=1, minimum=1, field='page'),
        limit=to_int(args.get('limit'), default=20, minimum=1, maximum=100, field='limit'),
        sort_by=args.get('sortBy', 'dataCollectionDate'),
        sort_order=to_choice(args.get('sortOrder'), ['asc', 'desc'], default='desc', field='sortOrder'),
    )
    return jsonify({'success': True, **result})


@competitive_bp.route('/competitors', methods=['POST'])
def create_competitor():
    org = current_organization_id()
    body = request.get_json(silent=True) or {}
    competitor = _competitor_service().create(org, body, user_id=current_user_id())
    return jsonify({
        'success': True,
        'data': competitor,
        'message': 'Competitor project created successfully',
    }), 201


@competitive_bp.route('/competitors/<int:competitor_id>', methods=['GET'])
def get_competitor(competitor_id):
    org = current_organization_id()
    return jsonify({'success': True, 'data': _competitor_service().get(org, competitor_id)})


@competitive_bp.route('/competitors/<int:competitor_id>', methods=['PUT'])
def update_competitor(competitor_id):
    org = current_organization_id()
    body = request.get_json(silent=True) or {}
    competitor = _competitor_service().update(org, competitor_id, body, user_id=current_user_id())
    return jsonify({
        'success': True,
        'data': competitor,
        'message': 'Competitor project updated successfully',
    })


@competitive_bp.route('/competitors/<int:competitor_id>', methods=['DELETE'])
def delete_competitor(competitor_id):
    org = current_organization_id()
    _competitor_service().deactivate(org, competitor_id, user_id=current_user_id())
    return jsonify({'success': True, 'message': 'Competitor project deactivated successfully'})


@competitive_bp.route('/dashboard', methods=['GET'])
def dashboard():
    org = current_organization_id()
    return jsonify({'success': True, 'data': _competitor_service().dashboard_summary(org)})


# =============================================================================
# DATA COLLECTION
# =============================================================================

@competitive_bp.route('/research', methods=['POST'])
def research_locality():
    """
    Discover a locality's competitor projects through the reasoning engine
    and store them with data source 'ai_research'. Runs synchronously.
    """
    org = current_organization_id()
    body = request.get_json(silent=True) or {}
    city = require_str(body.get('city'), field='city')
    area = require_str(body.get('area'), field='area')
    project_type = to_choice(body.get('projectType'), PROJECT_TYPES, field='projectType')

    service = CompetitorResearchService(current_app.extensions['reasoning_engine'], _competitor_service())
    result = service.research_locality(
        org, city, area,
        project_type=project_type,
        additional_context=to_str(body.get('additionalContext'), field='additionalContext'),
        user_id=current_user_id(),
    )
    return jsonify({'success': True, 'data': result, 'message': result['researchSummary']})


@competitive_bp.route('/import-csv', methods=['POST'])
def import_csv():
    org = current_organization_id()
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError(
            'No CSV file uploaded. Send a CSV file via multipart/form-data with field name "file".',
            field='file',
        )
    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise CsvImportError('CSV file must be UTF-8 encoded')

    column_map = None
    raw_mapping = to_str(request.form.get('columnMapping'), field='columnMapping')
    if raw_mapping:
        try:
            column_map = json.loads(raw_mapping)
        except ValueError:
            raise ValidationError('"columnMapping" must be valid JSON', field='columnMapping')

    result = import_competitors_csv(
        text, org, _competitor_service(),
        user_id=current_user_id(),
        city=to_str(request.form.get('city'), field='city'),
        area=to_str(request.form.get('area'), field='area'),
        column_map=column_map,
    )
    return jsonify({'success': True, 'data': result, 'message': result['summary']})


@competitive_bp.route('/export-csv', methods=['GET'])
def export_csv():
    org = current_organization_id()
    args = request.args
    filters = {
        'city': args.get('city'),
        'area': args.get('area'),
        'projectType': to_choice(args.get('projectType'), PROJECT_TYPES, field='projectType'),
        'projectStatus': to_choice(args.get('projectStatus'), PROJECT_STATUSES, field='projectStatus'),
    }
    competitors = _competitor_service().export_rows(org, filters)
    if not competitors:
        raise CompetitorNotFoundError('No competitor data found for the given filters')
    return _csv_response(export_competitors_csv(competitors), 'competitor_data.csv')


@competitive_bp.route('/csv-template', methods=['GET'])
def download_csv_template():
    return _csv_response(csv_template(), 'competitor_import_template.csv')
