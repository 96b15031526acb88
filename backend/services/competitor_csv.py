"""
Competitor CSV Service - Bulk import, export and the import template

Import maps spreadsheet headers (case-insensitive) onto competitor fields:

    Project Name,Developer,City,Area,Project Status,Price Per Sqft,...

Usage:
    from services.competitor_csv import import_competitors_csv

    result = import_competitors_csv(
        text, organization_id, CompetitorService(),
        user_id='user-1', city='Pune', area='Baner',
    )

Row handling:
- unmapped columns and empty cells are ignored
- numeric cells accept Indian notation ("85 Lakhs", "1.2 Cr", "Rs 8,500")
- city / area fall back to the request defaults when the row has none
- rows without a project name, city or area are skipped
- a row matching an existing (name, area) only fills that record's empty
  fields; nothing is overwritten
"""

import csv
import io
import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from constants import PROJECT_STATUSES, PROJECT_TYPES
from services.errors import CsvImportError, MarketIntelError
from utils.normalize import ValidationError

logger = logging.getLogger(__name__)

CSV_DATA_SOURCE = 'csv_import'
CSV_DEFAULT_CONFIDENCE = 60


# =============================================================================
# SCHEMA DEFINITION
# =============================================================================

# Lower-cased header -> dotted field path
DEFAULT_COLUMN_MAP = {
    'project name': 'projectName',
    'project': 'projectName',
    'name': 'projectName',
    'developer': 'developerName',
    'developer name': 'developerName',
    'builder': 'developerName',
    'builder name': 'developerName',
    'rera number': 'reraNumber',
    'rera': 'reraNumber',
    'rera no': 'reraNumber',
    'city': 'location.city',
    'area': 'location.area',
    'locality': 'location.area',
    'location': 'location.area',
    'micromarket': 'location.micromarket',
    'state': 'location.state',
    'project type': 'projectType',
    'type': 'projectType',
    'project status': 'projectStatus',
    'status': 'projectStatus',
    'total units': 'totalUnits',
    'units': 'totalUnits',
    'total towers': 'totalTowers',
    'towers': 'totalTowers',
    'min price per sqft': 'pricing.pricePerSqft.min',
    'max price per sqft': 'pricing.pricePerSqft.max',
    'avg price per sqft': 'pricing.pricePerSqft.avg',
    'price per sqft': 'pricing.pricePerSqft.avg',
    'rate per sqft': 'pricing.pricePerSqft.avg',
    'rate/sqft': 'pricing.pricePerSqft.avg',
    'price/sqft': 'pricing.pricePerSqft.avg',
    'min base price': 'pricing.basePriceRange.min',
    'max base price': 'pricing.basePriceRange.max',
    'base price': 'pricing.basePriceRange.min',
    'floor rise charge': 'pricing.floorRiseCharge',
    'floor rise': 'pricing.floorRiseCharge',
    'park facing premium': 'pricing.facingPremiums.parkFacing',
    'road facing premium': 'pricing.facingPremiums.roadFacing',
    'corner unit premium': 'pricing.facingPremiums.cornerUnit',
    'plc charges': 'pricing.plcCharges',
    'plc': 'pricing.plcCharges',
    'covered parking': 'pricing.parkingCharges.covered',
    'open parking': 'pricing.parkingCharges.open',
    'club membership': 'pricing.clubMembershipCharges',
    'maintenance deposit': 'pricing.maintenanceDeposit',
    'legal charges': 'pricing.legalCharges',
    'gst rate': 'pricing.gstRate',
    'gst': 'pricing.gstRate',
    'stamp duty': 'pricing.stampDutyRate',
    'stamp duty rate': 'pricing.stampDutyRate',
    'confidence': 'confidenceScore',
    'confidence score': 'confidenceScore',
    'notes': 'notes',
}

INTEGER_FIELDS = {'totalUnits', 'totalTowers', 'confidenceScore'}

NUMERIC_FIELDS = INTEGER_FIELDS | {
    path for path in DEFAULT_COLUMN_MAP.values() if path.startswith('pricing.')
}

# (header, dotted path) in export order
EXPORT_COLUMNS = [
    ('Project Name', 'projectName'),
    ('Developer Name', 'developerName'),
    ('RERA Number', 'reraNumber'),
    ('City', 'location.city'),
    ('Area', 'location.area'),
    ('State', 'location.state'),
    ('Micromarket', 'location.micromarket'),
    ('Project Type', 'projectType'),
    ('Project Status', 'projectStatus'),
    ('Total Units', 'totalUnits'),
    ('Total Towers', 'totalTowers'),
    ('Min Price Per Sqft', 'pricing.pricePerSqft.min'),
    ('Max Price Per Sqft', 'pricing.pricePerSqft.max'),
    ('Avg Price Per Sqft', 'pricing.pricePerSqft.avg'),
    ('Min Base Price', 'pricing.basePriceRange.min'),
    ('Max Base Price', 'pricing.basePriceRange.max'),
    ('Floor Rise Charge', 'pricing.floorRiseCharge'),
    ('Park Facing Premium', 'pricing.facingPremiums.parkFacing'),
    ('Road Facing Premium', 'pricing.facingPremiums.roadFacing'),
    ('Corner Unit Premium', 'pricing.facingPremiums.cornerUnit'),
    ('PLC Charges', 'pricing.plcCharges'),
    ('Covered Parking', 'pricing.parkingCharges.covered'),
    ('Open Parking', 'pricing.parkingCharges.open'),
    ('Club Membership', 'pricing.clubMembershipCharges'),
    ('Maintenance Deposit', 'pricing.maintenanceDeposit'),
    ('Legal Charges', 'pricing.legalCharges'),
    ('GST Rate', 'pricing.gstRate'),
    ('Stamp Duty Rate', 'pricing.stampDutyRate'),
    ('Confidence Score', 'confidenceScore'),
    ('Data Source', 'dataSource'),
    ('Notes', 'notes'),
]

TEMPLATE_EXAMPLE_ROW = {
    'Project Name': 'Prestige Lake Side',
    'Developer Name': 'Prestige Group',
    'RERA Number': 'PRM/KA/RERA/1250/2024',
    'City': 'Bangalore',
    'Area': 'Whitefield',
    'State': 'Karnataka',
    'Micromarket': 'ITPL Road',
    'Project Type': 'residential',
    'Project Status': 'under_construction',
    'Total Units': '500',
    'Total Towers': '5',
    'Min Price Per Sqft': '7500',
    'Max Price Per Sqft': '9500',
    'Avg Price Per Sqft': '8500',
    'Min Base Price': '50 Lakhs',
    'Max Base Price': '1.2 Cr',
    'Floor Rise Charge': '50',
    'Park Facing Premium': '200000',
    'Road Facing Premium': '100000',
    'Corner Unit Premium': '150000',
    'PLC Charges': '100000',
    'Covered Parking': '500000',
    'Open Parking': '200000',
    'Club Membership': '200000',
    'Maintenance Deposit': '100000',
    'Legal Charges': '50000',
    'GST Rate': '5',
    'Stamp Duty Rate': '5.6',
    'Confidence Score': '70',
    'Notes': 'Major project near ITPL',
}


# =============================================================================
# VALUE PARSING
# =============================================================================

_CRORE_RE = re.compile(r'^([\d.]+)(cr|crore|crores)$')
_LAKH_RE = re.compile(r'^([\d.]+)(l|lakh|lakhs|lac|lacs)$')
_NOISE_RE = re.compile(r'[₹,\s]|^rs\.?', re.IGNORECASE)


def parse_price(value) -> Optional[float]:
    """
    Parse a price cell into a number.

    "85 Lakhs" -> 8500000, "1.2 Cr" -> 12000000, "₹8,500" -> 8500.
    Returns None for blanks and anything unparseable.
    """
    if value is None:
        return None
    text = _NOISE_RE.sub('', str(value).strip()).lower()
    if not text:
        return None

    for pattern, multiplier in ((_CRORE_RE, 10_000_000), (_LAKH_RE, 100_000)):
        match = pattern.match(text)
        if match:
            try:
                return round(float(match.group(1)) * multiplier)
            except ValueError:
                return None
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def _normalize_choice(value: str) -> str:
    return value.strip().lower().replace(' ', '_').replace('-', '_')


def _set_path(doc: Dict[str, Any], path: str, value):
    *parents, leaf = path.split('.')
    node = doc
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def _get_path(doc: Dict[str, Any], path: str):
    node = doc
    for part in path.split('.'):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def resolve_column_map(custom_map: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Default mapping overlaid with caller-supplied header -> path pairs."""
    merged = dict(DEFAULT_COLUMN_MAP)
    if custom_map:
        if not isinstance(custom_map, dict):
            raise ValidationError('"columnMapping" must be a JSON object', field='columnMapping')
        for header, path in custom_map.items():
            merged[str(header).strip().lower()] = str(path).strip()
    return merged


# =============================================================================
# CSV READING
# =============================================================================

def read_csv_rows(text: str) -> List[Dict[str, str]]:
    """Rows keyed by lower-cased header; blank lines dropped, cells stripped."""
    reader = csv.DictReader(io.StringIO(text))
    rows = []
    try:
        for row in reader:
            normalized = {}
            for key, value in row.items():
                # Surplus cells land under the None key
                if key is None or value is None:
                    continue
                normalized[str(key).strip().lower()] = value.strip()
            if any(normalized.values()):
                rows.append(normalized)
    except csv.Error as e:
        raise CsvImportError(f'CSV parsing failed: {e}')
    return rows


def map_row(row: Dict[str, str], column_map: Dict[str, str], city: Optional[str] = None,
            area: Optional[str] = None):
    """
    Convert one CSV row into a competitor record.

    Returns:
        (record, errors). Errors are per-cell problems; the offending cell is
        dropped (an unknown project type falls back to residential).
    """
    record: Dict[str, Any] = {}
    errors: List[str] = []

    for header, raw in row.items():
        path = column_map.get(header)
        if not path or not raw:
            continue
        value: Any = raw
        if path in NUMERIC_FIELDS:
            value = parse_price(raw)
            if value is None:
                errors.append(f'Column "{header}": "{raw}" is not a valid number')
                continue
            if path in INTEGER_FIELDS:
                value = int(round(value))
        _set_path(record, path, value)

    location = record.setdefault('location', {})
    if not location.get('city') and city:
        location['city'] = city
    if not location.get('area') and area:
        location['area'] = area

    if record.get('projectType'):
        project_type = _normalize_choice(record['projectType'])
        if project_type not in PROJECT_TYPES:
            errors.append(f'Invalid projectType: "{record["projectType"]}". '
                          f'Must be one of: {", ".join(PROJECT_TYPES)}')
            project_type = 'residential'
        record['projectType'] = project_type

    if record.get('projectStatus'):
        status = _normalize_choice(record['projectStatus'])
        if status in PROJECT_STATUSES:
            record['projectStatus'] = status
        else:
            errors.append(f'Invalid projectStatus: "{record["projectStatus"]}". '
                          f'Must be one of: {", ".join(PROJECT_STATUSES)}')
            del record['projectStatus']

    return record, errors


def _missing_identity(record: Dict[str, Any]) -> Optional[str]:
    location = record.get('location') or {}
    if not record.get('projectName'):
        return 'Missing required field: projectName'
    if not location.get('city'):
        return 'Missing required field: city (not in CSV and no default provided)'
    if not location.get('area'):
        return 'Missing required field: area (not in CSV and no default provided)'
    return None


# =============================================================================
# IMPORT
# =============================================================================

def import_competitors_csv(
    text: str,
    organization_id: str,
    competitor_service,
    user_id: Optional[str] = None,
    city: Optional[str] = None,
    area: Optional[str] = None,
    column_map: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Import competitor rows from CSV text.

    Args:
        text: CSV content, header row first
        competitor_service: exposes ingest(org, record, data_source, user_id=)
        city / area: defaults for rows that leave them blank
        column_map: extra header -> dotted field path pairs

    Returns:
        Batch report with per-row outcome (created / updated / unchanged /
        skipped / error)

    Raises:
        CsvImportError: unparseable CSV, or no data rows
    """
    columns = resolve_column_map(column_map)
    rows = read_csv_rows(text)
    if not rows:
        raise CsvImportError('CSV file is empty or contains only headers')

    batch_id = uuid.uuid4().hex
    counts = {'created': 0, 'updated': 0, 'unchanged': 0, 'skipped': 0, 'error': 0}
    details = []

    for row_num, row in enumerate(rows, start=2):  # Row 1 is header
        record, errors = map_row(row, columns, city=city, area=area)
        missing = _missing_identity(record)
        if missing:
            counts['skipped'] += 1
            details.append({'row': row_num, 'status': 'skipped', 'errors': errors + [missing]})
            continue

        record.setdefault('confidenceScore', CSV_DEFAULT_CONFIDENCE)
        detail: Dict[str, Any] = {'row': row_num}
        try:
            outcome, competitor, filled = competitor_service.ingest(
                organization_id, record, CSV_DATA_SOURCE, user_id=user_id,
            )
            detail.update(status=outcome, competitorId=competitor['id'])
            if outcome == 'updated':
                detail['fieldsUpdated'] = filled
        except ValidationError as e:
            outcome = 'error'
            errors.append(str(e))
            detail['status'] = outcome
        except MarketIntelError as e:
            # Duplicate key taken by a concurrent writer
            outcome = 'skipped'
            errors.append(e.message)
            detail['status'] = outcome

        counts[outcome] += 1
        if errors:
            detail['errors'] = errors
        details.append(detail)

    logger.info("CSV import batch=%s org=%s rows=%d created=%d updated=%d unchanged=%d skipped=%d errors=%d",
                batch_id, organization_id, len(rows), counts['created'], counts['updated'],
                counts['unchanged'], counts['skipped'], counts['error'])

    return {
        'batchId': batch_id,
        'totalRows': len(rows),
        'created': counts['created'],
        'updated': counts['updated'],
        'unchanged': counts['unchanged'],
        'skipped': counts['skipped'],
        'failed': counts['error'],
        'errors': [d for d in details if d.get('errors')],
        'rowDetails': details,
        'summary': (
            f"Processed {len(rows)} rows: {counts['created']} created, "
            f"{counts['updated']} updated, "
            f"{counts['unchanged'] + counts['skipped']} unchanged/skipped"
        ),
    }


# =============================================================================
# EXPORT
# =============================================================================

def _write(rows: List[List[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerows(rows)
    return buffer.getvalue()


def export_competitors_csv(competitors: List[Dict[str, Any]]) -> str:
    """Competitor dicts (CompetitorProject.to_dict() shape) as CSV text."""
    lines = [[header for header, _ in EXPORT_COLUMNS]]
    for competitor in competitors:
        row = []
        for _, path in EXPORT_COLUMNS:
            value = _get_path(competitor, path)
            row.append('' if value is None else value)
        lines.append(row)
    return _write(lines)


def csv_template() -> str:
    """Import template: every importable column plus one example row."""
    headers = [header for header, path in EXPORT_COLUMNS if path != 'dataSource']
    return _write([headers, [TEMPLATE_EXAMPLE_ROW.get(h, '') for h in headers]])
