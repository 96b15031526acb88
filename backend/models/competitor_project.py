"""
CompetitorProject Model - One observed competing project in a locality

Data Sources:
  - Manual entry, CSV import, AI-assisted research, third-party providers

Records are never hard-deleted: deactivate() flips is_active so historical
market snapshots stay reproducible.
"""
from sqlalchemy.orm import validates

from constants import DATA_SOURCES, DEFAULT_CONFIDENCE_SCORE, PROJECT_STATUSES, PROJECT_TYPES
from models.database import db
from utils.clock import to_naive_utc, utc_now


class CompetitorProject(db.Model):
    __tablename__ = 'competitor_projects'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    # Identity
    project_name = db.Column(db.String(200), nullable=False)
    developer_name = db.Column(db.String(200), nullable=False)
    rera_number = db.Column(db.String(100))

    # Location
    city = db.Column(db.String(120), nullable=False)
    area = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120))
    micromarket = db.Column(db.String(120))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    # Classification
    project_type = db.Column(db.String(32), nullable=False, default='residential')
    project_status = db.Column(db.String(32), nullable=False)

    # Scale
    total_units = db.Column(db.Integer)
    total_towers = db.Column(db.Integer)

    # Pricing / unit mix / amenities (nested documents)
    pricing = db.Column(db.JSON, default=dict)
    unit_mix = db.Column(db.JSON, default=list)
    amenities = db.Column(db.JSON, default=dict)

    # Data metadata
    data_source = db.Column(db.String(32), nullable=False, default='manual')
    data_collection_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    confidence_score = db.Column(db.Integer, nullable=False, default=DEFAULT_CONFIDENCE_SCORE)
    last_verified_at = db.Column(db.DateTime)
    notes = db.Column(db.Text)

    # Status & audit
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(db.String(64))
    updated_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'project_name', 'area',
                            name='uq_competitor_org_name_area'),
        db.CheckConstraint('confidence_score >= 0 AND confidence_score <= 100',
                           name='ck_competitor_confidence_range'),
        db.Index('ix_competitor_org_locality', 'organization_id', 'city', 'area'),
    )

    @validates('confidence_score')
    def _validate_confidence(self, key, value):
        if value is None:
            return DEFAULT_CONFIDENCE_SCORE
        value = int(value)
        if value < 0 or value > 100:
            raise ValueError(f"confidence_score must be within 0-100, got {value}")
        return value

    @validates('project_status')
    def _validate_status(self, key, value):
        if value not in PROJECT_STATUSES:
            raise ValueError(f"project_status must be one of {PROJECT_STATUSES}, got {value!r}")
        return value

    @validates('project_type')
    def _validate_type(self, key, value):
        if value not in PROJECT_TYPES:
            raise ValueError(f"project_type must be one of {PROJECT_TYPES}, got {value!r}")
        return value

    @validates('data_source')
    def _validate_source(self, key, value):
        if value not in DATA_SOURCES:
            raise ValueError(f"data_source must be one of {DATA_SOURCES}, got {value!r}")
        return value

    @validates('data_collection_date')
    def _validate_collection_date(self, key, value):
        # Collection can never be ahead of ingestion
        if value is None:
            return utc_now()
        value = to_naive_utc(value)
        now = utc_now()
        return now if value > now else value

    @validates('city', 'area', 'project_name', 'developer_name')
    def _strip(self, key, value):
        return value.strip() if isinstance(value, str) else value

    def deactivate(self, user_id=None):
        """Soft-delete; the row stays for snapshot reproducibility."""
        self.is_active = False
        self.updated_by = user_id

    def to_dict(self):
        return {
            'id': self.id,
            'organizationId': self.organization_id,
            'projectName': self.project_name,
            'developerName': self.developer_name,
            'reraNumber': self.rera_number,
            'location': {
                'city': self.city,
                'area': self.area,
                'state': self.state,
                'micromarket': self.micromarket,
                'coordinates': {
                    'latitude': self.latitude,
                    'longitude': self.longitude,
                } if self.latitude is not None and self.longitude is not None else None,
            },
            'projectType': self.project_type,
            'projectStatus': self.project_status,
            'totalUnits': self.total_units,
            'totalTowers': self.total_towers,
            'pricing': self.pricing or {},
            'unitMix': self.unit_mix or [],
            'amenities': self.amenities or {},
            'dataSource': self.data_source,
            'dataCollectionDate': self.data_collection_date,
            'confidenceScore': self.confidence_score,
            'lastVerifiedAt': self.last_verified_at,
            'notes': self.notes,
            'isActive': self.is_active,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    # Request payload field -> column
    EDITABLE_FIELDS = {
        'projectName': 'project_name',
        'developerName': 'developer_name',
        'reraNumber': 'rera_number',
        'projectType': 'project_type',
        'projectStatus': 'project_status',
        'totalUnits': 'total_units',
        'totalTowers': 'total_towers',
        'pricing': 'pricing',
        'unitMix': 'unit_mix',
        'amenities': 'amenities',
        'dataSource': 'data_source',
        'dataCollectionDate': 'data_collection_date',
        'confidenceScore': 'confidence_score',
        'lastVerifiedAt': 'last_verified_at',
        'notes': 'notes',
        'isActive': 'is_active',
    }

    def apply_payload(self, payload):
        """Copy camelCase request fields onto the model (organization is never editable)."""
        for field, column in self.EDITABLE_FIELDS.items():
            if field in payload:
                setattr(self, column, payload[field])

        location = payload.get('location') or {}
        for key in ('city', 'area', 'state', 'micromarket'):
            if key in location:
                setattr(self, key, location[key])
        coordinates = location.get('coordinates') or {}
        if 'latitude' in coordinates:
            self.latitude = coordinates['latitude']
        if 'longitude' in coordinates:
            self.longitude = coordinates['longitude']
        return self

    def __repr__(self):
        return f"<CompetitorProject {self.project_name} ({self.area}, {self.city})>"
