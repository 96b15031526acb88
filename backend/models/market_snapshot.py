"""
MarketDataSnapshot Model - Dated market aggregate for one locality

At most one row per (organization, city, area, calendar day): the unique
constraint is on the normalized locality keys plus snapshot_date, and the
snapshot service upserts against it.
"""
from models.database import db
from utils.clock import utc_now


def locality_key(value):
    """Normalized locality component used for matching and uniqueness."""
    return (value or '').strip().lower()


class MarketDataSnapshot(db.Model):
    __tablename__ = 'market_data_snapshots'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    # Scope (display values + normalized keys)
    city = db.Column(db.String(120), nullable=False)
    area = db.Column(db.String(120), nullable=False)
    city_key = db.Column(db.String(120), nullable=False)
    area_key = db.Column(db.String(120), nullable=False)
    snapshot_date = db.Column(db.Date, nullable=False)

    market_metrics = db.Column(db.JSON, nullable=False, default=dict)
    trends = db.Column(db.JSON, nullable=False, default=dict)
    data_quality = db.Column(db.JSON, nullable=False, default=dict)

    data_fingerprint = db.Column(db.String(64))
    source_competitor_ids = db.Column(db.JSON, default=list)
    generated_by = db.Column(db.String(16), nullable=False, default='on_demand')

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'city_key', 'area_key', 'snapshot_date',
                            name='uq_snapshot_org_locality_day'),
        db.Index('ix_snapshot_locality_date', 'organization_id', 'city_key', 'area_key', 'snapshot_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'organizationId': self.organization_id,
            'snapshotScope': {'city': self.city, 'area': self.area},
            'snapshotDate': self.snapshot_date,
            'marketMetrics': self.market_metrics or {},
            'trends': self.trends or {},
            'dataQuality': self.data_quality or {},
            'dataFingerprint': self.data_fingerprint,
            'sourceCompetitorIds': self.source_competitor_ids or [],
            'generatedBy': self.generated_by,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    def __repr__(self):
        return f"<MarketDataSnapshot {self.area}, {self.city} @ {self.snapshot_date}>"
