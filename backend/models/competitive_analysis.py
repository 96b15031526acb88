"""
CompetitiveAnalysis Model - Cached reasoning-engine output

Uniquely keyed by (organization, project, analysis_type). A cached row is
usable only while it is not flagged expired, the clock is before expires_at,
and the stored data fingerprint matches the live competitor set.
"""
from models.database import db
from utils.clock import utc_now


class CompetitiveAnalysis(db.Model):
    __tablename__ = 'competitive_analyses'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)
    project_id = db.Column(db.String(64), nullable=False)
    analysis_type = db.Column(db.String(40), nullable=False)

    # Scope
    city = db.Column(db.String(120), nullable=False)
    area = db.Column(db.String(120), nullable=False)
    competitor_ids = db.Column(db.JSON, default=list)
    competitor_count = db.Column(db.Integer, nullable=False, default=0)

    # Generated content
    results = db.Column(db.JSON, nullable=False, default=dict)
    recommendations = db.Column(db.JSON, nullable=False, default=list)
    market_positioning = db.Column(db.JSON)
    analysis_metadata = db.Column(db.JSON, nullable=False, default=dict)

    # Cache control
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    is_expired = db.Column(db.Boolean, nullable=False, default=False)
    data_fingerprint = db.Column(db.String(64))

    requested_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'project_id', 'analysis_type',
                            name='uq_analysis_org_project_type'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'organizationId': self.organization_id,
            'analysisType': self.analysis_type,
            'analysisScope': {
                'project': self.project_id,
                'city': self.city,
                'area': self.area,
                'competitorProjectIds': self.competitor_ids or [],
                'competitorCount': self.competitor_count,
            },
            'results': self.results or {},
            'recommendations': self.recommendations or [],
            'marketPositioning': self.market_positioning,
            'metadata': self.analysis_metadata or {},
            'expiresAt': self.expires_at,
            'isExpired': self.is_expired,
            'dataHashAtGeneration': self.data_fingerprint,
            'requestedBy': self.requested_by,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    def __repr__(self):
        return f"<CompetitiveAnalysis {self.analysis_type} project={self.project_id}>"
