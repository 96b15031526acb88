"""
Project Model - The organization's own project, read by the AI analysis flow

Only the fields the competitive analysis prompt needs. Full project
management lives in the ERP's project service.
"""
from models.database import db
from utils.clock import utc_now


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    project_type = db.Column(db.String(32))
    status = db.Column(db.String(32))
    city = db.Column(db.String(120))
    area = db.Column(db.String(120))
    total_units = db.Column(db.Integer)
    price_range = db.Column(db.JSON)
    target_revenue = db.Column(db.Float)
    launch_date = db.Column(db.Date)
    amenities = db.Column(db.JSON)
    pricing_rules = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'organizationId': self.organization_id,
            'name': self.name,
            'type': self.project_type,
            'status': self.status,
            'location': {'city': self.city, 'area': self.area},
            'totalUnits': self.total_units,
            'priceRange': self.price_range,
            'targetRevenue': self.target_revenue,
            'launchDate': self.launch_date,
            'amenities': self.amenities,
            'pricingRules': self.pricing_rules,
        }
