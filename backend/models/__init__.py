"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.competitor_project import CompetitorProject
from models.market_snapshot import MarketDataSnapshot
from models.competitive_analysis import CompetitiveAnalysis
from models.project import Project

__all__ = [
    'db',
    'CompetitorProject',
    'MarketDataSnapshot',
    'CompetitiveAnalysis',
    'Project',
]
