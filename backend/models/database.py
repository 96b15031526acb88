"""
Shared Flask-SQLAlchemy handle. Every model imports `db` from here.
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
