"""
Scenario Analytics Platform
Shared SQLAlchemy handle.

Every model module imports ``db`` from here:

    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
