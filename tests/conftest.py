"""
Shared pytest fixtures for the Scenario Analytics Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - portfolio: Pre-created Portfolio entity
    - project: Pre-created Project (budget 1000) inside the portfolio
"""

from datetime import date

import pytest

from app import create_app
from app.models import db as _db
from app.models.project import Portfolio, Project


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def portfolio():
    """Create and return a test Portfolio."""
    p = Portfolio(name="Test Portfolio")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def project(portfolio):
    """Create and return a Project with a 1000 budget in the test portfolio."""
    p = Project(
        portfolio_id=portfolio.id,
        name="Test Project",
        budget=1000.0,
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 31),
    )
    _db.session.add(p)
    _db.session.commit()
    return p
