"""
Root pytest configuration for backend tests.

Provides:
- --run-integration flag (live reasoning engine tests are skipped without it)
- Shared fixtures (clock, in-memory collaborators, scripted reasoning engine)
- SQLite-backed Flask app and client
"""

import sys
from pathlib import Path

# Add backend directory to Python path so imports like
# `from services.market_stats import ...` and `from utils.normalize import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

import pytest

from fakes import (
    COMPREHENSIVE_RESPONSE,
    FixedClock,
    InMemoryAnalysisRepository,
    InMemoryCompetitorStore,
    InMemorySnapshotRepository,
    ScriptedReasoningEngine,
)


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (calls the live Anthropic API).",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="integration test (use --run-integration to run)")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def competitor_store():
    return InMemoryCompetitorStore()


@pytest.fixture
def snapshot_repository():
    return InMemorySnapshotRepository()


@pytest.fixture
def analysis_repository():
    return InMemoryAnalysisRepository()


@pytest.fixture
def reasoning_engine():
    return ScriptedReasoningEngine([COMPREHENSIVE_RESPONSE])


@pytest.fixture
def app(clock, reasoning_engine):
    """Create test Flask application on an in-memory SQLite database."""
    from app import create_app
    from models.database import db

    app = create_app(
        config_overrides={
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'TESTING': True,
        },
        reasoning_engine=reasoning_engine,
        clock=clock,
    )
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """Database session inside an application context."""
    from models.database import db

    with app.app_context():
        yield db.session
