"""
Shared pytest fixtures for the Aedera scenario test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project entity
    - wbs_levels: LOTTO and OPERA configured as required levels
    - draft_version: Empty TENDER v1 (active) of the project
"""

import pytest

from aedera import create_app
from aedera.models import db as _db


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
def project():
    """Create and return a committed Project."""
    from aedera.models.project import Project

    proj = Project(code="PRJ-001", name="Ospedale Nord")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def wbs_levels(project):
    """Configure LOTTO then OPERA as required levels, CAPITOLO as optional."""
    from aedera.services import wbs_settings_service

    wbs_settings_service.bulk_upsert_levels(project.id, [
        {"level_key": "LOTTO", "required": True, "sort_index": 1},
        {"level_key": "OPERA", "required": True, "sort_index": 2},
        {"level_key": "CAPITOLO", "required": False, "sort_index": 3},
    ])
    return ["LOTTO", "OPERA"]


@pytest.fixture()
def draft_version(project):
    """Create the first TENDER version of the project (becomes active)."""
    from aedera.services import scenario_version_service

    return scenario_version_service.create_version(project.id, "TENDER", user_id="tester")
