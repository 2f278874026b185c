"""
Shared pytest fixtures for the PI Change Report test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - ingest: PUT a snapshot through the API
"""

import pytest

from pireport import create_app
from pireport.models import db as _db


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
def ingest(client):
    """Return a helper that stores tracker rows for one iteration."""

    def _ingest(pi_number, iteration, rows, expected=(200, 201)):
        res = client.put(
            f"/api/v1/pi/{pi_number}/iterations/{iteration}/snapshot",
            json={"items": rows},
        )
        assert res.status_code in expected, res.get_json()
        return res.get_json()

    return _ingest
