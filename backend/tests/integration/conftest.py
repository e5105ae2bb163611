"""
tests/integration/conftest.py — Fixtures for all integration tests.

Design:
  - The app is created once per session using create_app("testing") and
    pointed at a SQLite file under pytest's tmp dir via config_overrides.
    Set TEST_DATABASE_URL and drop the override to run against PostgreSQL.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted so tests are isolated.
  - The client does not keep cookies. Tests pass the refresh cookie
    explicitly (helpers.refresh_cookie_header) so every request shows
    exactly which credential it carries.

Shared request helpers live in helpers.py as plain functions.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    db_path = tmp_path_factory.mktemp("db") / "medportal_test.db"
    flask_app = create_app(
        "testing",
        config_overrides={"SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}"},
    )

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM security_events"))
            conn.execute(text("DELETE FROM consent_records"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client without a cookie jar. Function-scoped."""
    return app.test_client(use_cookies=False)


@pytest.fixture
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture
def coordinator(app):
    return app.extensions["session_coordinator"]
