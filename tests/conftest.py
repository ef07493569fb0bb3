"""
Test fixtures for Cohort Academy.

Provides app, client, auth_client, admin_client, db and catalog fixtures
with file-based SQLite. Users seeded per test:

    1  Test Student     approved student
    2  Pending Student  pending student
    3  Test Admin       approved admin
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

PASSWORD = "testpass123"


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from werkzeug.security import generate_password_hash

    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "WTF_CSRF_ENABLED": False,
    })

    with app.app_context():
        from database import get_db, init_db, run_migrations

        init_db()
        run_migrations()

        db = get_db()
        pw = generate_password_hash(PASSWORD)
        now = datetime.now(timezone.utc).isoformat()
        users = [
            (1, "Test Student", "test@example.com", "student", "approved"),
            (2, "Pending Student", "pending@example.com", "student", "pending"),
            (3, "Test Admin", "admin@example.com", "admin", "approved"),
        ]
        for uid, name, email, role, status in users:
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, role, status, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (uid, name, email, pw, role, status, now),
            )
        db.commit()

        yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _login(app, email):
    client = app.test_client()
    client.post("/login", json={"email": email, "password": PASSWORD})
    return client


@pytest.fixture
def auth_client(app):
    """Authenticated test client (logged in as the approved student)."""
    client = _login(app, "test@example.com")
    with client:
        yield client


@pytest.fixture
def pending_client(app):
    client = _login(app, "pending@example.com")
    with client:
        yield client


@pytest.fixture
def admin_client(app):
    client = _login(app, "admin@example.com")
    with client:
        yield client


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


@pytest.fixture
def catalog(app):
    """Seoul/L1 meetings around the real clock, with student 1 enrolled.

    Keys: ``past`` ended 2 days ago (homework open), ``old`` ended 10 days
    ago (everything closed), ``live`` in progress, ``future`` in 3 days.
    """
    from db_stores import EnrollmentStoreDB, MeetingCatalogDB

    now = datetime.now(timezone.utc)
    with app.app_context():
        ids = {
            "old": MeetingCatalogDB.add("Seoul", "L1", 1, now - timedelta(days=10, hours=2),
                                        now - timedelta(days=10)),
            "past": MeetingCatalogDB.add("Seoul", "L1", 2, now - timedelta(days=2, hours=2),
                                         now - timedelta(days=2)),
            "live": MeetingCatalogDB.add("Seoul", "L1", 3, now - timedelta(hours=1),
                                         now + timedelta(hours=1)),
            "future": MeetingCatalogDB.add("Seoul", "L1", 4, now + timedelta(days=3),
                                           now + timedelta(days=3, hours=2)),
        }
        MeetingCatalogDB.assign_instructor(ids["past"], 3)
        EnrollmentStoreDB(1).add("Seoul", "L1")
    return ids
