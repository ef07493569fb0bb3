"""
SQLite database layer for Cohort Academy.

Uses raw sqlite3 with WAL mode and parameterized queries (PostgreSQL through
pg_compat when DATABASE is a postgres URL). A schema_version table tracks
the versioned MIGRATIONS applied on top of SCHEMA.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from flask import current_app, g

DEFAULT_DB_PATH = str(Path(__file__).parent / "cohort_academy.db")


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Students and admins
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    password_hash TEXT,
    role TEXT NOT NULL DEFAULT 'student',
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL DEFAULT ''
);

-- Track enrollments: "this student follows region + level"
CREATE TABLE IF NOT EXISTS enrollments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    region TEXT NOT NULL,
    level TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT '',
    UNIQUE(student_id, region, level)
);

-- Meeting catalog (written by the catalog provider only)
CREATE TABLE IF NOT EXISTS meetings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    region TEXT NOT NULL,
    level TEXT NOT NULL,
    sequence_no INTEGER NOT NULL DEFAULT 0,
    title TEXT NOT NULL DEFAULT '',
    start_at TEXT NOT NULL,
    end_at TEXT,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_meetings_track ON meetings(region, level, sequence_no);

CREATE TABLE IF NOT EXISTS meeting_instructors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id INTEGER NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    instructor_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role TEXT NOT NULL DEFAULT 'main',
    sort_order INTEGER NOT NULL DEFAULT 0,
    UNIQUE(meeting_id, instructor_id)
);

-- Attendance marks: one row per (meeting, student), upsert only
CREATE TABLE IF NOT EXISTS attendance_marks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id INTEGER NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'present',
    checked_at TEXT NOT NULL DEFAULT '',
    UNIQUE(meeting_id, student_id)
);

-- Homework submissions: one row per (meeting, student), insert or delete
CREATE TABLE IF NOT EXISTS homework_submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id INTEGER NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    submitted_at TEXT,
    note TEXT NOT NULL DEFAULT '',
    UNIQUE(meeting_id, student_id)
);

-- Favorite / notify preferences per track
CREATE TABLE IF NOT EXISTS preferences (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    region TEXT NOT NULL,
    level TEXT NOT NULL,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    notify_enabled INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL DEFAULT '',
    UNIQUE(student_id, region, level)
);

-- Audit log
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, created_at);
"""


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: login lockout columns
    (1, """
        ALTER TABLE users ADD COLUMN login_attempts INTEGER NOT NULL DEFAULT 0;
        ALTER TABLE users ADD COLUMN locked_until TEXT NOT NULL DEFAULT '';
    """),
    # Migration 2: homework media references (JSON array of URLs)
    (2, """
        ALTER TABLE homework_submissions ADD COLUMN media_urls TEXT NOT NULL DEFAULT '[]';
    """),
    # Migration 3: per-student lookups
    (3, """
        CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance_marks(student_id);
        CREATE INDEX IF NOT EXISTS idx_homework_student ON homework_submissions(student_id);
        CREATE INDEX IF NOT EXISTS idx_preferences_student ON preferences(student_id);
    """),
]


def _database_url() -> str:
    return current_app.config.get("DATABASE", DEFAULT_DB_PATH)


def get_db():
    """Return a DB connection from Flask g, creating if needed.

    Supports both SQLite (default) and PostgreSQL (when DATABASE starts
    with postgresql:// or postgres://).
    """
    if "db" not in g:
        from pg_compat import is_postgres_url, connect_pg

        db_url = _database_url()
        if is_postgres_url(db_url):
            g.db = connect_pg(db_url)
            return g.db

        g.db = sqlite3.connect(db_url)
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler: close the request's connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent races when several Gunicorn workers
    start at once (SQLite only; PostgreSQL locks on its own).
    """
    from pg_compat import is_postgres_url

    db_url = _database_url()
    lock_file = None
    if not is_postgres_url(db_url):
        try:
            lock_file = open(Path(db_url).with_suffix(".migration.lock"), "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version in applied:
                continue
            try:
                db.executescript(sql)
            except db.Error as e:
                if "duplicate column" not in str(e).lower():
                    raise
            db.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, datetime.now(timezone.utc).isoformat()),
            )
            db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
