"""HTTP tests for the engagement, preference and admin routes."""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from database import get_db, init_db, run_migrations
from db_stores import EnrollmentStoreDB, MeetingCatalogDB, StudentStoreDB


class TestCore:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"

    def test_request_id_header(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_meetings_requires_login(self, client):
        assert client.get("/api/meetings").status_code == 401

    def test_meetings_catalog(self, auth_client, catalog):
        resp = auth_client.get("/api/meetings?region=Seoul")
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["meetings"]) == 4
        assert data["tracks"] == [{"region": "Seoul", "level": "L1"}]
        assert all("date" in m for m in data["meetings"])

    def test_enrollments_and_toggle(self, auth_client):
        resp = auth_client.get("/api/enrollments")
        assert resp.get_json() == {"enrollments": [], "quota": 0}

        resp = auth_client.post("/api/enrollments/toggle", json={"region": "Busan", "level": "L2"})
        assert resp.get_json()["enrolled"] is True
        assert auth_client.get("/api/enrollments").get_json()["quota"] == 9

        resp = auth_client.post("/api/enrollments/toggle", json={"region": "Busan", "level": "L2"})
        assert resp.get_json()["enrolled"] is False

    def test_toggle_requires_pair(self, auth_client):
        resp = auth_client.post("/api/enrollments/toggle", json={"region": "Busan"})
        assert resp.status_code == 400


class TestAttendance:
    def test_mark_live_meeting(self, auth_client, catalog):
        resp = auth_client.post(f"/api/meetings/{catalog['live']}/attendance")
        assert resp.status_code == 200
        assert resp.get_json()["attendance"]["status"] == "present"

    def test_mark_ended_meeting(self, auth_client, catalog):
        resp = auth_client.post(f"/api/meetings/{catalog['past']}/attendance")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "window_closed"

    def test_mark_unknown_meeting(self, auth_client):
        resp = auth_client.post("/api/meetings/9999/attendance")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_mark_requires_login(self, client, catalog):
        resp = client.post(f"/api/meetings/{catalog['live']}/attendance")
        assert resp.status_code == 401


class TestHomework:
    def test_submit_duplicate_delete_resubmit(self, auth_client, catalog):
        url = f"/api/meetings/{catalog['past']}/homework"
        resp = auth_client.post(url, json={"note": "done", "media_urls": ["https://cdn.example/1.png"]})
        assert resp.status_code == 201
        assert resp.get_json()["homework"]["media_urls"] == ["https://cdn.example/1.png"]

        resp = auth_client.post(url, json={"note": "again"})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "duplicate_submission"

        resp = auth_client.delete(url)
        assert resp.get_json()["deleted"] is True
        assert resp.get_json()["can_resubmit"] is True

        assert auth_client.post(url, json={"note": "again"}).status_code == 201

    def test_submit_before_end(self, auth_client, catalog):
        resp = auth_client.post(f"/api/meetings/{catalog['live']}/homework", json={})
        assert resp.status_code == 409

    def test_submit_after_window(self, auth_client, catalog):
        resp = auth_client.post(f"/api/meetings/{catalog['old']}/homework", json={})
        assert resp.status_code == 409

    def test_media_urls_must_be_list(self, auth_client, catalog):
        resp = auth_client.post(f"/api/meetings/{catalog['past']}/homework",
                                json={"media_urls": "https://cdn.example/1.png"})
        assert resp.status_code == 400


class TestBoardAndRates:
    def test_board(self, auth_client, catalog):
        resp = auth_client.get("/api/board")
        assert resp.status_code == 200
        board = {m["id"]: m for m in resp.get_json()["meetings"]}
        assert set(board) == set(catalog.values())
        assert board[catalog["live"]]["can_mark_attendance"] is True
        assert board[catalog["live"]]["date"]["ongoing"] is True
        assert board[catalog["past"]]["can_upload_homework"] is True
        assert board[catalog["old"]]["can_upload_homework"] is False

    def test_my_rates(self, auth_client, catalog):
        auth_client.post(f"/api/meetings/{catalog['live']}/attendance")
        data = auth_client.get("/api/me/rates").get_json()
        assert data["quota_denominator"] == 9
        assert data["attendance_rate"] == 11  # 1 of 9
        assert data["in_scope_count"] == 4
        [track] = data["tracks"]
        # old and past ended without attendance
        assert track["absent_count"] == 2
        assert track["eligibility"] == "not_eligible"


class TestPreferences:
    def test_preferences_hide_stale_rows(self, auth_client, catalog):
        auth_client.post("/api/preferences", json={"region": "Seoul", "level": "L1", "is_favorite": True})
        auth_client.post("/api/preferences", json={"region": "Daegu", "level": "L3", "is_favorite": True})
        data = auth_client.get("/api/preferences").get_json()
        assert [p["region"] for p in data["preferences"]] == ["Seoul"]
        assert data["hidden_count"] == 1

    def test_partial_update(self, auth_client):
        auth_client.post("/api/preferences", json={"region": "Seoul", "level": "L1",
                                                   "is_favorite": True, "notify_enabled": True})
        resp = auth_client.post("/api/preferences", json={"region": "Seoul", "level": "L1",
                                                          "notify_enabled": False})
        pref = resp.get_json()["preference"]
        assert pref["is_favorite"] is True
        assert pref["notify_enabled"] is False

    def test_flag_required(self, auth_client):
        resp = auth_client.post("/api/preferences", json={"region": "Seoul", "level": "L1"})
        assert resp.status_code == 400

    def test_pair_required(self, auth_client):
        resp = auth_client.post("/api/preferences", json={"region": "Seoul", "is_favorite": True})
        assert resp.status_code == 400

    def test_toggle_favorite(self, auth_client):
        resp = auth_client.post("/api/favorites/toggle", json={"region": "Seoul", "level": "L1"})
        pref = resp.get_json()["preference"]
        assert pref["is_favorite"] is True
        assert pref["notify_enabled"] is False
        resp = auth_client.post("/api/favorites/toggle", json={"region": "Seoul", "level": "L1"})
        assert resp.get_json()["preference"]["is_favorite"] is False


class TestAdmin:
    def test_cohort(self, admin_client, catalog):
        data = admin_client.get(f"/api/admin/meetings/{catalog['past']}/cohort").get_json()
        assert data["roster_size"] == 1
        assert data["attendance_rate"] == 0
        assert data["absent"] == [{"id": 1, "name": "Test Student"}]

    def test_student_rates(self, admin_client, catalog):
        resp = admin_client.get("/api/admin/students/1/rates")
        assert resp.status_code == 200
        assert resp.get_json()["quota_denominator"] == 9
        assert admin_client.get("/api/admin/students/999/rates").status_code == 404

    def test_users_filter(self, admin_client):
        users = admin_client.get("/api/admin/users?status=pending").get_json()["users"]
        assert [u["id"] for u in users] == [2]
        assert admin_client.get("/api/admin/users?status=bogus").status_code == 400

    def test_approve_user(self, app, admin_client):
        resp = admin_client.post("/api/admin/users/2/status", json={"status": "approved"})
        assert resp.status_code == 200
        with app.app_context():
            row = get_db().execute("SELECT status FROM users WHERE id = 2").fetchone()
            assert row["status"] == "approved"

    def test_status_validation(self, admin_client):
        assert admin_client.post("/api/admin/users/2/status", json={"status": "x"}).status_code == 400
        assert admin_client.post("/api/admin/users/999/status", json={"status": "approved"}).status_code == 404

    def test_reminders(self, admin_client, catalog):
        data = admin_client.get("/api/admin/reminders").get_json()
        assert data["count"] == len(data["reminders"])

    def test_instructor_overview(self, admin_client, catalog):
        data = admin_client.get("/api/instructor/overview").get_json()
        assert [m["meeting_id"] for m in data["meetings"]] == [catalog["past"]]
        assert data["totals"]["total_enrolled"] == 1

    def test_instructor_overview_without_assignments(self, auth_client, catalog):
        resp = auth_client.get("/api/instructor/overview")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["meetings"] == []
        assert data["totals"]["meeting_count"] == 0


@pytest.fixture
def csrf_app(tmp_path):
    """App on the development config, so CSRF protection stays enabled."""
    app = create_app({"DATABASE": str(tmp_path / "csrf.db"), "SECRET_KEY": "csrf-secret"})
    with app.app_context():
        init_db()
        run_migrations()
    return app


class TestJsonApiWithCsrfEnabled:
    def test_config_default_keeps_csrf_on(self, csrf_app):
        assert csrf_app.config["WTF_CSRF_ENABLED"] is True

    def test_register_login_and_mark(self, csrf_app):
        client = csrf_app.test_client()
        resp = client.post("/register", json={
            "name": "Token Free", "email": "tokenfree@example.com", "password": "abcd1234",
        })
        assert resp.status_code == 201
        user_id = resp.get_json()["user"]["id"]

        now = datetime.now(timezone.utc)
        with csrf_app.app_context():
            StudentStoreDB.set_status(user_id, "approved")
            live = MeetingCatalogDB.add("Seoul", "L1", 1, now - timedelta(hours=1), now + timedelta(hours=1))
            EnrollmentStoreDB(user_id).add("Seoul", "L1")

        resp = client.post("/login", json={"email": "tokenfree@example.com", "password": "abcd1234"})
        assert resp.status_code == 200

        resp = client.post(f"/api/meetings/{live}/attendance")
        assert resp.status_code == 200
        assert resp.get_json()["attendance"]["status"] == "present"

        resp = client.post("/api/preferences", json={"region": "Seoul", "level": "L1", "is_favorite": True})
        assert resp.status_code == 200
