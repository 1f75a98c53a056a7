"""
Tests for login, logout, self sign-up and first-admin bootstrap
"""
from conftest import EMAILS, PASSWORD

from crm.extensions import db
from crm.models import AuditLog, Profile, ROLE_ADMIN, ROLE_CLIENT


class TestLogin:
    def test_login_success_redirects_to_dashboard(self, client, users):
        response = client.post("/auth/login", data={"email": EMAILS["admin"], "password": PASSWORD})
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/dashboard/")

    def test_email_is_case_insensitive(self, client, users):
        response = client.post("/auth/login", data={"email": "  ADMIN@example.com ", "password": PASSWORD})
        assert response.status_code == 302

    def test_wrong_password(self, client, users):
        response = client.post("/auth/login", data={"email": EMAILS["admin"], "password": "nope"})
        assert response.status_code == 401
        assert b"Invalid email or password" in response.data

    def test_inactive_profile_rejected(self, app, client, users):
        with app.app_context():
            db.session.get(Profile, users["worker"]).is_active = False
            db.session.commit()

        response = client.post("/auth/login", data={"email": EMAILS["worker"], "password": PASSWORD})
        assert response.status_code == 403

    def test_directory_profile_without_password_cannot_log_in(self, app, client, users):
        with app.app_context():
            db.session.add(Profile(email="nologin@example.com", first_name="No", last_name="Login", role=ROLE_CLIENT))
            db.session.commit()

        response = client.post("/auth/login", data={"email": "nologin@example.com", "password": ""})
        assert response.status_code == 401

    def test_next_parameter_is_followed_when_local(self, client, users):
        response = client.post(
            "/auth/login?next=/tickets/",
            data={"email": EMAILS["admin"], "password": PASSWORD},
        )
        assert response.headers["Location"].endswith("/tickets/")

    def test_external_next_is_ignored(self, client, users):
        response = client.post(
            "/auth/login?next=https://evil.example/",
            data={"email": EMAILS["admin"], "password": PASSWORD},
        )
        assert "evil.example" not in response.headers["Location"]

    def test_protected_page_requires_login(self, client):
        response = client.get("/tickets/")
        assert response.status_code == 302
        assert "/auth/login" in response.headers["Location"]


class TestLogout:
    def test_logout(self, client, login):
        login("worker")
        client.post("/auth/logout")
        response = client.get("/dashboard/")
        assert response.status_code == 302


class TestRegister:
    def test_register_creates_client(self, app, client):
        response = client.post(
            "/auth/register",
            data={"email": "New@Example.com", "password": "longenough", "first_name": "Nina", "last_name": "New"},
        )
        assert response.status_code == 302

        with app.app_context():
            profile = Profile.query.filter_by(email="new@example.com").one()
            assert profile.role == ROLE_CLIENT
            assert profile.check_password("longenough")
            assert AuditLog.query.filter_by(entity_type="Profile", entity_id=profile.id, action="CREATE").count() == 1

    def test_short_password(self, client):
        response = client.post(
            "/auth/register",
            data={"email": "x@example.com", "password": "123", "first_name": "X", "last_name": "Y"},
        )
        assert response.status_code == 400

    def test_duplicate_email(self, client, users):
        response = client.post(
            "/auth/register",
            data={"email": EMAILS["client"], "password": "longenough", "first_name": "X", "last_name": "Y"},
        )
        assert response.status_code == 400


class TestSeedAdmin:
    def test_first_admin_created_on_empty_system(self, app, client):
        response = client.post("/auth/seed-admin", data={"email": "root@example.com", "password": "pw123456"})
        assert response.status_code == 302

        with app.app_context():
            admin = Profile.query.filter_by(email="root@example.com").one()
            assert admin.role == ROLE_ADMIN

    def test_blocked_once_profiles_exist(self, app, client, users):
        response = client.post("/auth/seed-admin", data={"email": "late@example.com", "password": "pw123456"})
        assert response.status_code == 302

        with app.app_context():
            assert Profile.query.filter_by(email="late@example.com").first() is None
