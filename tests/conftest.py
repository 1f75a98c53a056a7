"""
Pytest configuration and shared fixtures
"""
import sys
from pathlib import Path

import pytest

# Add project root to Python path (config.py lives there)
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from crm import create_app  # noqa: E402
from crm.extensions import db  # noqa: E402
from crm.models import Profile, ROLE_ADMIN, ROLE_CLIENT, ROLE_WORKER  # noqa: E402

PASSWORD = "secret123"

EMAILS = {
    "admin": "admin@example.com",
    "worker": "worker@example.com",
    "client": "client@example.com",
    "other_client": "other@example.com",
}


@pytest.fixture
def app():
    """Application on an in-memory database (schema created, empty)."""
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    """Push an app context for tests that work with models directly (no test client)."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def make_profile(role, email, first_name, last_name, password=PASSWORD, **extra):
    """Create and commit a profile; returns its id. Needs an app context."""
    profile = Profile(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=extra.pop("is_active", True),
        **extra,
    )
    if password:
        profile.set_password(password)
    db.session.add(profile)
    db.session.commit()
    return profile.id


@pytest.fixture
def users(app):
    """One profile per role plus a second client. Maps name -> profile id."""
    with app.app_context():
        return {
            "admin": make_profile(ROLE_ADMIN, EMAILS["admin"], "Ana", "Admin"),
            "worker": make_profile(ROLE_WORKER, EMAILS["worker"], "Wes", "Worker", position="Technician"),
            "client": make_profile(ROLE_CLIENT, EMAILS["client"], "Cleo", "Client", company="Acme d.o.o."),
            "other_client": make_profile(ROLE_CLIENT, EMAILS["other_client"], "Oscar", "Other", company="Globex"),
        }


@pytest.fixture
def login(client, users):
    """Log the test client in as one of the `users` fixture profiles."""
    def _login(name):
        return client.post("/auth/login", data={"email": EMAILS[name], "password": PASSWORD})

    return _login
