"""
Shared fixtures: an application on an in-memory SQLite database with the
local (sql) backend, and helpers that drive it through the front controller.
"""
import re

import pytest

from app import create_app
from config import TestingConfig
from core.database import SqlDataClient
from extensions import cache, db

CSRF_RE = re.compile(r'name="_token" value="([0-9a-f]+)"')

PASSWORD = "Secret123"


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        cache.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sql_client(app):
    return SqlDataClient(db)


def create_user(email="alice@example.com", password=PASSWORD, display_name="Alice", username=None, role="user"):
    identity = SqlDataClient(db).sign_up(email, password, display_name=display_name, username=username)
    if role != "user":
        SqlDataClient(db).update("users", {"id": int(identity["id"])}, {"role": role})
    return identity


def csrf_token(client, path="/login"):
    response = client.get(path)
    match = CSRF_RE.search(response.get_data(as_text=True))
    assert match, f"no CSRF token rendered on {path}"
    return match.group(1)


def login(client, email="alice@example.com", password=PASSWORD):
    token = csrf_token(client, "/login")
    return client.post("/login", data={"_token": token, "email": email, "password": password})


@pytest.fixture
def user(app):
    return create_user()


@pytest.fixture
def logged_in(client, user):
    response = login(client)
    assert response.status_code == 302
    return client
