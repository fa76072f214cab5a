import pytest

from config import Settings
from db import init_db
from server import create_app


class FakeGateway:
    """Stands in for AIGateway: returns canned model text, records prompts."""

    def __init__(self, responses=None, configured=True):
        self.responses = list(responses or [])
        self.configured = configured
        self.calls = []

    def generate(self, prompt, expects_json=False):
        self.calls.append((prompt, expects_json))
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "test.db"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    init_db()
    return tmp_path / "test.db"


@pytest.fixture
def settings(tmp_path):
    return Settings(jwt_secret="test-secret", ga_config_path=str(tmp_path / "ga_config.json"))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(db, settings, gateway):
    app = create_app(settings, gateway=gateway)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username="alice", email="alice@example.com", password="pw-123456"):
    resp = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
    assert resp.status_code == 201, resp.get_json()
    data = resp.get_json()
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]


@pytest.fixture
def admin_headers(client):
    # first registered user is the admin
    headers, _ = register(client, "admin", "admin@example.com")
    return headers


@pytest.fixture
def user_headers(client, admin_headers):
    headers, _ = register(client, "bob", "bob@example.com")
    return headers
