import json

import pytest

from songaday.notify import NotificationKind
from songaday.web.app import NOTIFY_COOKIE, create_app
from songaday.web.health import write_health_status


@pytest.fixture
def client(engine):
    app = create_app(engine, {"TESTING": True})
    return app.test_client()


def test_authorise_redirects_to_spotify(client):
    response = client.get("/authorise")
    assert response.status_code == 302
    assert response.headers["Location"].startswith("https://accounts.example/authorize?state=")
    assert not any(NOTIFY_COOKIE in c for c in response.headers.getlist("Set-Cookie"))


def test_authorise_remembers_notify_ref(client):
    response = client.get("/authorise?notify=42")
    cookies = response.headers.getlist("Set-Cookie")
    assert any(c.startswith(f"{NOTIFY_COOKIE}=42") for c in cookies)


def test_callback_without_code(client):
    response = client.get("/callback?error=access_denied")
    assert response.status_code == 401
    assert response.get_data(as_text=True) == "Authorisation error"


def test_callback_with_bad_code(client):
    response = client.get("/callback?code=bad")
    assert response.status_code == 401


def test_full_authorisation_flow(client, notifier):
    client.get("/authorise?notify=42")

    response = client.get("/callback?code=good")

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "Successfully authorised"
    assert notifier.sent[0].kind is NotificationKind.AUTHORISED
    assert notifier.sent[0].notify_ref == "42"


def test_health_endpoint(client, engine):
    engine.authorise("code")

    data = client.get("/api/health").get_json()

    assert data["status"] == "healthy"
    assert data["year"] == 2024
    assert data["active_schedules"] == 1
    assert data["stored_users"] == 1


def test_write_health_status(tmp_path):
    write_health_status(tmp_path, "running", "1 active schedules")
    data = json.loads((tmp_path / "health.json").read_text())
    assert data["status"] == "running"
    assert data["message"] == "1 active schedules"
