from songvault.api import app as app_module
from songvault.api.app import app


def test_server_test_endpoint_needs_no_auth(client):
    response = client.get("/api/test")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Server is running!"
    assert body["status"] == "OK"
    assert body["timestamp"]


def test_startup_removes_test_fixture_songs(fakes, monkeypatch):
    from fastapi.testclient import TestClient

    monkeypatch.setattr(app_module, "ensure_upload_dir", lambda: None)
    monkeypatch.setattr(app_module, "CLEANUP_TEST_SONGS", True)
    fakes.catalog.add("Test Song", "Test Artist")
    fakes.catalog.add("Test Song", "Test Artist")
    keep = fakes.catalog.add("Test Song", "Someone Else")

    with TestClient(app):
        assert list(fakes.catalog.songs) == [keep.song_id]


def test_unknown_route_error_shape(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_lifespan_runs_against_the_shared_state(fakes, monkeypatch):
    from fastapi.testclient import TestClient

    indexed, closed = [], []
    monkeypatch.setattr(app_module, "ensure_upload_dir", lambda: None)
    monkeypatch.setattr(fakes.users, "ensure_indexes", lambda: indexed.append(True))
    monkeypatch.setattr(fakes.state, "close", lambda: closed.append(True))

    with TestClient(app):
        assert indexed == [True]
        assert closed == []

    assert closed == [True]
    assert app.dependency_overrides == {}
