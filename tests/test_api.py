import pytest
from fastapi.testclient import TestClient

from grabarr.main import create_app
from grabarr.services.container import build_services

from conftest import OWNER, FakeDownloader, FakeSearch, candidate, write_file

HEADERS = {"X-User-Id": OWNER}


@pytest.fixture
def search():
    return FakeSearch([candidate("Heat.1995.1080p.BluRay", seeders=12)])


@pytest.fixture
def client(search):
    services = build_services(search=search, downloader=FakeDownloader())
    with TestClient(create_app(services)) as test_client:
        yield test_client


def test_root(client):
    assert client.get("/").json() == {"message": "Grabarr API"}


def test_user_header_required(client):
    assert client.get("/api/settings").status_code == 422


def test_settings_defaults_and_update(client, tmp_path):
    response = client.get("/api/settings", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["quality_profile"] == "any"
    assert response.json()["download_watcher_enabled"] is False

    response = client.put(
        "/api/settings",
        headers=HEADERS,
        json={"movie_directory": str(tmp_path), "check_interval": 30},
    )
    assert response.status_code == 200
    assert response.json()["movie_directory"] == str(tmp_path)
    assert response.json()["check_interval"] == 30


def test_settings_reject_missing_directory(client, tmp_path):
    response = client.put("/api/settings", headers=HEADERS, json={"movie_directory": str(tmp_path / "nope")})
    assert response.status_code == 400
    assert response.json()["type"] == "ConfigurationError"


def test_movie_crud(client):
    response = client.post("/api/monitored/movies", headers=HEADERS, json={"tmdb_id": 949, "title": "Heat"})
    assert response.status_code == 200
    movie = response.json()
    assert movie["status"] == "monitoring"
    assert movie["quality_profile"] == "any"

    response = client.patch(
        f"/api/monitored/movies/{movie['id']}", headers=HEADERS, json={"quality_profile": "hd-1080p"},
    )
    assert response.json()["quality_profile"] == "hd-1080p"

    assert len(client.get("/api/monitored/movies", headers=HEADERS).json()) == 1
    assert client.get("/api/monitored/movies", headers={"X-User-Id": "bob"}).json() == []

    assert client.delete(f"/api/monitored/movies/{movie['id']}", headers=HEADERS).status_code == 200
    assert client.delete(f"/api/monitored/movies/{movie['id']}", headers=HEADERS).status_code == 404


def test_series_selection(client):
    series = client.post(
        "/api/monitored/series", headers=HEADERS, json={"tmdb_id": 1396, "title": "Breaking Bad"},
    ).json()

    response = client.post(
        f"/api/monitored/series/{series['id']}/select-all", headers=HEADERS, json={"seasons": {"1": 2}},
    )
    assert response.status_code == 200
    assert response.json()["selected_seasons"] == [1]
    assert response.json()["selected_episodes"] == ["1-1", "1-2"]

    response = client.post(f"/api/monitored/series/{series['id']}/unselect-all", headers=HEADERS)
    assert response.json()["selected_episodes"] == []


def test_monitoring_check_grabs(client, tmp_path, search):
    client.put("/api/settings", headers=HEADERS, json={"movie_directory": str(tmp_path)})
    client.post("/api/monitored/movies", headers=HEADERS, json={"tmdb_id": 949, "title": "Heat", "release_date": "1995-12-15"})

    response = client.post("/api/monitoring/check", headers=HEADERS)

    assert response.status_code == 200
    assert [r["status"] for r in response.json()] == ["grabbed"]
    assert search.queries == ["Heat 1995"]

    history = client.get("/api/history", headers=HEADERS).json()
    assert len(history) == 1
    assert history[0]["release_name"] == "Heat.1995.1080p.BluRay"

    response = client.patch(f"/api/history/{history[0]['id']}", headers=HEADERS, json={"status": "completed"})
    assert response.json()["status"] == "completed"
    assert client.get("/api/history/stats", headers=HEADERS).json()["completed"] == 1

    response = client.patch(f"/api/history/{history[0]['id']}", headers=HEADERS, json={"status": "bogus"})
    assert response.status_code == 422


def test_history_entry_not_found(client):
    assert client.patch("/api/history/12345", headers=HEADERS, json={"status": "failed"}).status_code == 404


def test_watcher_approval_collision_returns_409(client, tmp_path):
    downloads = tmp_path / "dl"
    library = tmp_path / "lib"
    write_file(downloads / "Heat.1995.mkv", b"new")
    write_file(library / "Heat.1995.mkv", b"old")
    client.put(
        "/api/settings",
        headers=HEADERS,
        json={"movie_download_directory": str(downloads), "movie_watcher_destination": str(library)},
    )

    client.post("/api/watcher/scan", headers=HEADERS)
    pending = client.get("/api/watcher/pending", headers=HEADERS).json()
    assert len(pending) == 1

    response = client.post(f"/api/watcher/pending/{pending[0]['id']}/approve", headers=HEADERS)
    assert response.status_code == 409
    assert len(client.get("/api/watcher/pending", headers=HEADERS).json()) == 1

    response = client.post(f"/api/watcher/pending/{pending[0]['id']}/reject", headers=HEADERS)
    assert response.status_code == 200
    assert client.get("/api/watcher/pending", headers=HEADERS).json() == []
    assert client.get("/api/watcher/status", headers=HEADERS).json()["stats"]["collisions"] == 1


def test_rename_preview_and_apply(client, tmp_path):
    path = write_file(tmp_path / "Heat.1995.1080p.mkv")
    client.put("/api/settings", headers=HEADERS, json={"movie_directory": str(tmp_path)})
    client.post("/api/monitored/movies", headers=HEADERS, json={"tmdb_id": 949, "title": "Heat", "release_date": "1995-12-15"})
    client.post("/api/monitoring/check", headers=HEADERS)

    proposals = client.post("/api/renames/preview", headers=HEADERS, json={"kind": "movie"}).json()
    assert [p["new_name"] for p in proposals] == ["Heat (1995).mkv"]
    assert path.exists()

    result = client.post("/api/renames/apply", headers=HEADERS, json={"proposals": proposals}).json()
    assert result["succeeded"] == 1
    assert (tmp_path / "Heat (1995).mkv").exists()


def test_diagnostics(client):
    body = client.get("/api/diagnostics").json()
    assert body["prowlarr"]["connected"] is True
    assert body["prowlarr"]["version"] == "1.0-test"
    assert body["qbittorrent"]["connected"] is True
