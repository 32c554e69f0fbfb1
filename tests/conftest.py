"""Fixtures partagées: config temporaire, base SQLite, faux collaborateurs."""
from pathlib import Path
from typing import List, Optional

import pytest
import yaml

from grabarr.config import init_config
from grabarr.core.errors import SearchError
from grabarr.core.library import FileSystemLibraryScanner
from grabarr.core.models import DownloadSubmission, MediaKind, SearchCandidate
from grabarr.db.database import init_db
from grabarr.db.store import RecordStore
from grabarr.services.settings import SettingsProvider

OWNER = "alice"

TEST_CONFIG = {
    "app": {"data_dir": "unused", "log_level": "DEBUG"},
    "prowlarr": {"url": "http://prowlarr.test:9696", "api_key": "test-key", "timeout": 5},
    "qbittorrent": {"url": "http://qbittorrent.test:8080", "username": "admin", "password": "secret"},
    "search": {"max_attempts": 2, "retry_delay_seconds": 0, "timeout_seconds": 5},
    "monitoring": {
        "entity_delay_seconds": 0,
        "episode_delay_seconds": 0,
        "startup_delay_seconds": 0,
        "submit_timeout_seconds": 5,
    },
    "watcher": {"stability_wait_seconds": 0},
    "library": {"min_movie_size_mb": 0, "min_episode_size_mb": 0, "max_depth": 3},
    "scheduler": {"enabled": False},
}


@pytest.fixture(autouse=True)
def config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(TEST_CONFIG), encoding="utf-8")
    loaded = init_config(str(config_path))
    init_db(str(tmp_path / "data"))
    return loaded


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def settings_provider(store):
    return SettingsProvider(store)


@pytest.fixture
def scanner():
    return FileSystemLibraryScanner()


def write_file(path: Path, content: bytes = b"video-bytes") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def candidate(title: str, seeders: Optional[int] = None, priority: Optional[int] = None, **extra) -> SearchCandidate:
    extra.setdefault("download_url", f"magnet:?xt=urn:btih:{abs(hash(title)):x}")
    return SearchCandidate(title=title, seeders=seeders, indexer_priority=priority, **extra)


class FakeSearch:
    """Search collaborator returning canned results per call."""

    def __init__(self, results: Optional[List[SearchCandidate]] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.queries: List[str] = []

    async def search(self, query: str, category: int) -> List[SearchCandidate]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def test_connection(self):
        return {"version": "1.0-test"}


class FakeDownloader:
    name = "fake-client"

    def __init__(self, success: bool = True):
        self.success = success
        self.submitted: List[SearchCandidate] = []

    async def submit(self, candidate: SearchCandidate, kind: MediaKind) -> DownloadSubmission:
        self.submitted.append(candidate)
        if not self.success:
            return DownloadSubmission(success=False, client_name=self.name, error="rejected")
        return DownloadSubmission(success=True, client_reference=f"ref-{len(self.submitted)}", client_name=self.name)

    def test_connection(self):
        return {"version": "4.6-test"}


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def failing_search():
    return FakeSearch(error=SearchError("indexers unreachable"))
