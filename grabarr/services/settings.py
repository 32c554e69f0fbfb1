"""SettingsProvider: réglages utilisateur complétés par les valeurs par défaut."""
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from grabarr.config import get_config
from grabarr.core.errors import ConfigurationError
from grabarr.core.models import MediaKind, WatchPair
from grabarr.db.store import RecordStore


@dataclass
class UserSettingsView:
    owner_id: str
    movie_directory: Optional[str]
    series_directory: Optional[str]
    movie_file_format: str
    series_file_format: str
    quality_profile: str
    auto_download: bool
    auto_rename: bool
    auto_rename_interval: int
    check_interval: int
    download_watcher_enabled: bool
    movie_download_directory: Optional[str]
    series_download_directory: Optional[str]
    movie_watcher_destination: Optional[str]
    series_watcher_destination: Optional[str]
    watcher_interval: int
    watcher_auto_approve: bool
    last_movie_rename_at: Optional[datetime] = None
    last_series_rename_at: Optional[datetime] = None

    def watch_pairs(self) -> List[WatchPair]:
        """Paires (source, destination) configurées pour le watcher."""
        pairs = []
        if self.movie_download_directory and self.movie_watcher_destination:
            pairs.append(WatchPair(self.movie_download_directory, self.movie_watcher_destination, MediaKind.MOVIE))
        if self.series_download_directory and self.series_watcher_destination:
            pairs.append(WatchPair(self.series_download_directory, self.series_watcher_destination, MediaKind.SERIES))
        return pairs


def _pick(value, default):
    return default if value is None else value


class SettingsProvider:
    """Résout les réglages d'un utilisateur."""

    def __init__(self, store: RecordStore):
        self.store = store

    def get(self, owner_id: str) -> UserSettingsView:
        config = get_config()
        defaults = config.defaults
        row = self.store.get_settings(owner_id)

        def field(name: str, default=None):
            return _pick(getattr(row, name, None) if row else None, default)

        return UserSettingsView(
            owner_id=owner_id,
            movie_directory=field("movie_directory"),
            series_directory=field("series_directory"),
            movie_file_format=field("movie_file_format", defaults.movie_file_format),
            series_file_format=field("series_file_format", defaults.series_file_format),
            quality_profile=field("quality_profile", defaults.quality_profile),
            auto_download=field("auto_download", defaults.auto_download),
            auto_rename=field("auto_rename", defaults.auto_rename),
            auto_rename_interval=field("auto_rename_interval", config.rename.default_interval_minutes),
            check_interval=field("check_interval", config.monitoring.default_check_interval_minutes),
            download_watcher_enabled=field("download_watcher_enabled", False),
            movie_download_directory=field("movie_download_directory"),
            series_download_directory=field("series_download_directory"),
            movie_watcher_destination=field("movie_watcher_destination"),
            series_watcher_destination=field("series_watcher_destination"),
            watcher_interval=field("watcher_interval", config.watcher.default_interval_seconds),
            watcher_auto_approve=field("watcher_auto_approve", defaults.watcher_auto_approve),
            last_movie_rename_at=field("last_movie_rename_at"),
            last_series_rename_at=field("last_series_rename_at"),
        )

    @staticmethod
    def validate_directories(**directories: Optional[str]) -> None:
        """Vérifie que chaque dossier renseigné existe; ConfigurationError sinon."""
        for name, value in directories.items():
            if not value:
                continue
            path = Path(value)
            if not path.is_dir():
                raise ConfigurationError(f"{name} does not exist or is not a directory: {value}")
