"""RecordStore: accès aux données, toujours filtré par utilisateur."""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set
import logging
import secrets

from sqlalchemy import func

from grabarr.core.errors import RecordNotFoundError
from grabarr.core.models import EntityStatus, HistoryStatus
from grabarr.core.parsing import episode_key
from grabarr.db.database import session_scope
from grabarr.db.models import (
    UserSettings, MonitoredMovie, MonitoredSeries, PendingFile, HistoryEntry, utcnow,
)

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = {
    "movie_directory", "series_directory", "movie_file_format", "series_file_format",
    "quality_profile", "auto_download", "auto_rename", "auto_rename_interval",
    "check_interval", "download_watcher_enabled", "movie_download_directory",
    "series_download_directory", "movie_watcher_destination", "series_watcher_destination",
    "watcher_interval", "watcher_auto_approve",
}

DESCRIPTIVE_MOVIE_FIELDS = (
    "title", "release_date", "overview", "poster_url", "quality_profile", "min_availability", "monitor",
)

DESCRIPTIVE_SERIES_FIELDS = (
    "title", "first_air_date", "overview", "poster_url", "quality_profile", "min_availability", "monitor",
)


def _apply(record, changes: Dict[str, Any]) -> None:
    for key, value in changes.items():
        if not hasattr(record, key):
            raise AttributeError(f"{type(record).__name__} has no field '{key}'")
        setattr(record, key, value)


def _reopen_if_incomplete(series: MonitoredSeries) -> None:
    """Newly selected episodes without a file reopen a downloaded series."""
    if series.status != EntityStatus.DOWNLOADED.value:
        return
    if not set(series.selected_episodes or []) <= set((series.episode_files or {}).keys()):
        series.status = EntityStatus.MONITORING.value


class RecordStore:
    """CRUD pour réglages, médias surveillés, fichiers en attente et historique."""

    # Settings

    def get_settings(self, owner_id: str) -> Optional[UserSettings]:
        with session_scope() as db:
            return db.query(UserSettings).filter(UserSettings.owner_id == owner_id).first()

    def save_settings(self, owner_id: str, **changes) -> UserSettings:
        unknown = set(changes) - SETTINGS_FIELDS
        if unknown:
            raise AttributeError(f"Unknown settings: {', '.join(sorted(unknown))}")
        with session_scope() as db:
            settings = db.query(UserSettings).filter(UserSettings.owner_id == owner_id).first()
            if settings is None:
                settings = UserSettings(owner_id=owner_id)
                db.add(settings)
            _apply(settings, changes)
            db.flush()
            return settings

    def mark_rename_run(self, owner_id: str, kind: str, when: Optional[datetime] = None) -> None:
        when = when or utcnow()
        with session_scope() as db:
            settings = db.query(UserSettings).filter(UserSettings.owner_id == owner_id).first()
            if settings is None:
                settings = UserSettings(owner_id=owner_id)
                db.add(settings)
            if kind == "movie":
                settings.last_movie_rename_at = when
            else:
                settings.last_series_rename_at = when

    def list_owner_ids(self) -> List[str]:
        """Utilisateurs ayant des réglages ou des médias surveillés."""
        with session_scope() as db:
            owners: Set[str] = set()
            for model in (UserSettings, MonitoredMovie, MonitoredSeries):
                owners.update(row[0] for row in db.query(model.owner_id).distinct())
            return sorted(owners)

    # Movies

    def list_movies(self, owner_id: str) -> List[MonitoredMovie]:
        with session_scope() as db:
            return (
                db.query(MonitoredMovie)
                .filter(MonitoredMovie.owner_id == owner_id)
                .order_by(MonitoredMovie.id)
                .all()
            )

    def get_movie(self, owner_id: str, movie_id: int) -> MonitoredMovie:
        with session_scope() as db:
            movie = db.query(MonitoredMovie).filter(
                MonitoredMovie.owner_id == owner_id,
                MonitoredMovie.id == movie_id,
            ).first()
            if movie is None:
                raise RecordNotFoundError(f"Movie {movie_id} not found")
            return movie

    def add_movie(self, owner_id: str, tmdb_id: int, title: str, **fields) -> MonitoredMovie:
        """Ajoute ou met à jour un film (un statut 'downloaded' n'est jamais réinitialisé)."""
        with session_scope() as db:
            movie = db.query(MonitoredMovie).filter(
                MonitoredMovie.owner_id == owner_id,
                MonitoredMovie.tmdb_id == tmdb_id,
            ).first()
            if movie is None:
                movie = MonitoredMovie(owner_id=owner_id, tmdb_id=tmdb_id, title=title)
                db.add(movie)
            else:
                movie.title = title
                if movie.status != EntityStatus.DOWNLOADED.value:
                    movie.status = EntityStatus.MONITORING.value
                    movie.last_error = None
            _apply(movie, {k: v for k, v in fields.items() if k in DESCRIPTIVE_MOVIE_FIELDS and v is not None})
            db.flush()
            return movie

    def update_movie(self, owner_id: str, movie_id: int, **changes) -> MonitoredMovie:
        with session_scope() as db:
            movie = db.query(MonitoredMovie).filter(
                MonitoredMovie.owner_id == owner_id,
                MonitoredMovie.id == movie_id,
            ).first()
            if movie is None:
                raise RecordNotFoundError(f"Movie {movie_id} not found")
            _apply(movie, changes)
            db.flush()
            return movie

    def delete_movie(self, owner_id: str, movie_id: int) -> None:
        with session_scope() as db:
            deleted = db.query(MonitoredMovie).filter(
                MonitoredMovie.owner_id == owner_id,
                MonitoredMovie.id == movie_id,
            ).delete()
            if not deleted:
                raise RecordNotFoundError(f"Movie {movie_id} not found")

    # Series

    def list_series(self, owner_id: str) -> List[MonitoredSeries]:
        with session_scope() as db:
            return (
                db.query(MonitoredSeries)
                .filter(MonitoredSeries.owner_id == owner_id)
                .order_by(MonitoredSeries.id)
                .all()
            )

    def get_series(self, owner_id: str, series_id: int) -> MonitoredSeries:
        with session_scope() as db:
            series = db.query(MonitoredSeries).filter(
                MonitoredSeries.owner_id == owner_id,
                MonitoredSeries.id == series_id,
            ).first()
            if series is None:
                raise RecordNotFoundError(f"Series {series_id} not found")
            return series

    def add_series(
        self,
        owner_id: str,
        tmdb_id: int,
        title: str,
        selected_seasons: Optional[Iterable[int]] = None,
        selected_episodes: Optional[Iterable[str]] = None,
        **fields,
    ) -> MonitoredSeries:
        """Ajoute ou met à jour une série surveillée."""
        with session_scope() as db:
            series = db.query(MonitoredSeries).filter(
                MonitoredSeries.owner_id == owner_id,
                MonitoredSeries.tmdb_id == tmdb_id,
            ).first()
            if series is None:
                series = MonitoredSeries(
                    owner_id=owner_id,
                    tmdb_id=tmdb_id,
                    title=title,
                    selected_seasons=[],
                    selected_episodes=[],
                    episode_files={},
                )
                db.add(series)
            else:
                series.title = title
                if series.status != EntityStatus.DOWNLOADED.value:
                    series.status = EntityStatus.MONITORING.value
                    series.last_error = None
            if selected_seasons is not None:
                series.selected_seasons = sorted({int(s) for s in selected_seasons})
            if selected_episodes is not None:
                series.selected_episodes = sorted(set(selected_episodes))
                _reopen_if_incomplete(series)
            _apply(series, {k: v for k, v in fields.items() if k in DESCRIPTIVE_SERIES_FIELDS and v is not None})
            db.flush()
            return series

    def update_series(self, owner_id: str, series_id: int, **changes) -> MonitoredSeries:
        with session_scope() as db:
            series = db.query(MonitoredSeries).filter(
                MonitoredSeries.owner_id == owner_id,
                MonitoredSeries.id == series_id,
            ).first()
            if series is None:
                raise RecordNotFoundError(f"Series {series_id} not found")
            if "selected_seasons" in changes and changes["selected_seasons"] is not None:
                changes["selected_seasons"] = sorted({int(s) for s in changes["selected_seasons"]})
            if "selected_episodes" in changes and changes["selected_episodes"] is not None:
                changes["selected_episodes"] = sorted(set(changes["selected_episodes"]))
            _apply(series, changes)
            if changes.get("selected_episodes") is not None:
                _reopen_if_incomplete(series)
            db.flush()
            return series

    def delete_series(self, owner_id: str, series_id: int) -> None:
        with session_scope() as db:
            deleted = db.query(MonitoredSeries).filter(
                MonitoredSeries.owner_id == owner_id,
                MonitoredSeries.id == series_id,
            ).delete()
            if not deleted:
                raise RecordNotFoundError(f"Series {series_id} not found")

    def select_all_episodes(self, owner_id: str, series_id: int, season_counts: Dict[int, int]) -> MonitoredSeries:
        """Sélectionne chaque épisode de chaque saison ({saison: nombre d'épisodes})."""
        seasons = sorted(int(s) for s in season_counts)
        keys = [
            episode_key(season, number)
            for season in seasons
            for number in range(1, int(season_counts[season]) + 1)
        ]
        return self.update_series(owner_id, series_id, selected_seasons=seasons, selected_episodes=keys)

    def unselect_all_episodes(self, owner_id: str, series_id: int) -> MonitoredSeries:
        return self.update_series(owner_id, series_id, selected_seasons=[], selected_episodes=[])

    def set_episode_files(self, owner_id: str, series_id: int, files: Dict[str, str]) -> MonitoredSeries:
        """Fusionne des chemins dans la table des fichiers d'épisodes."""
        series = self.get_series(owner_id, series_id)
        merged = dict(series.episode_files or {})
        merged.update(files)
        return self.update_series(owner_id, series_id, episode_files=merged)

    # Pending files

    def list_pending(self, owner_id: str) -> List[PendingFile]:
        with session_scope() as db:
            return (
                db.query(PendingFile)
                .filter(PendingFile.owner_id == owner_id)
                .order_by(PendingFile.detected_at, PendingFile.source_path)
                .all()
            )

    def get_pending(self, owner_id: str, pending_id: str) -> PendingFile:
        with session_scope() as db:
            pending = db.query(PendingFile).filter(
                PendingFile.owner_id == owner_id,
                PendingFile.id == pending_id,
            ).first()
            if pending is None:
                raise RecordNotFoundError(f"Pending file {pending_id} not found")
            return pending

    def pending_sources(self, owner_id: str) -> Set[str]:
        with session_scope() as db:
            rows = db.query(PendingFile.source_path).filter(PendingFile.owner_id == owner_id)
            return {row[0] for row in rows}

    def add_pending(self, owner_id: str, source_path: str, destination_path: str, media_kind: str, size: int) -> PendingFile:
        with session_scope() as db:
            pending = PendingFile(
                id=secrets.token_hex(8),
                owner_id=owner_id,
                source_path=source_path,
                destination_path=destination_path,
                media_kind=media_kind,
                size=size,
            )
            db.add(pending)
            db.flush()
            return pending

    def delete_pending(self, owner_id: str, pending_id: str) -> None:
        with session_scope() as db:
            db.query(PendingFile).filter(
                PendingFile.owner_id == owner_id,
                PendingFile.id == pending_id,
            ).delete()

    # History

    def add_history(self, owner_id: str, **fields) -> HistoryEntry:
        with session_scope() as db:
            entry = HistoryEntry(owner_id=owner_id, **fields)
            db.add(entry)
            db.flush()
            return entry

    def list_history(
        self,
        owner_id: str,
        limit: int = 50,
        offset: int = 0,
        media_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[HistoryEntry]:
        with session_scope() as db:
            query = db.query(HistoryEntry).filter(HistoryEntry.owner_id == owner_id)
            if media_type:
                query = query.filter(HistoryEntry.media_type == media_type)
            if status:
                query = query.filter(HistoryEntry.status == status)
            return (
                query.order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def update_history(
        self,
        owner_id: str,
        entry_id: int,
        status: Optional[str] = None,
        download_client_id: Optional[str] = None,
    ) -> HistoryEntry:
        """Seuls le statut et l'identifiant client sont modifiables."""
        with session_scope() as db:
            entry = db.query(HistoryEntry).filter(
                HistoryEntry.owner_id == owner_id,
                HistoryEntry.id == entry_id,
            ).first()
            if entry is None:
                raise RecordNotFoundError(f"History entry {entry_id} not found")
            if status is not None:
                entry.status = HistoryStatus(status).value
            if download_client_id is not None:
                entry.download_client_id = download_client_id
            db.flush()
            return entry

    def history_stats(self, owner_id: str) -> Dict[str, Any]:
        with session_scope() as db:
            by_status = dict(
                db.query(HistoryEntry.status, func.count(HistoryEntry.id))
                .filter(HistoryEntry.owner_id == owner_id)
                .group_by(HistoryEntry.status)
                .all()
            )
            by_type = dict(
                db.query(HistoryEntry.media_type, func.count(HistoryEntry.id))
                .filter(HistoryEntry.owner_id == owner_id)
                .group_by(HistoryEntry.media_type)
                .all()
            )
        stats = {status.value: by_status.get(status.value, 0) for status in HistoryStatus}
        stats["total"] = sum(by_status.values())
        stats["movies"] = by_type.get("movie", 0)
        stats["tv"] = by_type.get("tv", 0)
        return stats

    def has_recent_grab(
        self,
        owner_id: str,
        tmdb_id: int,
        since: datetime,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> bool:
        """Vrai si une release non échouée a été envoyée depuis `since`."""
        with session_scope() as db:
            query = db.query(HistoryEntry.id).filter(
                HistoryEntry.owner_id == owner_id,
                HistoryEntry.tmdb_id == tmdb_id,
                HistoryEntry.status != HistoryStatus.FAILED.value,
                HistoryEntry.created_at >= since,
            )
            if season is not None:
                query = query.filter(HistoryEntry.season == season)
            if episode is not None:
                query = query.filter(HistoryEntry.episode == episode)
            return query.first() is not None
