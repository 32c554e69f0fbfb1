"""SQLAlchemy models for database."""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Text, JSON, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores no timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserSettings(Base):
    """Réglages d'un utilisateur (None = valeur par défaut de la config)."""
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, unique=True, index=True)
    movie_directory = Column(String, nullable=True)
    series_directory = Column(String, nullable=True)
    movie_file_format = Column(String, nullable=True)
    series_file_format = Column(String, nullable=True)
    quality_profile = Column(String, nullable=True)
    auto_download = Column(Boolean, nullable=True)
    auto_rename = Column(Boolean, nullable=True)
    auto_rename_interval = Column(Integer, nullable=True)  # minutes
    check_interval = Column(Integer, nullable=True)  # minutes
    download_watcher_enabled = Column(Boolean, default=False, nullable=False)
    movie_download_directory = Column(String, nullable=True)
    series_download_directory = Column(String, nullable=True)
    movie_watcher_destination = Column(String, nullable=True)
    series_watcher_destination = Column(String, nullable=True)
    watcher_interval = Column(Integer, nullable=True)  # seconds
    watcher_auto_approve = Column(Boolean, nullable=True)
    last_movie_rename_at = Column(DateTime, nullable=True)
    last_series_rename_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class MonitoredMovie(Base):
    """Film surveillé par un utilisateur."""
    __tablename__ = "monitored_movies"
    __table_args__ = (UniqueConstraint("owner_id", "tmdb_id", name="uq_movie_owner_tmdb"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    tmdb_id = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    release_date = Column(String, nullable=True)  # YYYY-MM-DD
    overview = Column(Text, nullable=True)
    poster_url = Column(String, nullable=True)
    quality_profile = Column(String, default="any", nullable=False)
    min_availability = Column(String, default="released", nullable=False)  # announced, released
    monitor = Column(String, default="movieOnly", nullable=False)
    status = Column(String, default="monitoring", nullable=False)  # monitoring, downloading, downloaded, missing, error
    file_exists = Column(Boolean, default=False, nullable=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    last_checked = Column(DateTime, nullable=True)
    grabbed_release = Column(String, nullable=True)
    grabbed_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def year(self):
        if self.release_date and len(self.release_date) >= 4 and self.release_date[:4].isdigit():
            return int(self.release_date[:4])
        return None


class MonitoredSeries(Base):
    """Série surveillée (saisons et épisodes sélectionnés)."""
    __tablename__ = "monitored_series"
    __table_args__ = (UniqueConstraint("owner_id", "tmdb_id", name="uq_series_owner_tmdb"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    tmdb_id = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    first_air_date = Column(String, nullable=True)
    overview = Column(Text, nullable=True)
    poster_url = Column(String, nullable=True)
    quality_profile = Column(String, default="any", nullable=False)
    min_availability = Column(String, default="released", nullable=False)
    monitor = Column(String, default="all", nullable=False)
    selected_seasons = Column(JSON, default=list)  # [1, 2]
    selected_episodes = Column(JSON, default=list)  # ["1-1", "1-2"]
    episode_files = Column(JSON, default=dict)  # {"1-1": "/tv/Show/Season 01/..."}
    status = Column(String, default="monitoring", nullable=False)  # monitoring, downloading, downloaded, error
    last_checked = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class PendingFile(Base):
    """Fichier détecté par le watcher, en attente d'approbation."""
    __tablename__ = "pending_files"
    __table_args__ = (UniqueConstraint("owner_id", "source_path", name="uq_pending_owner_source"),)

    id = Column(String(16), primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    source_path = Column(String, nullable=False)
    destination_path = Column(String, nullable=False)
    media_kind = Column(String, nullable=False)  # movie, series
    size = Column(BigInteger, default=0)
    detected_at = Column(DateTime, default=utcnow, nullable=False)


class HistoryEntry(Base):
    """Historique des releases envoyées au client de téléchargement."""
    __tablename__ = "history"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    media_type = Column(String, nullable=False)  # movie, tv
    media_title = Column(String, nullable=False)
    tmdb_id = Column(Integer, nullable=True)
    season = Column(Integer, nullable=True)
    episode = Column(Integer, nullable=True)
    release_name = Column(String, nullable=False)
    protocol = Column(String, default="torrent", nullable=False)  # torrent, nzb
    indexer = Column(String, nullable=True)
    indexer_id = Column(Integer, nullable=True)
    download_url = Column(Text, nullable=True)
    size = Column(BigInteger, nullable=True)
    seeders = Column(Integer, nullable=True)
    leechers = Column(Integer, nullable=True)
    quality = Column(String, nullable=True)  # 2160p, 1080p, 720p, SD
    status = Column(String, default="grabbed", nullable=False)  # grabbed, downloading, completed, failed
    origin = Column(String, nullable=True)  # MonitoringService, manual
    download_client = Column(String, nullable=True)
    download_client_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
