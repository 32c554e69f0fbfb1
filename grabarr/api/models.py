"""Pydantic models for API requests/responses."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from grabarr.core.models import HistoryStatus, MediaKind


class SettingsUpdate(BaseModel):
    movie_directory: Optional[str] = None
    series_directory: Optional[str] = None
    movie_file_format: Optional[str] = None
    series_file_format: Optional[str] = None
    quality_profile: Optional[str] = None
    auto_download: Optional[bool] = None
    auto_rename: Optional[bool] = None
    auto_rename_interval: Optional[int] = Field(default=None, ge=1)
    check_interval: Optional[int] = Field(default=None, ge=1)
    download_watcher_enabled: Optional[bool] = None
    movie_download_directory: Optional[str] = None
    series_download_directory: Optional[str] = None
    movie_watcher_destination: Optional[str] = None
    series_watcher_destination: Optional[str] = None
    watcher_interval: Optional[int] = Field(default=None, ge=1)
    watcher_auto_approve: Optional[bool] = None


class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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


class MovieCreate(BaseModel):
    tmdb_id: int
    title: str
    release_date: Optional[str] = None
    overview: Optional[str] = None
    poster_url: Optional[str] = None
    quality_profile: Optional[str] = None
    min_availability: Optional[str] = None
    monitor: Optional[str] = None


class MovieUpdate(BaseModel):
    quality_profile: Optional[str] = None
    min_availability: Optional[str] = None
    monitor: Optional[str] = None


class MovieResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tmdb_id: int
    title: str
    release_date: Optional[str]
    overview: Optional[str]
    poster_url: Optional[str]
    quality_profile: str
    min_availability: str
    monitor: str
    status: str
    file_exists: bool
    file_path: Optional[str]
    file_name: Optional[str]
    file_size: Optional[int]
    last_checked: Optional[datetime]
    grabbed_release: Optional[str]
    grabbed_at: Optional[datetime]
    last_error: Optional[str]


class SeriesCreate(BaseModel):
    tmdb_id: int
    title: str
    first_air_date: Optional[str] = None
    overview: Optional[str] = None
    poster_url: Optional[str] = None
    quality_profile: Optional[str] = None
    min_availability: Optional[str] = None
    monitor: Optional[str] = None
    selected_seasons: Optional[List[int]] = None
    selected_episodes: Optional[List[str]] = None  # ["1-1", "1-2"]


class SeriesUpdate(BaseModel):
    quality_profile: Optional[str] = None
    min_availability: Optional[str] = None
    monitor: Optional[str] = None
    selected_seasons: Optional[List[int]] = None
    selected_episodes: Optional[List[str]] = None


class SelectAllRequest(BaseModel):
    seasons: Dict[int, int]  # {season_number: episode_count}


class SeriesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tmdb_id: int
    title: str
    first_air_date: Optional[str]
    overview: Optional[str]
    poster_url: Optional[str]
    quality_profile: str
    min_availability: str
    monitor: str
    selected_seasons: List[int]
    selected_episodes: List[str]
    episode_files: Dict[str, str]
    status: str
    last_checked: Optional[datetime]
    last_error: Optional[str]


class CheckResultResponse(BaseModel):
    entity_id: int
    title: str
    kind: MediaKind
    status: str
    message: Optional[str] = None
    file_path: Optional[str] = None
    release_title: Optional[str] = None
    episodes_queued: int = 0
    episodes_failed: int = 0


class PendingFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_path: str
    destination_path: str
    media_kind: str
    size: int
    detected_at: datetime


class RenamePreviewRequest(BaseModel):
    kind: MediaKind
    format: Optional[str] = None


class RenameProposalModel(BaseModel):
    kind: MediaKind
    entity_id: int
    current_path: str
    new_path: str
    season: Optional[int] = None
    episode: Optional[int] = None
    current_name: Optional[str] = None
    new_name: Optional[str] = None


class RenameApplyRequest(BaseModel):
    proposals: List[RenameProposalModel]


class RenameBatchResponse(BaseModel):
    succeeded: int
    failed: int
    errors: List[Dict[str, Any]]


class HistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    media_type: str
    media_title: str
    tmdb_id: Optional[int]
    season: Optional[int]
    episode: Optional[int]
    release_name: str
    protocol: str
    indexer: Optional[str]
    size: Optional[int]
    seeders: Optional[int]
    leechers: Optional[int]
    quality: Optional[str]
    status: str
    origin: Optional[str]
    download_client: Optional[str]
    download_client_id: Optional[str]
    created_at: datetime
    updated_at: datetime


class HistoryUpdate(BaseModel):
    status: Optional[HistoryStatus] = None
    download_client_id: Optional[str] = None


class DiagnosticsResponse(BaseModel):
    prowlarr: Dict[str, Any]
    qbittorrent: Dict[str, Any]
