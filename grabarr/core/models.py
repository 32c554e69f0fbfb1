"""Core business models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime


class MediaKind(str, Enum):
    MOVIE = "movie"
    SERIES = "series"


class EntityStatus(str, Enum):
    MONITORING = "monitoring"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    MISSING = "missing"
    ERROR = "error"


class HistoryStatus(str, Enum):
    GRABBED = "grabbed"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


class Quality(str, Enum):
    """Resolution bucket inferred from a release or file name."""
    UHD_2160P = "2160p"
    FHD_1080P = "1080p"
    HD_720P = "720p"
    SD_480P = "480p"
    SD_360P = "360p"
    UNKNOWN = ""

    @property
    def label(self) -> str:
        """Label stored in history ("SD" when nothing was detected)."""
        if self in (Quality.UNKNOWN, Quality.SD_480P, Quality.SD_360P):
            return "SD"
        return self.value


class QualityPolicy(str, Enum):
    ANY = "any"
    HD_720P = "hd-720p"
    HD_1080P = "hd-1080p"
    HD_720P_1080P = "hd-720p-1080p"
    SD = "sd"
    ULTRA_HD = "ultra-hd"

    @classmethod
    def parse(cls, value: Optional[str]) -> "QualityPolicy":
        """Resolve a stored policy name, including the legacy resolution names."""
        if not value:
            return cls.ANY
        value = value.strip().lower()
        legacy = {
            "720p": cls.HD_720P_1080P,
            "1080p": cls.HD_1080P,
            "480p": cls.SD,
            "2160p": cls.ULTRA_HD,
        }
        if value in legacy:
            return legacy[value]
        try:
            return cls(value)
        except ValueError:
            return cls.ANY


@dataclass
class QualityMetadata:
    """Release attributes read from a filename."""
    quality: Quality = Quality.UNKNOWN
    source: str = ""
    codec: str = ""
    audio: str = ""
    edition: str = ""
    release_group: str = ""


@dataclass
class SearchCandidate:
    """One search result; lives only for one ranking decision."""
    title: str
    protocol: str = "torrent"  # torrent, nzb
    indexer: Optional[str] = None
    indexer_id: Optional[int] = None
    indexer_priority: Optional[int] = None
    size: Optional[int] = None
    seeders: Optional[int] = None
    leechers: Optional[int] = None
    download_url: Optional[str] = None
    guid: Optional[str] = None


@dataclass
class DownloadSubmission:
    success: bool
    client_reference: Optional[str] = None
    client_name: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FoundFile:
    path: str
    name: str
    size: int
    modified_at: Optional[datetime] = None


@dataclass
class CheckResult:
    """Outcome of one monitoring tick for one entity."""
    entity_id: int
    title: str
    kind: MediaKind
    status: str
    message: Optional[str] = None
    file: Optional[FoundFile] = None
    release_title: Optional[str] = None
    episodes_queued: int = 0
    episodes_failed: int = 0


@dataclass
class RenameProposal:
    kind: MediaKind
    entity_id: int
    current_path: str
    new_path: str
    season: Optional[int] = None
    episode: Optional[int] = None

    @property
    def current_name(self) -> str:
        return self.current_path.replace("\\", "/").rsplit("/", 1)[-1]

    @property
    def new_name(self) -> str:
        return self.new_path.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass
class RenameBatchResult:
    succeeded: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def record_failure(self, proposal: RenameProposal, error: str) -> None:
        self.failed += 1
        self.errors.append({
            "entity_id": proposal.entity_id,
            "kind": proposal.kind.value,
            "current_name": proposal.current_name,
            "error": error,
        })


@dataclass
class WatchPair:
    """A configured (source, destination, kind) triple for the watcher."""
    source: str
    destination: str
    kind: MediaKind

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.source}"


@dataclass
class RecentFile:
    name: str
    kind: MediaKind
    destination: str
    timestamp: datetime


@dataclass
class WatcherStats:
    last_run: Optional[datetime] = None
    files_processed: int = 0
    movies_processed: int = 0
    series_processed: int = 0
    errors: int = 0
    collisions: int = 0
    recent_files: List[RecentFile] = field(default_factory=list)

    def record_move(self, kind: MediaKind) -> None:
        self.files_processed += 1
        if kind == MediaKind.MOVIE:
            self.movies_processed += 1
        else:
            self.series_processed += 1
