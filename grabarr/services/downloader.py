"""qBittorrent download client."""
from typing import Any, Dict, Optional
import asyncio
import re

import structlog
from qbittorrentapi import Client

from grabarr.config import get_config
from grabarr.core.errors import ConfigurationError, DownloadSubmissionError
from grabarr.core.models import DownloadSubmission, MediaKind, SearchCandidate

logger = structlog.get_logger(__name__)

_BTIH = re.compile(r"urn:btih:([0-9a-zA-Z]+)")


def info_hash(url: Optional[str]) -> Optional[str]:
    """Extrait le hash d'un lien magnet."""
    if not url:
        return None
    match = _BTIH.search(url)
    return match.group(1).lower() if match else None


class QBittorrentDownloadClient:
    """Service pour envoyer des releases à qBittorrent."""

    name = "qBittorrent"

    def __init__(self):
        config = get_config()
        if not config.qbittorrent:
            raise ConfigurationError("qBittorrent configuration not found")
        self.base_url = config.qbittorrent.url.rstrip("/")
        self.username = config.qbittorrent.username
        self.password = config.qbittorrent.password
        self.categories = {
            MediaKind.MOVIE: config.qbittorrent.movie_category,
            MediaKind.SERIES: config.qbittorrent.series_category,
        }
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create qBittorrent client."""
        if self._client is None:
            self._client = Client(
                host=self.base_url,
                username=self.username,
                password=self.password,
            )
            self._client.auth_log_in()
        return self._client

    def _submit_sync(self, candidate: SearchCandidate, kind: MediaKind) -> DownloadSubmission:
        client = self._get_client()
        category = self.categories[kind]
        result = client.torrents_add(urls=candidate.download_url, category=category)
        if str(result).strip().lower().startswith("fails"):
            raise DownloadSubmissionError(f"qBittorrent rejected '{candidate.title}'")
        reference = info_hash(candidate.download_url) or candidate.guid or candidate.title
        return DownloadSubmission(success=True, client_reference=reference, client_name=self.name)

    async def submit(self, candidate: SearchCandidate, kind: MediaKind) -> DownloadSubmission:
        """Ajoute le torrent dans la catégorie du type de média."""
        if candidate.protocol != "torrent":
            return DownloadSubmission(
                success=False,
                client_name=self.name,
                error=f"Unsupported protocol for {self.name}: {candidate.protocol}",
            )
        if not candidate.download_url:
            return DownloadSubmission(success=False, client_name=self.name, error="Release has no download URL")

        try:
            submission = await asyncio.to_thread(self._submit_sync, candidate, kind)
        except DownloadSubmissionError as e:
            logger.warning("qbittorrent_rejected", release=candidate.title)
            return DownloadSubmission(success=False, client_name=self.name, error=str(e))
        except Exception as e:
            # Login is retried on the next submission
            self._client = None
            logger.error("qbittorrent_submit_failed", release=candidate.title, error=str(e))
            return DownloadSubmission(success=False, client_name=self.name, error=str(e))

        logger.info(
            "qbittorrent_submitted",
            release=candidate.title,
            category=self.categories[kind],
            success=submission.success,
        )
        return submission

    def test_connection(self) -> Dict[str, Any]:
        client = self._get_client()
        return {"version": client.app_version()}
