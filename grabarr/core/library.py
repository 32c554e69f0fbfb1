"""Recherche des fichiers déjà présents dans la bibliothèque."""
from datetime import datetime
from pathlib import Path
from typing import Optional
import asyncio
import logging

from grabarr.config import get_config
from grabarr.core.errors import LibraryScanError
from grabarr.core.fileops import iter_video_files
from grabarr.core.matcher import TitleMatcher
from grabarr.core.models import FoundFile
from grabarr.core.parsing import extract_season_episode

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def _found(path: Path) -> FoundFile:
    stats = path.stat()
    return FoundFile(
        path=str(path),
        name=path.name,
        size=stats.st_size,
        modified_at=datetime.fromtimestamp(stats.st_mtime),
    )


def _check_root(root: str) -> Path:
    base = Path(root)
    if not base.is_dir():
        raise LibraryScanError(f"Library directory not accessible: {root}")
    return base


class FileSystemLibraryScanner:
    """Scanner de bibliothèque basé sur les noms de fichiers."""

    def __init__(self):
        library = get_config().library
        self.min_movie_size = library.min_movie_size_mb * MB
        self.min_episode_size = library.min_episode_size_mb * MB
        self.max_depth = library.max_depth

    def _find_movie_file(self, title: str, root: str) -> Optional[FoundFile]:
        _check_root(root)
        # Movies live at the root or in their own folder
        for path in iter_video_files(root, max_depth=1):
            if not TitleMatcher.title_matches_filename(title, path.name):
                continue
            found = _found(path)
            if found.size < self.min_movie_size:
                logger.debug(f"Skipping small file ({found.size} bytes): {path.name}")
                continue
            logger.info(f"Found match for '{title}': {path.name}")
            return found
        return None

    def _find_episode_file(self, title: str, root: str, season: int, episode: int) -> Optional[FoundFile]:
        base = _check_root(root)
        for path in iter_video_files(root, max_depth=self.max_depth):
            if extract_season_episode(path.name) != (season, episode):
                continue
            relative = str(path.relative_to(base))
            if not TitleMatcher.path_mentions_title(title, relative):
                continue
            found = _found(path)
            if found.size < self.min_episode_size:
                logger.debug(f"Skipping small episode file ({found.size} bytes): {path.name}")
                continue
            return found
        return None

    async def find_movie_file(self, title: str, root: str) -> Optional[FoundFile]:
        """Trouve le fichier d'un film; LibraryScanError si la racine est inaccessible."""
        return await asyncio.to_thread(self._find_movie_file, title, root)

    async def find_episode_file(self, title: str, root: str, season: int, episode: int) -> Optional[FoundFile]:
        """Trouve le fichier d'un épisode (SxxEyy ou NxNN dans le nom)."""
        return await asyncio.to_thread(self._find_episode_file, title, root, season, episode)
