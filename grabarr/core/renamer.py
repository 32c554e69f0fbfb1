"""Renommage: prévisualisation puis application des nouveaux noms."""
from pathlib import Path
from typing import Any, Dict, List, Optional
import asyncio
import logging

from grabarr.core.errors import CollisionError, RenameRejectedError
from grabarr.core.fileops import iter_video_files, move_file_safely
from grabarr.core.matcher import TitleMatcher
from grabarr.core.models import FoundFile, MediaKind, RenameBatchResult, RenameProposal
from grabarr.core.naming import NamingTemplate, parse_template
from grabarr.core.parsing import (
    episode_key, extract_quality_metadata, extract_season_episode, extract_series_title_guess,
)
from grabarr.db.models import MonitoredMovie, utcnow

logger = logging.getLogger(__name__)


def metadata_values(filename: str) -> Dict[str, Any]:
    metadata = extract_quality_metadata(filename)
    return {
        "quality": metadata.quality.value,
        "source": metadata.source,
        "codec": metadata.codec,
        "audio": metadata.audio,
        "edition": metadata.edition,
        "release group": metadata.release_group,
    }


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _target(template: NamingTemplate, values: Dict[str, Any], current: Path, root: Optional[str]) -> Optional[Path]:
    rendered = template.render(values)
    if not rendered:
        return None
    name = rendered + current.suffix
    # Formats with folders are placed relative to the library root
    if template.has_folders and root:
        return Path(root) / name
    return current.parent / Path(name).name


class RenameEngine:
    """Génère et applique les propositions de renommage."""

    def __init__(self, store, settings_provider):
        self.store = store
        self.settings_provider = settings_provider

    def _movie_target(self, movie: MonitoredMovie, current: Path, fmt: str, root: Optional[str]) -> Optional[Path]:
        values = metadata_values(current.name)
        values["movie title"] = movie.title
        values["release year"] = str(movie.year) if movie.year else ""
        return _target(parse_template(fmt), values, current, root)

    def _preview_movies(self, owner_id: str, fmt: Optional[str]) -> List[RenameProposal]:
        settings = self.settings_provider.get(owner_id)
        fmt = fmt or settings.movie_file_format
        proposals: List[RenameProposal] = []
        for movie in self.store.list_movies(owner_id):
            if not movie.file_exists or not movie.file_path:
                continue
            current = Path(movie.file_path)
            target = self._movie_target(movie, current, fmt, settings.movie_directory)
            if target is None or target == current:
                continue
            proposals.append(RenameProposal(MediaKind.MOVIE, movie.id, str(current), str(target)))
        return proposals

    def _preview_series(self, owner_id: str, fmt: Optional[str]) -> List[RenameProposal]:
        settings = self.settings_provider.get(owner_id)
        fmt = fmt or settings.series_file_format
        root = settings.series_directory
        if not root or not Path(root).is_dir():
            return []
        series_list = self.store.list_series(owner_id)
        if not series_list:
            return []

        template = parse_template(fmt)
        proposals: List[RenameProposal] = []
        for path in iter_video_files(root):
            season, episode = extract_season_episode(path.name)
            if season is None:
                logger.debug(f"No season/episode in {path.name}")
                continue

            guess = extract_series_title_guess(path.name)
            if not guess:
                # "Show/Season 01/S01E01.mkv": the show folder carries the title
                relative = path.relative_to(root)
                guess = relative.parts[0] if len(relative.parts) > 1 else ""
            series = TitleMatcher.fuzzy_match_title(guess, series_list, key=lambda s: s.title)
            if series is None:
                logger.debug(f"No monitored series matches '{guess}'")
                continue

            values = metadata_values(path.name)
            values.update({
                "series title": series.title,
                "season": season,
                "episode": episode,
                "episode title": "",
            })
            target = _target(template, values, path, root)
            if target is None or target == path:
                continue
            proposals.append(RenameProposal(MediaKind.SERIES, series.id, str(path), str(target), season, episode))
        return proposals

    async def preview_movie_renames(self, owner_id: str, fmt: Optional[str] = None) -> List[RenameProposal]:
        return await asyncio.to_thread(self._preview_movies, owner_id, fmt)

    async def preview_series_renames(self, owner_id: str, fmt: Optional[str] = None) -> List[RenameProposal]:
        return await asyncio.to_thread(self._preview_series, owner_id, fmt)

    async def preview_renames(self, owner_id: str, kind: MediaKind, fmt: Optional[str] = None) -> List[RenameProposal]:
        """Liste des renommages proposés; ne touche à aucun fichier."""
        if kind == MediaKind.MOVIE:
            return await self.preview_movie_renames(owner_id, fmt)
        return await self.preview_series_renames(owner_id, fmt)

    def _check_proposal(self, owner_id: str, proposal: RenameProposal) -> None:
        """Refuse une proposition qui ne correspond pas aux fichiers connus de l'utilisateur."""
        settings = self.settings_provider.get(owner_id)
        source = Path(proposal.current_path).resolve()
        target = Path(proposal.new_path).resolve()

        if proposal.kind == MediaKind.MOVIE:
            movie = self.store.get_movie(owner_id, proposal.entity_id)
            if not movie.file_path or Path(movie.file_path).resolve() != source:
                raise RenameRejectedError(f"{proposal.current_path} is not the file of movie {movie.id}")
            roots = [source.parent]
            if settings.movie_directory:
                roots.append(Path(settings.movie_directory).resolve())
        else:
            series = self.store.get_series(owner_id, proposal.entity_id)
            if proposal.season is None or proposal.episode is None:
                raise RenameRejectedError(f"No season/episode given for series {series.id}")
            if not settings.series_directory:
                raise RenameRejectedError("No series directory configured")
            roots = [Path(settings.series_directory).resolve()]
            if not _is_within(source, roots[0]):
                raise RenameRejectedError(f"{proposal.current_path} is outside the series directory")

        if not any(_is_within(target, root) for root in roots):
            raise RenameRejectedError(f"{proposal.new_path} is outside the library")

    def _apply_one(self, owner_id: str, proposal: RenameProposal) -> None:
        self._check_proposal(owner_id, proposal)
        source = Path(proposal.current_path)
        if not source.exists():
            raise FileNotFoundError(f"Source file not found: {proposal.current_path}")
        if Path(proposal.new_path).exists():
            raise CollisionError(proposal.new_path)
        move_file_safely(proposal.current_path, proposal.new_path)

        if proposal.kind == MediaKind.MOVIE:
            self.store.update_movie(
                owner_id, proposal.entity_id, file_path=proposal.new_path, file_name=proposal.new_name,
            )
        else:
            self.store.set_episode_files(
                owner_id, proposal.entity_id, {episode_key(proposal.season, proposal.episode): proposal.new_path},
            )

    async def apply_renames(self, owner_id: str, proposals: List[RenameProposal]) -> RenameBatchResult:
        """Applique chaque proposition; une erreur n'interrompt pas le lot."""
        result = RenameBatchResult()
        for proposal in proposals:
            try:
                await asyncio.to_thread(self._apply_one, owner_id, proposal)
                result.succeeded += 1
            except Exception as e:
                logger.warning(f"Rename failed for {proposal.current_path}: {e}")
                result.record_failure(proposal, str(e))
        logger.info(f"Renames applied for user {owner_id}: {result.succeeded} succeeded, {result.failed} failed")
        return result

    async def rename_movie_file(self, owner_id: str, movie: MonitoredMovie, found: FoundFile, fmt: str) -> FoundFile:
        """Renomme un fichier de film trouvé; CollisionError laisse le fichier en place."""
        settings = self.settings_provider.get(owner_id)
        current = Path(found.path)
        target = self._movie_target(movie, current, fmt, settings.movie_directory)
        if target is None or target == current:
            return found
        await asyncio.to_thread(move_file_safely, str(current), str(target))
        return FoundFile(path=str(target), name=target.name, size=found.size, modified_at=found.modified_at)

    async def run_auto_rename(self, owner_id: str) -> Dict[str, RenameBatchResult]:
        """Films puis séries, avec l'heure de passage enregistrée."""
        results: Dict[str, RenameBatchResult] = {}
        for kind in (MediaKind.MOVIE, MediaKind.SERIES):
            proposals = await self.preview_renames(owner_id, kind)
            results[kind.value] = await self.apply_renames(owner_id, proposals)
            self.store.mark_rename_run(owner_id, kind.value, utcnow())
        return results

    def status(self, owner_id: str) -> Dict[str, Any]:
        settings = self.settings_provider.get(owner_id)
        return {
            "enabled": settings.auto_rename,
            "interval_minutes": settings.auto_rename_interval,
            "last_movie_rename_at": settings.last_movie_rename_at,
            "last_series_rename_at": settings.last_series_rename_at,
        }
