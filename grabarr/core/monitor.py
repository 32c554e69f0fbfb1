"""Surveillance des médias: recherche, sélection et envoi des releases."""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import asyncio
import logging

from grabarr.config import get_config
from grabarr.core.errors import CollisionError, LibraryScanError, SearchError, TransientExternalError
from grabarr.core.models import (
    CheckResult, DownloadSubmission, EntityStatus, HistoryStatus, MediaKind, QualityPolicy, SearchCandidate,
)
from grabarr.core.parsing import detect_quality, episode_key, parse_episode_key
from grabarr.core.ranking import select_best
from grabarr.db.models import MonitoredMovie, MonitoredSeries, utcnow
from grabarr.services.search import RetryPolicy, search_with_timeout

logger = logging.getLogger(__name__)

ORIGIN = "MonitoringService"


def _release_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d")
    except ValueError:
        return None


def is_released(release_date: Optional[str], now: Optional[datetime] = None) -> bool:
    """Unknown release dates count as released."""
    date = _release_date(release_date)
    if date is None:
        return True
    return date <= (now or utcnow())


class MonitoringService:
    """Vérifie les films et séries surveillés d'un utilisateur."""

    def __init__(self, store, settings_provider, scanner, search_service=None, download_client=None, renamer=None):
        config = get_config()
        self.config = config.monitoring
        self.search_config = config.search
        self.retry_policy = RetryPolicy(
            max_attempts=config.search.max_attempts,
            delay_seconds=config.search.retry_delay_seconds,
        )
        self.store = store
        self.settings_provider = settings_provider
        self.scanner = scanner
        self.search_service = search_service
        self.download_client = download_client
        self.renamer = renamer
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self.last_run: Dict[str, datetime] = {}

    @property
    def can_download(self) -> bool:
        return self.search_service is not None and self.download_client is not None

    def _lock(self, owner_id: str) -> asyncio.Lock:
        if owner_id not in self._user_locks:
            self._user_locks[owner_id] = asyncio.Lock()
        return self._user_locks[owner_id]

    async def _search(self, query: str, category: int) -> List[SearchCandidate]:
        return await search_with_timeout(
            self.search_service, query, category, self.retry_policy, self.search_config.timeout_seconds,
        )

    async def _submit(self, candidate: SearchCandidate, kind: MediaKind) -> DownloadSubmission:
        try:
            return await asyncio.wait_for(
                self.download_client.submit(candidate, kind),
                self.config.submit_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return DownloadSubmission(success=False, error="Download client timed out")
        except TransientExternalError as e:
            return DownloadSubmission(success=False, error=str(e))

    def _record_grab(
        self,
        owner_id: str,
        kind: MediaKind,
        title: str,
        tmdb_id: int,
        candidate: SearchCandidate,
        submission: DownloadSubmission,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> None:
        self.store.add_history(
            owner_id,
            media_type="movie" if kind == MediaKind.MOVIE else "tv",
            media_title=title,
            tmdb_id=tmdb_id,
            season=season,
            episode=episode,
            release_name=candidate.title,
            protocol=candidate.protocol,
            indexer=candidate.indexer,
            indexer_id=candidate.indexer_id,
            download_url=candidate.download_url,
            size=candidate.size,
            seeders=candidate.seeders,
            leechers=candidate.leechers,
            quality=detect_quality(candidate.title).label,
            status=HistoryStatus.GRABBED.value,
            origin=ORIGIN,
            download_client=submission.client_name,
            download_client_id=submission.client_reference,
        )

    async def check_movie(self, owner_id: str, movie: MonitoredMovie, settings=None) -> CheckResult:
        """Un passage de la machine d'états pour un film."""
        settings = settings or self.settings_provider.get(owner_id)
        now = utcnow()

        def result(status: str, message: Optional[str] = None, **extra) -> CheckResult:
            return CheckResult(movie.id, movie.title, MediaKind.MOVIE, status, message, **extra)

        root = settings.movie_directory
        if not root:
            self.store.update_movie(owner_id, movie.id, last_checked=now)
            return result("no_directory", "No movie directory configured")

        try:
            found = await self.scanner.find_movie_file(movie.title, root)
        except LibraryScanError as e:
            logger.warning(f"Library scan failed for '{movie.title}': {e}")
            self.store.update_movie(owner_id, movie.id, last_checked=now)
            return result("scan_error", str(e))

        if found:
            if settings.auto_rename and self.renamer is not None:
                try:
                    found = await self.renamer.rename_movie_file(owner_id, movie, found, settings.movie_file_format)
                except (CollisionError, OSError) as e:
                    logger.warning(f"Could not rename '{found.name}': {e}")
            self.store.update_movie(
                owner_id,
                movie.id,
                status=EntityStatus.DOWNLOADED.value,
                file_exists=True,
                file_path=found.path,
                file_name=found.name,
                file_size=found.size,
                last_checked=now,
                last_error=None,
            )
            return result("found", file=found)

        status = EntityStatus(movie.status)

        # A confirmed file is never un-confirmed by a tick that fails to see it
        if status == EntityStatus.DOWNLOADED:
            self.store.update_movie(owner_id, movie.id, last_checked=now)
            return result("downloaded", "File not seen this tick; status kept")

        if status == EntityStatus.DOWNLOADING:
            stalled_after = timedelta(minutes=self.config.stalled_download_minutes)
            if movie.grabbed_at and now - movie.grabbed_at > stalled_after:
                self.store.update_movie(owner_id, movie.id, status=EntityStatus.MISSING.value, last_checked=now)
                return result("stalled", f"Grab of '{movie.grabbed_release}' never completed")
            self.store.update_movie(owner_id, movie.id, last_checked=now)
            return result("downloading")

        if not settings.auto_download or not self.can_download:
            self.store.update_movie(owner_id, movie.id, status=EntityStatus.MISSING.value, last_checked=now)
            return result("missing")

        if movie.min_availability == "released" and not is_released(movie.release_date, now):
            self.store.update_movie(owner_id, movie.id, last_checked=now)
            return result("not_released", f"Release date {movie.release_date} is in the future")

        query = f"{movie.title} {movie.year}" if movie.year else movie.title
        try:
            candidates = await self._search(query, self.search_config.movie_category)
        except SearchError as e:
            self.store.update_movie(
                owner_id, movie.id, status=EntityStatus.ERROR.value, last_error=str(e), last_checked=now,
            )
            return result("error", str(e))

        best = select_best(candidates, QualityPolicy.parse(movie.quality_profile))
        if best is None:
            self.store.update_movie(owner_id, movie.id, status=EntityStatus.MISSING.value, last_checked=now)
            return result("no_candidates", f"No release among {len(candidates)} results matches the quality policy")

        submission = await self._submit(best, MediaKind.MOVIE)
        if not submission.success:
            self.store.update_movie(
                owner_id, movie.id, status=EntityStatus.ERROR.value, last_error=submission.error, last_checked=now,
            )
            return result("error", submission.error, release_title=best.title)

        self._record_grab(owner_id, MediaKind.MOVIE, movie.title, movie.tmdb_id, best, submission)
        self.store.update_movie(
            owner_id,
            movie.id,
            status=EntityStatus.DOWNLOADING.value,
            grabbed_release=best.title,
            grabbed_at=now,
            last_error=None,
            last_checked=now,
        )
        logger.info(f"Grabbed '{best.title}' ({best.seeders} seeders) for '{movie.title}'")
        return result("grabbed", release_title=best.title)

    async def _scan_episodes(
        self, series: MonitoredSeries, root: str, keys: List[Tuple[int, int]],
    ) -> Tuple[Dict[str, str], List[Tuple[int, int]]]:
        found: Dict[str, str] = {}
        missing: List[Tuple[int, int]] = []
        for season, episode in keys:
            file = await self.scanner.find_episode_file(series.title, root, season, episode)
            if file:
                found[episode_key(season, episode)] = file.path
            else:
                missing.append((season, episode))
        return found, missing

    async def check_series(self, owner_id: str, series: MonitoredSeries, settings=None) -> CheckResult:
        """Un passage pour une série: fichiers existants puis épisodes manquants."""
        settings = settings or self.settings_provider.get(owner_id)
        now = utcnow()

        def result(status: str, message: Optional[str] = None, **extra) -> CheckResult:
            return CheckResult(series.id, series.title, MediaKind.SERIES, status, message, **extra)

        keys = sorted(filter(None, (parse_episode_key(k) for k in series.selected_episodes or [])))
        if not keys:
            self.store.update_series(owner_id, series.id, last_checked=now)
            return result("no_episodes", "No episodes selected")

        root = settings.series_directory
        if not root:
            self.store.update_series(owner_id, series.id, last_checked=now)
            return result("no_directory", "No series directory configured")

        try:
            found, missing = await self._scan_episodes(series, root, keys)
        except LibraryScanError as e:
            logger.warning(f"Library scan failed for '{series.title}': {e}")
            self.store.update_series(owner_id, series.id, last_checked=now)
            return result("scan_error", str(e))

        if found:
            self.store.set_episode_files(owner_id, series.id, found)

        if not missing:
            self.store.update_series(
                owner_id, series.id, status=EntityStatus.DOWNLOADED.value, last_checked=now, last_error=None,
            )
            return result("downloaded")

        if series.status == EntityStatus.DOWNLOADED.value:
            self.store.update_series(owner_id, series.id, last_checked=now)
            return result("downloaded", f"{len(missing)} episode(s) not seen this tick; status kept")

        if not settings.auto_download or not self.can_download:
            self.store.update_series(owner_id, series.id, status=EntityStatus.MONITORING.value, last_checked=now)
            return result("missing", f"{len(missing)} episode(s) missing")

        policy = QualityPolicy.parse(series.quality_profile)
        grab_window = now - timedelta(minutes=self.config.stalled_download_minutes)
        queued = outstanding = failed = 0
        errors: List[str] = []

        for season, episode in missing:
            if self.store.has_recent_grab(owner_id, series.tmdb_id, grab_window, season, episode):
                outstanding += 1
                continue

            query = f"{series.title} S{season:02d}E{episode:02d}"
            try:
                candidates = await self._search(query, self.search_config.series_category)
            except SearchError as e:
                failed += 1
                errors.append(str(e))
                continue

            best = select_best(candidates, policy)
            if best is None:
                logger.debug(f"No release for {query}")
                continue

            if queued:
                await asyncio.sleep(self.config.episode_delay_seconds)
            submission = await self._submit(best, MediaKind.SERIES)
            if not submission.success:
                failed += 1
                errors.append(f"S{season:02d}E{episode:02d}: {submission.error}")
                continue

            self._record_grab(
                owner_id, MediaKind.SERIES, series.title, series.tmdb_id, best, submission, season, episode,
            )
            queued += 1
            logger.info(f"Grabbed '{best.title}' for {query}")

        if queued or outstanding:
            status = EntityStatus.DOWNLOADING
        elif failed:
            status = EntityStatus.ERROR
        else:
            status = EntityStatus.MONITORING
        self.store.update_series(
            owner_id,
            series.id,
            status=status.value,
            last_error="; ".join(errors) if errors else None,
            last_checked=now,
        )
        return result(status.value, "; ".join(errors) or None, episodes_queued=queued, episodes_failed=failed)

    def _record_check_failure(self, owner_id: str, kind: MediaKind, entity_id: int, error: str) -> None:
        # Status is left alone; downloaded stays downloaded
        update = self.store.update_movie if kind == MediaKind.MOVIE else self.store.update_series
        try:
            update(owner_id, entity_id, last_error=error, last_checked=utcnow())
        except Exception:
            logger.exception(f"Could not record check failure on {kind.value} {entity_id}")

    async def check_user(self, owner_id: str) -> List[CheckResult]:
        """Vérifie tous les médias d'un utilisateur, un par un."""
        async with self._lock(owner_id):
            settings = self.settings_provider.get(owner_id)
            movies = self.store.list_movies(owner_id)
            series_list = self.store.list_series(owner_id)
            logger.info(f"Checking {len(movies)} movies and {len(series_list)} series for user {owner_id}")

            entities = [(MediaKind.MOVIE, m) for m in movies] + [(MediaKind.SERIES, s) for s in series_list]
            results: List[CheckResult] = []
            for index, (kind, entity) in enumerate(entities):
                if index:
                    await asyncio.sleep(self.config.entity_delay_seconds)
                try:
                    if kind == MediaKind.MOVIE:
                        results.append(await self.check_movie(owner_id, entity, settings))
                    else:
                        results.append(await self.check_series(owner_id, entity, settings))
                except Exception as e:
                    logger.exception(f"Error checking {kind.value} '{entity.title}'")
                    self._record_check_failure(owner_id, kind, entity.id, str(e))
                    results.append(CheckResult(entity.id, entity.title, kind, "error", str(e)))

            self.last_run[owner_id] = utcnow()
            grabbed = sum(1 for r in results if r.status == "grabbed") + sum(r.episodes_queued for r in results)
            logger.info(f"Check completed for user {owner_id}: {len(results)} entities, {grabbed} releases grabbed")
            return results

    async def check_all(self) -> Dict[str, int]:
        """Passe globale sur tous les utilisateurs."""
        checked: Dict[str, int] = {}
        for owner_id in self.store.list_owner_ids():
            try:
                checked[owner_id] = len(await self.check_user(owner_id))
            except Exception:
                logger.exception(f"Monitoring sweep failed for user {owner_id}")
        return checked
