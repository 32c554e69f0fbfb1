"""Watcher des dossiers de téléchargement et file d'approbation."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import asyncio
import logging

from grabarr.config import get_config
from grabarr.core.errors import CollisionError, RecordNotFoundError
from grabarr.core.fileops import is_file_stable, iter_video_files, move_file_safely_async
from grabarr.core.models import MediaKind, RecentFile, WatcherStats, WatchPair
from grabarr.db.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class UserWatcher:
    """État en mémoire du watcher d'un utilisateur."""
    owner_id: str
    running: bool = False
    interval_seconds: Optional[int] = None
    processed: Dict[MediaKind, Set[str]] = field(
        default_factory=lambda: {MediaKind.MOVIE: set(), MediaKind.SERIES: set()}
    )
    locks: Dict[str, asyncio.Lock] = field(default_factory=dict)
    stats: WatcherStats = field(default_factory=WatcherStats)

    def lock_for(self, pair: WatchPair) -> asyncio.Lock:
        if pair.key not in self.locks:
            self.locks[pair.key] = asyncio.Lock()
        return self.locks[pair.key]

    def record_recent(self, name: str, kind: MediaKind, destination: str, limit: int) -> None:
        self.stats.recent_files.insert(0, RecentFile(name, kind, destination, utcnow()))
        del self.stats.recent_files[limit:]


class WatcherService:
    """Registre des watchers, un par utilisateur."""

    def __init__(self, store, settings_provider):
        config = get_config().watcher
        self.stability_wait = config.stability_wait_seconds
        self.recent_limit = config.recent_files_limit
        self.store = store
        self.settings_provider = settings_provider
        self._watchers: Dict[str, UserWatcher] = {}

    def state(self, owner_id: str) -> UserWatcher:
        if owner_id not in self._watchers:
            self._watchers[owner_id] = UserWatcher(owner_id)
        return self._watchers[owner_id]

    def mark_running(self, owner_id: str, running: bool, interval_seconds: Optional[int] = None) -> None:
        watcher = self.state(owner_id)
        watcher.running = running
        watcher.interval_seconds = interval_seconds if running else None

    def _record_move(self, watcher: UserWatcher, kind: MediaKind, source: str, destination: str) -> None:
        watcher.processed[kind].add(source)
        watcher.stats.record_move(kind)
        watcher.record_recent(Path(destination).name, kind, destination, self.recent_limit)

    async def _stable_files(self, paths: List[Path]) -> List[Path]:
        # One wait for the whole batch
        checks = await asyncio.gather(*(is_file_stable(str(p), self.stability_wait) for p in paths))
        return [p for p, stable in zip(paths, checks) if stable]

    async def scan_pair(self, owner_id: str, pair: WatchPair, auto_approve: bool) -> Dict[str, int]:
        """Scanne une paire source/destination; un seul scan à la fois par paire."""
        watcher = self.state(owner_id)
        counts = {"moved": 0, "pending": 0, "collisions": 0, "errors": 0}

        async with watcher.lock_for(pair):
            source_root = Path(pair.source)
            if not source_root.is_dir():
                logger.warning(f"Watcher source does not exist, skipping: {pair.source}")
                return counts

            files = await asyncio.to_thread(iter_video_files, pair.source)
            pending = self.store.pending_sources(owner_id)
            processed = watcher.processed[pair.kind]
            new_files = [f for f in files if str(f) not in processed and str(f) not in pending]

            for path in await self._stable_files(new_files):
                source = str(path)
                destination = str(Path(pair.destination) / path.relative_to(source_root))
                if not auto_approve:
                    try:
                        size = path.stat().st_size
                    except OSError:
                        continue
                    self.store.add_pending(owner_id, source, destination, pair.kind.value, size)
                    counts["pending"] += 1
                    logger.info(f"Queued {path.name} for approval -> {destination}")
                    continue
                try:
                    await move_file_safely_async(source, destination)
                except CollisionError as e:
                    # The file is left in place and not retried
                    logger.warning(f"Collision, not moving {path.name}: {e}")
                    watcher.stats.collisions += 1
                    processed.add(source)
                    counts["collisions"] += 1
                    continue
                except OSError as e:
                    logger.error(f"Failed to move {source}: {e}")
                    watcher.stats.errors += 1
                    counts["errors"] += 1
                    continue
                self._record_move(watcher, pair.kind, source, destination)
                counts["moved"] += 1

            # Forget processed files that are gone from the source
            watcher.processed[pair.kind] = {p for p in processed if Path(p).exists()}
            watcher.stats.last_run = utcnow()

        return counts

    async def trigger_scan(self, owner_id: str) -> Dict[str, Dict[str, int]]:
        """Scanne toutes les paires de l'utilisateur en parallèle."""
        settings = self.settings_provider.get(owner_id)
        pairs = settings.watch_pairs()
        if not pairs:
            return {}
        results = await asyncio.gather(
            *(self.scan_pair(owner_id, pair, settings.watcher_auto_approve) for pair in pairs),
            return_exceptions=True,
        )
        summary: Dict[str, Dict[str, int]] = {}
        for pair, result in zip(pairs, results):
            if isinstance(result, Exception):
                logger.error(f"Watcher scan failed for {pair.source}: {result}")
                self.state(owner_id).stats.errors += 1
                summary[pair.key] = {"moved": 0, "pending": 0, "collisions": 0, "errors": 1}
            else:
                summary[pair.key] = result
        return summary

    async def approve(self, owner_id: str, pending_id: str) -> str:
        """Déplace un fichier en attente; CollisionError laisse tout en place."""
        pending = self.store.get_pending(owner_id, pending_id)
        watcher = self.state(owner_id)
        kind = MediaKind(pending.media_kind)

        if not Path(pending.source_path).exists():
            self.store.delete_pending(owner_id, pending_id)
            raise RecordNotFoundError(f"Source file no longer exists: {pending.source_path}")

        try:
            await move_file_safely_async(pending.source_path, pending.destination_path)
        except CollisionError:
            watcher.stats.collisions += 1
            logger.warning(f"Collision on approve, keeping pending item {pending_id}: {pending.destination_path}")
            raise

        self._record_move(watcher, kind, pending.source_path, pending.destination_path)
        self.store.delete_pending(owner_id, pending_id)
        return pending.destination_path

    def reject(self, owner_id: str, pending_id: str) -> None:
        """Ignore le fichier: marqué comme traité, jamais déplacé."""
        pending = self.store.get_pending(owner_id, pending_id)
        self.state(owner_id).processed[MediaKind(pending.media_kind)].add(pending.source_path)
        self.store.delete_pending(owner_id, pending_id)

    def status(self, owner_id: str) -> Dict[str, Any]:
        settings = self.settings_provider.get(owner_id)
        watcher = self.state(owner_id)
        stats = watcher.stats
        return {
            "running": watcher.running,
            "enabled": settings.download_watcher_enabled,
            "interval_seconds": watcher.interval_seconds,
            "auto_approve": settings.watcher_auto_approve,
            "pairs": [
                {"source": p.source, "destination": p.destination, "kind": p.kind.value}
                for p in settings.watch_pairs()
            ],
            "pending_count": len(self.store.pending_sources(owner_id)),
            "stats": {
                "last_run": stats.last_run,
                "files_processed": stats.files_processed,
                "movies_processed": stats.movies_processed,
                "series_processed": stats.series_processed,
                "errors": stats.errors,
                "collisions": stats.collisions,
                "recent_files": [
                    {"name": r.name, "kind": r.kind.value, "destination": r.destination, "timestamp": r.timestamp}
                    for r in stats.recent_files
                ],
            },
        }
