"""Assemblage des services de l'application."""
from dataclasses import dataclass
from typing import Optional
import logging

from grabarr.config import get_config
from grabarr.core.library import FileSystemLibraryScanner
from grabarr.core.monitor import MonitoringService
from grabarr.core.renamer import RenameEngine
from grabarr.core.watcher import WatcherService
from grabarr.db.store import RecordStore
from grabarr.scheduler import ServiceScheduler
from grabarr.services.downloader import QBittorrentDownloadClient
from grabarr.services.search import ProwlarrSearchService
from grabarr.services.settings import SettingsProvider

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: RecordStore
    settings: SettingsProvider
    scanner: FileSystemLibraryScanner
    renamer: RenameEngine
    monitor: MonitoringService
    watcher: WatcherService
    scheduler: ServiceScheduler
    search: Optional[object] = None
    downloader: Optional[object] = None


def build_services(search=None, downloader=None) -> Services:
    """Crée les services; Prowlarr et qBittorrent seulement s'ils sont configurés."""
    config = get_config()
    if search is None and config.prowlarr:
        search = ProwlarrSearchService()
    if downloader is None and config.qbittorrent:
        downloader = QBittorrentDownloadClient()
    if search is None or downloader is None:
        logger.warning("Prowlarr or qBittorrent not configured: monitoring will not submit downloads")

    store = RecordStore()
    settings = SettingsProvider(store)
    scanner = FileSystemLibraryScanner()
    renamer = RenameEngine(store, settings)
    monitor = MonitoringService(store, settings, scanner, search, downloader, renamer)
    watcher = WatcherService(store, settings)
    scheduler = ServiceScheduler(store, settings, monitor, watcher, renamer)
    return Services(
        store=store,
        settings=settings,
        scanner=scanner,
        renamer=renamer,
        monitor=monitor,
        watcher=watcher,
        scheduler=scheduler,
        search=search,
        downloader=downloader,
    )
