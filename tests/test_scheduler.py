from datetime import timedelta

import pytest

from grabarr.core.library import FileSystemLibraryScanner
from grabarr.core.monitor import MonitoringService
from grabarr.core.renamer import RenameEngine
from grabarr.core.watcher import WatcherService
from grabarr.scheduler import SWEEP_JOB_ID, ServiceScheduler, monitor_job_id, rename_job_id, watcher_job_id

from conftest import OWNER


@pytest.fixture
async def scheduler(config, store, settings_provider):
    config.scheduler.enabled = True
    monitor = MonitoringService(store, settings_provider, FileSystemLibraryScanner())
    watcher = WatcherService(store, settings_provider)
    renamer = RenameEngine(store, settings_provider)
    service = ServiceScheduler(store, settings_provider, monitor, watcher, renamer)
    yield service
    service.shutdown()


def test_not_started_is_a_noop(store, settings_provider):
    monitor = MonitoringService(store, settings_provider, FileSystemLibraryScanner())
    service = ServiceScheduler(
        store, settings_provider, monitor, WatcherService(store, settings_provider), RenameEngine(store, settings_provider),
    )
    assert service.apply_settings(OWNER) == {}


async def test_start_schedules_known_users(scheduler, store):
    store.save_settings(OWNER, check_interval=5)
    scheduler.start()

    assert scheduler.scheduler.get_job(SWEEP_JOB_ID) is not None
    job = scheduler.scheduler.get_job(monitor_job_id(OWNER))
    # below the floor: clamped to 15 minutes
    assert job.trigger.interval == timedelta(minutes=15)
    assert scheduler.scheduler.get_job(rename_job_id(OWNER)) is None
    assert scheduler.scheduler.get_job(watcher_job_id(OWNER)) is None


async def test_settings_change_reschedules(scheduler, store, tmp_path):
    scheduler.start()
    downloads = tmp_path / "dl"
    library = tmp_path / "lib"
    downloads.mkdir()
    library.mkdir()
    store.save_settings(
        OWNER,
        auto_rename=True,
        auto_rename_interval=120,
        download_watcher_enabled=True,
        watcher_interval=3,
        movie_download_directory=str(downloads),
        movie_watcher_destination=str(library),
    )

    applied = scheduler.apply_settings(OWNER)

    assert applied == {"monitoring": True, "auto_rename": True, "watcher": True}
    assert scheduler.scheduler.get_job(rename_job_id(OWNER)).trigger.interval == timedelta(minutes=120)
    assert scheduler.scheduler.get_job(watcher_job_id(OWNER)).trigger.interval == timedelta(seconds=10)
    assert scheduler.watcher.state(OWNER).running

    store.save_settings(OWNER, auto_rename=False, download_watcher_enabled=False)
    scheduler.apply_settings(OWNER)

    assert scheduler.scheduler.get_job(rename_job_id(OWNER)) is None
    assert scheduler.scheduler.get_job(watcher_job_id(OWNER)) is None
    assert not scheduler.watcher.state(OWNER).running
