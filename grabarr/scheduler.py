"""Scheduler pour la surveillance, le watcher et le renommage automatique."""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

from grabarr.config import get_config

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "monitor:sweep"


def monitor_job_id(owner_id: str) -> str:
    return f"monitor:{owner_id}"


def rename_job_id(owner_id: str) -> str:
    return f"rename:{owner_id}"


def watcher_job_id(owner_id: str) -> str:
    return f"watcher:{owner_id}"


class ServiceScheduler:
    """Jobs APScheduler par utilisateur (un seul passage à la fois par job)."""

    def __init__(self, store, settings_provider, monitor, watcher, renamer):
        config = get_config()
        self.enabled = config.scheduler.enabled
        self.sweep_minutes = config.scheduler.global_sweep_minutes
        self.monitoring = config.monitoring
        self.watcher_config = config.watcher
        self.rename_config = config.rename
        self.store = store
        self.settings_provider = settings_provider
        self.monitor = monitor
        self.watcher = watcher
        self.renamer = renamer
        self.scheduler = AsyncIOScheduler(timezone=config.scheduler.timezone)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def _schedule(self, job_id: str, func, seconds: float, args: List, next_run_time: Optional[datetime] = None) -> None:
        kwargs = {}
        if next_run_time is not None:
            kwargs["next_run_time"] = next_run_time
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            args=args,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )

    def _remove(self, job_id: str) -> None:
        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)

    def start(self) -> None:
        """Démarre le scheduler et planifie chaque utilisateur connu."""
        if not self.enabled:
            logger.info("Scheduler is disabled")
            return
        self.scheduler.start()
        self._schedule(SWEEP_JOB_ID, self.run_sweep, self.sweep_minutes * 60, [])
        owners = self.store.list_owner_ids()
        for owner_id in owners:
            self.apply_settings(owner_id, startup=True)
        logger.info(f"Scheduler started for {len(owners)} users, sweep every {self.sweep_minutes} min")

    def check_interval_minutes(self, settings) -> int:
        return max(settings.check_interval, self.monitoring.min_check_interval_minutes)

    def rename_interval_minutes(self, settings) -> int:
        return max(settings.auto_rename_interval, self.rename_config.min_interval_minutes)

    def watcher_interval_seconds(self, settings) -> int:
        return max(settings.watcher_interval, self.watcher_config.min_interval_seconds)

    def apply_settings(self, owner_id: str, startup: bool = False) -> Dict[str, bool]:
        """(Re)planifie les jobs d'un utilisateur d'après ses réglages."""
        if not self.running:
            return {}
        settings = self.settings_provider.get(owner_id)
        now = datetime.now(timezone.utc)

        first_check = now + timedelta(seconds=self.monitoring.startup_delay_seconds) if startup else None
        self._schedule(
            monitor_job_id(owner_id),
            self.run_monitoring,
            self.check_interval_minutes(settings) * 60,
            [owner_id],
            next_run_time=first_check,
        )

        if settings.auto_rename:
            # Runs once right away, then on its interval
            self._schedule(
                rename_job_id(owner_id),
                self.run_auto_rename,
                self.rename_interval_minutes(settings) * 60,
                [owner_id],
                next_run_time=now,
            )
        else:
            self._remove(rename_job_id(owner_id))

        watching = settings.download_watcher_enabled and bool(settings.watch_pairs())
        if watching:
            self.start_watcher(owner_id)
        else:
            self.stop_watcher(owner_id)

        return {"monitoring": True, "auto_rename": settings.auto_rename, "watcher": watching}

    def start_watcher(self, owner_id: str) -> None:
        settings = self.settings_provider.get(owner_id)
        interval = self.watcher_interval_seconds(settings)
        self._schedule(
            watcher_job_id(owner_id),
            self.run_watcher,
            interval,
            [owner_id],
            next_run_time=datetime.now(timezone.utc),
        )
        self.watcher.mark_running(owner_id, True, interval)
        logger.info(f"Watcher started for user {owner_id} (every {interval}s)")

    def stop_watcher(self, owner_id: str) -> None:
        if self.running:
            self._remove(watcher_job_id(owner_id))
        self.watcher.mark_running(owner_id, False)

    async def trigger_monitoring(self, owner_id: str):
        """Vérification immédiate; le prochain passage repart de maintenant."""
        results = await self.monitor.check_user(owner_id)
        job = self.scheduler.get_job(monitor_job_id(owner_id)) if self.running else None
        if job is not None:
            settings = self.settings_provider.get(owner_id)
            minutes = self.check_interval_minutes(settings)
            job.modify(next_run_time=datetime.now(timezone.utc) + timedelta(minutes=minutes))
        return results

    async def run_monitoring(self, owner_id: str) -> None:
        logger.info(f"Running scheduled monitoring for user {owner_id}")
        try:
            await self.monitor.check_user(owner_id)
        except Exception as e:
            logger.error(f"Error in scheduled monitoring for user {owner_id}: {str(e)}")

    async def run_sweep(self) -> None:
        logger.info("Running global monitoring sweep")
        try:
            checked = await self.monitor.check_all()
            logger.info(f"Global sweep completed for {len(checked)} users")
        except Exception as e:
            logger.error(f"Error in global monitoring sweep: {str(e)}")

    async def run_auto_rename(self, owner_id: str) -> None:
        try:
            results = await self.renamer.run_auto_rename(owner_id)
            logger.info(
                f"Auto-rename for user {owner_id}: "
                + ", ".join(f"{kind} {r.succeeded} ok / {r.failed} failed" for kind, r in results.items())
            )
        except Exception as e:
            logger.error(f"Error in auto-rename for user {owner_id}: {str(e)}")

    async def run_watcher(self, owner_id: str) -> None:
        try:
            await self.watcher.trigger_scan(owner_id)
        except Exception as e:
            logger.error(f"Error in watcher scan for user {owner_id}: {str(e)}")

    def shutdown(self) -> None:
        """Arrête le scheduler."""
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
