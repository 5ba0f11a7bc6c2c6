"""Background scheduling of library scans and trash reaping."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .engine import LifecycleEngine, MaintenanceReport
from .reaper import ReapReport
from .watcher import LibraryWatcher

logger = logging.getLogger(__name__)


class SchedulerService:
    """Run ``maintenance`` and ``reap`` on independent interval timers.

    Both jobs receive the same stop event; ``stop`` sets it and waits for the
    running item to finish before the scheduler shuts down. An optional
    :class:`LibraryWatcher` is started and stopped alongside the jobs.
    """

    SCAN_JOB_ID = "library_scan"
    REAP_JOB_ID = "trash_reaper"

    def __init__(
        self,
        engine: LifecycleEngine,
        *,
        scan_interval: timedelta,
        reap_interval: timedelta | None,
        scheduler: BackgroundScheduler | None = None,
        watcher: LibraryWatcher | None = None,
    ) -> None:
        self._engine = engine
        self._watcher = watcher
        self._scan_interval = scan_interval
        self._reap_interval = reap_interval
        self._scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": int(scan_interval.total_seconds()) or None,
            },
            timezone=timezone.utc,
        )
        self._stop_event = threading.Event()
        self._started = False

    @classmethod
    def from_settings(cls, engine: LifecycleEngine, settings: Any) -> "SchedulerService":
        reap_hours = settings.cleanup_interval_hours
        watcher = None
        if settings.watch_enabled:
            watcher = LibraryWatcher(engine, settle_seconds=settings.watch_settle_seconds)
        return cls(
            engine,
            scan_interval=timedelta(hours=settings.scan_interval_hours),
            reap_interval=timedelta(hours=reap_hours) if reap_hours > 0 else None,
            watcher=watcher,
        )

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    @property
    def running(self) -> bool:
        return self._started

    @property
    def watcher(self) -> LibraryWatcher | None:
        return self._watcher

    def start(self, *, run_scan_now: bool = True) -> None:
        if self._started:
            return
        self._stop_event.clear()
        scan_kwargs: dict[str, Any] = {}
        if run_scan_now:
            scan_kwargs["next_run_time"] = datetime.now(timezone.utc)
        self._scheduler.add_job(
            self.run_scan,
            trigger=IntervalTrigger(seconds=self._scan_interval.total_seconds()),
            id=self.SCAN_JOB_ID,
            name="Library scan",
            replace_existing=True,
            **scan_kwargs,
        )
        if self._reap_interval is not None:
            self._scheduler.add_job(
                self.run_reap,
                trigger=IntervalTrigger(seconds=self._reap_interval.total_seconds()),
                id=self.REAP_JOB_ID,
                name="Trash reaper",
                replace_existing=True,
            )
        else:
            logger.info("scheduler.reaper.disabled")
        self._scheduler.start()
        if self._watcher is not None:
            self._watcher.start()
        self._started = True
        logger.info(
            "scheduler.started",
            extra={
                "scan_interval_seconds": self._scan_interval.total_seconds(),
                "reap_interval_seconds": (
                    self._reap_interval.total_seconds() if self._reap_interval else None
                ),
            },
        )

    def stop(self, *, wait: bool = True) -> None:
        """Signal running jobs to stop after their current item and shut down."""
        if not self._started:
            return
        self._stop_event.set()
        if self._watcher is not None:
            self._watcher.stop()
        self._scheduler.shutdown(wait=wait)
        self._started = False
        logger.info("scheduler.stopped")

    def run_scan(self) -> MaintenanceReport | None:
        try:
            report = self._engine.maintenance(stop_event=self._stop_event)
        except Exception:
            logger.exception("scheduler.scan.failed")
            return None
        logger.info(
            "scheduler.scan.completed",
            extra={
                "discovered": len(report.scan.discovered),
                "gone": len(report.scan.gone),
                "trashed": len(report.consensus.trashed),
                "aborted": report.scan.aborted,
            },
        )
        return report

    def run_reap(self) -> ReapReport | None:
        try:
            report = self._engine.reap(stop_event=self._stop_event)
        except Exception:
            logger.exception("scheduler.reap.failed")
            return None
        logger.info(
            "scheduler.reap.completed",
            extra={"removed": len(report.removed), "errors": len(report.errors)},
        )
        return report

    def jobs(self) -> dict[str, datetime | None]:
        """Next run time per scheduled job."""
        return {
            job.id: getattr(job, "next_run_time", None) for job in self._scheduler.get_jobs()
        }


__all__ = ["SchedulerService"]
