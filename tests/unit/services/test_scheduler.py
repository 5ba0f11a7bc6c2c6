from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from src.rewinder.services.scheduler import SchedulerService
from src.rewinder.services.watcher import LibraryWatcher

pytestmark = pytest.mark.unit


class FakeScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, dict] = {}
        self.started = False
        self.shutdown_wait: bool | None = None

    def add_job(self, func, trigger, id, name, replace_existing, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, "name": name, **kwargs}

    def start(self) -> None:
        self.started = True

    def shutdown(self, wait: bool = True) -> None:
        self.shutdown_wait = wait

    def get_jobs(self):
        return [
            SimpleNamespace(id=job_id, next_run_time=job.get("next_run_time"))
            for job_id, job in self.jobs.items()
        ]


class StubEngine:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.stop_events = []

    def maintenance(self, *, stop_event):
        self.stop_events.append(stop_event)
        if self.fail:
            raise RuntimeError("store unavailable")
        scan = SimpleNamespace(discovered=[1], gone=[], aborted=False)
        return SimpleNamespace(scan=scan, consensus=SimpleNamespace(trashed=[]))

    def reap(self, *, stop_event):
        self.stop_events.append(stop_event)
        if self.fail:
            raise RuntimeError("store unavailable")
        return SimpleNamespace(removed=[1, 2], errors=[])


def _service(engine, *, reap_interval=timedelta(hours=1)):
    fake = FakeScheduler()
    service = SchedulerService(
        engine,
        scan_interval=timedelta(minutes=30),
        reap_interval=reap_interval,
        scheduler=fake,
    )
    return service, fake


def test_start_registers_both_jobs_and_runs_scan_first() -> None:
    service, fake = _service(StubEngine())

    service.start()

    assert fake.started and service.running
    assert set(fake.jobs) == {SchedulerService.SCAN_JOB_ID, SchedulerService.REAP_JOB_ID}
    assert fake.jobs[SchedulerService.SCAN_JOB_ID]["next_run_time"] is not None
    assert "next_run_time" not in fake.jobs[SchedulerService.REAP_JOB_ID]
    assert fake.jobs[SchedulerService.SCAN_JOB_ID]["trigger"].interval == timedelta(minutes=30)
    assert set(service.jobs()) == set(fake.jobs)


def test_disabled_reaper_is_not_scheduled() -> None:
    settings = SimpleNamespace(scan_interval_hours=2, cleanup_interval_hours=0, watch_enabled=False)
    fake = FakeScheduler()
    service = SchedulerService.from_settings(StubEngine(), settings)
    service._scheduler = fake

    service.start(run_scan_now=False)

    assert set(fake.jobs) == {SchedulerService.SCAN_JOB_ID}
    assert fake.jobs[SchedulerService.SCAN_JOB_ID]["trigger"].interval == timedelta(hours=2)


def test_jobs_share_the_stop_event() -> None:
    engine = StubEngine()
    service, fake = _service(engine)
    service.start()

    assert service.run_scan().scan.discovered == [1]
    assert service.run_reap().removed == [1, 2]
    assert engine.stop_events == [service.stop_event, service.stop_event]

    service.stop(wait=True)

    assert service.stop_event.is_set()
    assert fake.shutdown_wait is True
    assert not service.running


def test_job_failures_are_logged_not_raised(caplog) -> None:
    service, _fake = _service(StubEngine(fail=True))

    with caplog.at_level("ERROR"):
        assert service.run_scan() is None
        assert service.run_reap() is None

    messages = [record.getMessage() for record in caplog.records]
    assert "scheduler.scan.failed" in messages
    assert "scheduler.reap.failed" in messages


class StubWatcher:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def start(self) -> None:
        self.calls.append("start")

    def stop(self) -> None:
        self.calls.append("stop")


def test_watcher_follows_scheduler_lifecycle() -> None:
    watcher = StubWatcher()
    fake = FakeScheduler()
    service = SchedulerService(
        StubEngine(),
        scan_interval=timedelta(minutes=30),
        reap_interval=None,
        scheduler=fake,
        watcher=watcher,
    )

    service.start()
    service.stop()

    assert watcher.calls == ["start", "stop"]
    assert service.watcher is watcher


def test_from_settings_builds_watcher_when_enabled() -> None:
    engine = StubEngine()
    engine.layout = SimpleNamespace(libraries=[SimpleNamespace(root=Path("/srv/media/Movies"))])
    settings = SimpleNamespace(
        scan_interval_hours=1,
        cleanup_interval_hours=1,
        watch_enabled=True,
        watch_settle_seconds=2.5,
    )

    service = SchedulerService.from_settings(engine, settings)

    assert isinstance(service.watcher, LibraryWatcher)
    assert service.watcher.pending() == []
