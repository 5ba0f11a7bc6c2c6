"""Facade exposing the lifecycle operations to callers and scheduled jobs."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.orm import Session

from ..domain.models import MediaItem, MediaKind, MediaStatus
from ..domain.retention import Clock, utc_now
from ..infrastructure.storage import LocalMediaStorage, MediaStorage
from ..media.layout import LibraryLayout
from ..repositories.mark_repository import MarkRepository
from ..repositories.media_repository import MediaRepository
from ..repositories.persistent_repository import PersistentMediaRepository
from ..repositories.user_repository import SessionRepository, UserRepository
from .consensus import ConsensusEvaluator, ConsensusSweepReport, EligibilityPolicy
from .ledger import MarkLedger, MarkResult
from .permanence import PermanenceGuard, PersistResult
from .reaper import GracePeriodReaper, ReapReport
from .scanner import LibraryScanner, ScanReport
from .transitions import TransitionExecutor

if TYPE_CHECKING:
    from ..config import RuntimeConfig

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class MediaQuery:
    """Listing filter.

    ``visible_to`` limits results to active items plus permanent items that
    user persisted. ``viewer_id`` (defaulting to ``visible_to``) fills the
    per-user ``marked`` flag and enables ``hide_marked``.
    """

    kinds: tuple[MediaKind, ...] | None = None
    statuses: tuple[MediaStatus, ...] | None = None
    viewer_id: int | None = None
    visible_to: int | None = None
    hide_marked: bool = False


@dataclass(slots=True)
class MediaListing:
    item: MediaItem
    marked: bool
    mark_count: int
    eligible_count: int


@dataclass(slots=True)
class LibraryStats:
    counts: dict[MediaStatus, int]
    active_bytes: int
    trashed_bytes: int
    user_count: int


@dataclass(slots=True)
class MaintenanceReport:
    scan: ScanReport
    consensus: ConsensusSweepReport
    sessions_purged: int = 0


class LifecycleEngine:
    """Wire repositories and services over one store and one filesystem."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        media_dirs: Iterable[Path | str],
        storage: MediaStorage | None = None,
        clock: Clock | None = None,
        grace_period: timedelta = timedelta(days=7),
        policy: EligibilityPolicy = EligibilityPolicy.ALL,
        move_timeout: float | None = None,
    ) -> None:
        self.clock = clock or utc_now
        self.layout = LibraryLayout(media_dirs)
        self.storage = storage or LocalMediaStorage()

        self.media_repo = MediaRepository(session_factory)
        self.mark_repo = MarkRepository(session_factory)
        self.persistent_repo = PersistentMediaRepository(session_factory)
        self.user_repo = UserRepository(session_factory)
        self.session_repo = SessionRepository(session_factory)

        self.executor = TransitionExecutor(
            media_repo=self.media_repo,
            storage=self.storage,
            layout=self.layout,
            clock=self.clock,
            move_timeout=move_timeout,
        )
        self.evaluator = ConsensusEvaluator(
            media_repo=self.media_repo,
            mark_repo=self.mark_repo,
            user_repo=self.user_repo,
            executor=self.executor,
            policy=policy,
        )
        self.ledger = MarkLedger(
            media_repo=self.media_repo,
            mark_repo=self.mark_repo,
            user_repo=self.user_repo,
            evaluator=self.evaluator,
            clock=self.clock,
        )
        self.guard = PermanenceGuard(
            media_repo=self.media_repo,
            persistent_repo=self.persistent_repo,
            user_repo=self.user_repo,
            executor=self.executor,
        )
        self.scanner = LibraryScanner(
            media_repo=self.media_repo,
            storage=self.storage,
            layout=self.layout,
            clock=self.clock,
        )
        self.reaper = GracePeriodReaper(
            media_repo=self.media_repo,
            storage=self.storage,
            layout=self.layout,
            grace_period=grace_period,
            clock=self.clock,
        )

    @classmethod
    def from_config(
        cls,
        config: "RuntimeConfig",
        *,
        storage: MediaStorage | None = None,
        clock: Clock | None = None,
    ) -> "LifecycleEngine":
        settings = config.settings
        return cls(
            session_factory=config.session_factory,
            media_dirs=settings.media_dirs,
            storage=storage,
            clock=clock,
            grace_period=settings.grace_period,
            policy=settings.eligible_users,
            move_timeout=settings.move_timeout_seconds,
        )

    def scan(
        self,
        roots: Iterable[Path] | None = None,
        *,
        stop_event: threading.Event | None = None,
    ) -> ScanReport:
        return self.scanner.scan(roots, stop_event=stop_event)

    def mark(self, user_id: int, media_id: int) -> MarkResult:
        return self.ledger.mark(user_id, media_id)

    def unmark(self, user_id: int, media_id: int) -> MarkResult:
        return self.ledger.unmark(user_id, media_id)

    def persist(self, user_id: int, media_id: int) -> PersistResult:
        return self.guard.persist(user_id, media_id)

    def reap(
        self,
        *,
        dry_run: bool = False,
        stop_event: threading.Event | None = None,
    ) -> ReapReport:
        return self.reaper.reap(dry_run=dry_run, stop_event=stop_event)

    def sweep_consensus(self) -> ConsensusSweepReport:
        return self.evaluator.sweep()

    def purge_sessions(self, now: datetime | None = None) -> int:
        purged = self.session_repo.purge_expired(now or self.clock())
        if purged:
            logger.info("sessions.purged", count=purged)
        return purged

    def remove_user(self, user_id: int) -> ConsensusSweepReport:
        """Delete a user, then re-check consensus for the smaller eligible set."""
        user = self.user_repo.get(user_id)
        self.user_repo.delete(user_id)
        logger.info("user.removed", user_id=user_id, username=user.username)
        return self.evaluator.sweep()

    def stats(self) -> LibraryStats:
        return LibraryStats(
            counts=self.media_repo.count_by_status(),
            active_bytes=self.media_repo.total_size(MediaStatus.ACTIVE),
            trashed_bytes=self.media_repo.total_size(MediaStatus.TRASHED),
            user_count=self.user_repo.count(),
        )

    def maintenance(self, *, stop_event: threading.Event | None = None) -> MaintenanceReport:
        """Scheduled pass: scan, retry pending consensus, purge expired sessions."""
        scan_report = self.scan(stop_event=stop_event)
        if scan_report.aborted:
            return MaintenanceReport(scan=scan_report, consensus=ConsensusSweepReport())
        return MaintenanceReport(
            scan=scan_report,
            consensus=self.sweep_consensus(),
            sessions_purged=self.purge_sessions(),
        )

    def list(self, query: MediaQuery | None = None) -> list[MediaListing]:
        query = query or MediaQuery()
        statuses = query.statuses
        if query.visible_to is not None and statuses is None:
            statuses = (MediaStatus.ACTIVE, MediaStatus.PERMANENT)
        items = self.media_repo.list_media(kinds=query.kinds, statuses=statuses)

        viewer = query.viewer_id if query.viewer_id is not None else query.visible_to
        if query.visible_to is not None:
            persisted = self.persistent_repo.persisted_by(query.visible_to)
            items = [
                item
                for item in items
                if item.status is MediaStatus.ACTIVE
                or (item.status is MediaStatus.PERMANENT and item.id in persisted)
            ]

        eligible = self.evaluator.eligible_users()
        counts = self.mark_repo.counts_by_media(eligible)
        marked_ids = self.mark_repo.marked_media(viewer) if viewer is not None else set()
        listings = [
            MediaListing(
                item=item,
                marked=item.id in marked_ids,
                mark_count=counts.get(item.id, 0),
                eligible_count=len(eligible),
            )
            for item in items
        ]
        if query.hide_marked and viewer is not None:
            listings = [listing for listing in listings if not listing.marked]
        return listings


__all__ = [
    "LibraryStats",
    "LifecycleEngine",
    "MaintenanceReport",
    "MediaListing",
    "MediaQuery",
]
