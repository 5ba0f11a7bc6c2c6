"""Delete trashed items once their grace period has elapsed."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from ..domain.models import MediaItem, MediaStatus, StorageTier
from ..domain.retention import Clock, is_reap_eligible, reap_cutoff, utc_now
from ..exceptions import AppError, MoveError, ReapRaceLoss, StorageError
from ..infrastructure.storage import MediaStorage
from ..media.layout import LibraryLayout, Placement
from ..repositories.media_repository import MediaRepository

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ReapReport:
    started_at: datetime
    cutoff: datetime
    dry_run: bool
    eligible: list[MediaItem] = field(default_factory=list)
    removed: list[MediaItem] = field(default_factory=list)
    race_lost: list[ReapRaceLoss] = field(default_factory=list)
    errors: list[tuple[int, AppError]] = field(default_factory=list)
    stopped: bool = False


class GracePeriodReaper:
    """Soft-retire expired trash: the file is deleted, the row becomes ``gone``."""

    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        storage: MediaStorage,
        layout: LibraryLayout,
        grace_period: timedelta,
        clock: Clock | None = None,
    ) -> None:
        self._media_repo = media_repo
        self._storage = storage
        self._layout = layout
        self._grace_period = grace_period
        self._clock = clock or utc_now

    @property
    def grace_period(self) -> timedelta:
        return self._grace_period

    def reap(
        self,
        *,
        dry_run: bool = False,
        stop_event: threading.Event | None = None,
    ) -> ReapReport:
        now = self._clock()
        cutoff = reap_cutoff(self._grace_period, now=now)
        report = ReapReport(started_at=now, cutoff=cutoff, dry_run=dry_run)
        report.eligible = self._media_repo.list_expired_trash(cutoff)
        if dry_run:
            logger.info("reaper.dry_run", eligible=len(report.eligible), cutoff=cutoff.isoformat())
            return report

        for index, item in enumerate(report.eligible):
            if stop_event is not None and stop_event.is_set():
                report.stopped = True
                logger.info("reaper.stopped", remaining=len(report.eligible) - index)
                break
            try:
                self._reap_one(item, now=now, report=report)
            except ReapRaceLoss as exc:
                report.race_lost.append(exc)
                logger.info("reaper.race_lost", media_id=item.id, reason=str(exc))
            except StorageError as exc:
                report.errors.append((item.id, exc))
                logger.warning("reaper.failed", media_id=item.id, path=str(item.path), error=str(exc))

        logger.info(
            "reaper.completed",
            eligible=len(report.eligible),
            removed=len(report.removed),
            race_lost=len(report.race_lost),
            errors=len(report.errors),
        )
        return report

    def _reap_one(self, item: MediaItem, *, now: datetime, report: ReapReport) -> None:
        current = self._media_repo.find(item.id)
        if (
            current is None
            or current.status is not MediaStatus.TRASHED
            or current.path != item.path
            or not is_reap_eligible(current.trashed_at, self._grace_period, now=now)
        ):
            raise ReapRaceLoss(f"media {item.id} left the trash")

        path = current.path
        placement = self._layout.locate(path)
        claim = self._claim(item.id, path, placement)
        if claim is not None:
            try:
                self._storage.delete(claim)
            except OSError as exc:
                self._release(item.id, claim, path)
                raise StorageError(f"cannot delete {path}: {exc}") from exc
            if placement is not None:
                self._storage.remove_empty_parents(
                    claim, boundary=placement.library.tier_root(placement.tier)
                )

        if not self._media_repo.transition(
            item.id,
            expected=MediaStatus.TRASHED,
            target=MediaStatus.GONE,
            at=now,
        ):
            raise ReapRaceLoss(f"media {item.id} changed status during deletion")
        report.removed.append(current)
        logger.info(
            "reaper.removed",
            media_id=item.id,
            path=str(path),
            trashed_at=current.trashed_at.isoformat() if current.trashed_at else None,
        )

    def _claim(self, media_id: int, path: Path, placement: Placement | None) -> Path | None:
        """Rename ``path`` to a hidden sibling so no other actor can move it.

        Returns ``None`` when the folder is already gone from the trash tier.
        """
        claim = path.with_name(f".{path.name}.reaping-{uuid.uuid4().hex}")
        try:
            self._storage.move_atomic(path, claim)
        except FileNotFoundError:
            if placement is not None and self._storage.exists(
                placement.library.tier_root(StorageTier.PERMANENT) / placement.relative
            ):
                raise ReapRaceLoss(f"media {media_id} is being persisted")
            logger.info("reaper.already_missing", media_id=media_id, path=str(path))
            return None
        except MoveError as exc:
            raise StorageError(f"cannot claim {path}: {exc}") from exc
        return claim

    def _release(self, media_id: int, claim: Path, path: Path) -> None:
        try:
            self._storage.move_atomic(claim, path)
        except (FileNotFoundError, MoveError) as exc:
            logger.error(
                "reaper.release_failed",
                media_id=media_id,
                claim=str(claim),
                path=str(path),
                error=str(exc),
            )


__all__ = ["GracePeriodReaper", "ReapReport"]
