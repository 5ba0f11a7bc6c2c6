"""Move items between tiers and commit the status change.

The file is relocated first and the row is updated afterwards with a
compare-and-set on the status observed before the move. Only the actor whose
rename succeeds can commit; everybody else observes a lost race. If the
commit predicate fails after a successful rename the file is moved back.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from ..domain.models import MediaItem, MediaStatus, StorageTier, ensure_transition
from ..domain.retention import Clock, utc_now
from ..exceptions import MoveError, PathCollisionError
from ..infrastructure.storage import MediaStorage
from ..media.layout import LibraryLayout
from ..repositories.media_repository import MediaRepository

logger = structlog.get_logger(__name__)

_TIER_FOR_STATUS = {
    MediaStatus.TRASHED: StorageTier.TRASH,
    MediaStatus.PERMANENT: StorageTier.PERMANENT,
}


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    RACE_LOST = "race_lost"


@dataclass(slots=True)
class TransitionResult:
    media_id: int
    target: MediaStatus
    outcome: TransitionOutcome
    source: Path
    destination: Path

    @property
    def applied(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED


class TransitionExecutor:
    """Relocate items to the trash or permanent tier of their library."""

    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        storage: MediaStorage,
        layout: LibraryLayout,
        clock: Clock | None = None,
        move_timeout: float | None = None,
    ) -> None:
        self._media_repo = media_repo
        self._storage = storage
        self._layout = layout
        self._clock = clock or utc_now
        self._move_timeout = move_timeout

    def to_trash(self, item: MediaItem) -> TransitionResult:
        return self._execute(item, target=MediaStatus.TRASHED)

    def to_permanent(self, item: MediaItem, *, user_id: int) -> TransitionResult:
        return self._execute(item, target=MediaStatus.PERMANENT, user_id=user_id)

    def _execute(
        self,
        item: MediaItem,
        *,
        target: MediaStatus,
        user_id: int | None = None,
    ) -> TransitionResult:
        ensure_transition(item.status, target)
        source = item.path
        try:
            destination = self._layout.destination(source, _TIER_FOR_STATUS[target])
        except ValueError as exc:
            raise MoveError(str(exc)) from exc
        result = TransitionResult(
            media_id=item.id,
            target=target,
            outcome=TransitionOutcome.APPLIED,
            source=source,
            destination=destination,
        )

        try:
            self._storage.move_atomic(source, destination, timeout=self._move_timeout)
        except (FileNotFoundError, MoveError) as exc:
            if self._lost_race(item, source, destination):
                return self._race_lost(result, reason="moved_elsewhere")
            logger.error(
                "media.transition.failed",
                media_id=item.id,
                target=target.value,
                source=str(source),
                destination=str(destination),
                error=str(exc),
            )
            if isinstance(exc, MoveError):
                raise
            raise MoveError(f"source missing: {source}") from exc

        try:
            committed = self._media_repo.transition(
                item.id,
                expected=item.status,
                target=target,
                at=self._clock(),
                path=destination,
                persisted_by=user_id,
            )
        except PathCollisionError as exc:
            self._move_back(result)
            raise MoveError(f"destination already tracked: {destination}") from exc

        if not committed:
            self._move_back(result)
            return self._race_lost(result, reason="status_changed")

        event = "media.trash.moved" if target is MediaStatus.TRASHED else "media.permanent.moved"
        logger.info(
            event,
            media_id=item.id,
            source=str(source),
            destination=str(destination),
            user_id=user_id,
        )
        return result

    def _lost_race(self, item: MediaItem, source: Path, destination: Path) -> bool:
        current = self._media_repo.find(item.id)
        if current is None or current.status is not item.status or current.path != source:
            return True
        return not self._storage.exists(source) and self._storage.exists(destination)

    def _race_lost(self, result: TransitionResult, *, reason: str) -> TransitionResult:
        result.outcome = TransitionOutcome.RACE_LOST
        logger.info(
            "media.transition.race_lost",
            media_id=result.media_id,
            target=result.target.value,
            reason=reason,
        )
        return result

    def _move_back(self, result: TransitionResult) -> None:
        try:
            self._storage.move_atomic(result.destination, result.source, timeout=self._move_timeout)
        except (FileNotFoundError, MoveError) as exc:
            logger.error(
                "media.transition.rollback_failed",
                media_id=result.media_id,
                source=str(result.source),
                destination=str(result.destination),
                error=str(exc),
            )
            raise MoveError(
                f"could not return {result.destination} to {result.source}"
            ) from exc


__all__ = ["TransitionExecutor", "TransitionOutcome", "TransitionResult"]
