"""Exempt items from deletion by moving them to the permanent tier."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ..domain.models import MediaStatus, PersistentRecord
from ..exceptions import AppError, InvalidTransitionError, MoveError
from ..repositories.media_repository import MediaRepository
from ..repositories.persistent_repository import PersistentMediaRepository
from ..repositories.user_repository import UserRepository
from .transitions import TransitionExecutor, TransitionResult

logger = structlog.get_logger(__name__)

_MAX_ATTEMPTS = 3


@dataclass(slots=True)
class PersistResult:
    media_id: int
    created: bool
    record: PersistentRecord | None = None
    transition: TransitionResult | None = None
    error: AppError | None = None


class PermanenceGuard:
    """``persist`` is idempotent across users; there is no way back."""

    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        persistent_repo: PersistentMediaRepository,
        user_repo: UserRepository,
        executor: TransitionExecutor,
    ) -> None:
        self._media_repo = media_repo
        self._persistent_repo = persistent_repo
        self._user_repo = user_repo
        self._executor = executor

    def persist(self, user_id: int, media_id: int) -> PersistResult:
        self._user_repo.get(user_id)
        transition: TransitionResult | None = None
        # a concurrent trash or reap may move the item under us; re-read and retry
        for _ in range(_MAX_ATTEMPTS):
            item = self._media_repo.get(media_id)
            record = self._persistent_repo.get(media_id)
            if record is not None or item.status is MediaStatus.PERMANENT:
                return PersistResult(media_id=media_id, created=False, record=record, transition=transition)
            if item.status is MediaStatus.GONE:
                raise InvalidTransitionError(f"media {media_id} is gone and cannot be persisted")
            try:
                transition = self._executor.to_permanent(item, user_id=user_id)
            except MoveError as exc:
                logger.warning("media.persist.failed", media_id=media_id, user_id=user_id, error=str(exc))
                return PersistResult(media_id=media_id, created=False, error=exc)
            if transition.applied:
                logger.info(
                    "media.persist.created",
                    media_id=media_id,
                    user_id=user_id,
                    previous_status=item.status.value,
                )
                return PersistResult(
                    media_id=media_id,
                    created=True,
                    record=self._persistent_repo.get(media_id),
                    transition=transition,
                )
        return PersistResult(
            media_id=media_id,
            created=False,
            record=self._persistent_repo.get(media_id),
            transition=transition,
        )


__all__ = ["PermanenceGuard", "PersistResult"]
