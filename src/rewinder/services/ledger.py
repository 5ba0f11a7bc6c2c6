"""Per-user marks and the synchronous consensus check that follows them."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ..domain.models import MediaStatus
from ..domain.retention import Clock, utc_now
from ..exceptions import AppError, MoveError, RepositoryError
from ..repositories.mark_repository import MarkRepository
from ..repositories.media_repository import MediaRepository
from ..repositories.user_repository import UserRepository
from .consensus import ConsensusEvaluator
from .transitions import TransitionResult

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class MarkResult:
    """Ledger outcome of a mark/unmark call.

    ``changed`` tells whether a row was created or removed. A failed
    transition does not undo the ledger change; it is reported in ``error``.
    """

    user_id: int
    media_id: int
    changed: bool
    marked: bool
    mark_count: int
    eligible_count: int
    transition: TransitionResult | None = None
    error: AppError | None = None


class MarkLedger:
    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        mark_repo: MarkRepository,
        user_repo: UserRepository,
        evaluator: ConsensusEvaluator,
        clock: Clock | None = None,
    ) -> None:
        self._media_repo = media_repo
        self._mark_repo = mark_repo
        self._user_repo = user_repo
        self._evaluator = evaluator
        self._clock = clock or utc_now

    def mark(self, user_id: int, media_id: int) -> MarkResult:
        self._user_repo.get(user_id)
        self._media_repo.get(media_id)
        created = self._mark_repo.add(user_id=user_id, media_id=media_id, marked_at=self._clock())
        if created:
            logger.info("mark.created", user_id=user_id, media_id=media_id)

        transition: TransitionResult | None = None
        error: AppError | None = None
        try:
            transition = self._evaluator.evaluate(media_id)
        except (MoveError, RepositoryError) as exc:
            error = exc
            logger.warning("mark.transition_failed", user_id=user_id, media_id=media_id, error=str(exc))
        return self._result(user_id, media_id, changed=created, transition=transition, error=error)

    def unmark(self, user_id: int, media_id: int) -> MarkResult:
        """Remove a mark while the item is active; later states keep history."""
        self._user_repo.get(user_id)
        item = self._media_repo.get(media_id)
        removed = False
        if item.status is MediaStatus.ACTIVE:
            removed = self._mark_repo.remove(user_id=user_id, media_id=media_id)
            if removed:
                logger.info("mark.removed", user_id=user_id, media_id=media_id)
        return self._result(user_id, media_id, changed=removed)

    def _result(
        self,
        user_id: int,
        media_id: int,
        *,
        changed: bool,
        transition: TransitionResult | None = None,
        error: AppError | None = None,
    ) -> MarkResult:
        state = self._evaluator.state(media_id)
        return MarkResult(
            user_id=user_id,
            media_id=media_id,
            changed=changed,
            marked=self._mark_repo.exists(user_id=user_id, media_id=media_id),
            mark_count=state.marked,
            eligible_count=state.eligible,
            transition=transition,
            error=error,
        )


__all__ = ["MarkLedger", "MarkResult"]
