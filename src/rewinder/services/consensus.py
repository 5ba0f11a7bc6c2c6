"""Consensus evaluation over the mark ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..domain.models import MediaStatus
from ..exceptions import AppError, MoveError, RepositoryError
from ..repositories.mark_repository import MarkRepository
from ..repositories.media_repository import MediaRepository
from ..repositories.user_repository import UserRepository
from .transitions import TransitionExecutor, TransitionResult

logger = structlog.get_logger(__name__)


class EligibilityPolicy(str, Enum):
    """Which registered users count towards consensus."""

    ALL = "all"
    NON_ADMIN = "non_admin"

    @property
    def include_admins(self) -> bool:
        return self is EligibilityPolicy.ALL


@dataclass(frozen=True, slots=True)
class ConsensusState:
    media_id: int
    marked: int
    eligible: int

    @property
    def reached(self) -> bool:
        return self.eligible >= 1 and self.marked >= self.eligible


@dataclass(slots=True)
class ConsensusSweepReport:
    checked: int = 0
    results: list[TransitionResult] = field(default_factory=list)
    errors: list[tuple[int, AppError]] = field(default_factory=list)

    @property
    def trashed(self) -> list[TransitionResult]:
        return [result for result in self.results if result.applied]


class ConsensusEvaluator:
    """Trash an active item once every eligible user has marked it."""

    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        mark_repo: MarkRepository,
        user_repo: UserRepository,
        executor: TransitionExecutor,
        policy: EligibilityPolicy = EligibilityPolicy.ALL,
    ) -> None:
        self._media_repo = media_repo
        self._mark_repo = mark_repo
        self._user_repo = user_repo
        self._executor = executor
        self._policy = EligibilityPolicy(policy)

    @property
    def policy(self) -> EligibilityPolicy:
        return self._policy

    def eligible_users(self) -> set[int]:
        return self._user_repo.user_ids(include_admins=self._policy.include_admins)

    def state(self, media_id: int, *, eligible: set[int] | None = None) -> ConsensusState:
        eligible = self.eligible_users() if eligible is None else eligible
        marked = self._mark_repo.marked_by(media_id) & eligible
        return ConsensusState(media_id=media_id, marked=len(marked), eligible=len(eligible))

    def evaluate(self, media_id: int) -> TransitionResult | None:
        """Run ``to_trash`` when consensus holds; ``None`` when nothing to do."""

        item = self._media_repo.get(media_id)
        if item.status is not MediaStatus.ACTIVE:
            return None
        state = self.state(media_id)
        if not state.reached:
            return None
        logger.info(
            "consensus.reached",
            media_id=media_id,
            marked=state.marked,
            eligible=state.eligible,
            policy=self._policy.value,
        )
        return self._executor.to_trash(item)

    def sweep(self) -> ConsensusSweepReport:
        """Re-evaluate every active item whose marks satisfy consensus."""

        report = ConsensusSweepReport()
        eligible = self.eligible_users()
        candidate_ids = self._mark_repo.media_marked_by_all(eligible)
        if not candidate_ids:
            return report
        for item in self._media_repo.list_media(ids=candidate_ids, statuses=[MediaStatus.ACTIVE]):
            report.checked += 1
            try:
                report.results.append(self._executor.to_trash(item))
            except (MoveError, RepositoryError) as exc:
                report.errors.append((item.id, exc))
                logger.warning("consensus.sweep.failed", media_id=item.id, error=str(exc))
        if report.results or report.errors:
            logger.info(
                "consensus.sweep.completed",
                checked=report.checked,
                trashed=len(report.trashed),
                errors=len(report.errors),
            )
        return report


__all__ = [
    "ConsensusEvaluator",
    "ConsensusState",
    "ConsensusSweepReport",
    "EligibilityPolicy",
]
