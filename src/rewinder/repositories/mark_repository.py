"""Persistence layer for per-user "no longer needed" marks."""

from __future__ import annotations

from collections.abc import Callable, Collection
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.db_models import MarkModel
from ..domain.models import Mark
from ..exceptions import IntegrityConstraintViolation, handle_sqlalchemy_errors


class MarkRepository:
    """Manage ``marks`` rows. Presence of a row is the whole state."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add(self, *, user_id: int, media_id: int, marked_at: datetime) -> bool:
        """Insert a mark; ``False`` when the pair is already marked."""
        with self._session_factory() as session:
            if session.get(MarkModel, (user_id, media_id)) is not None:
                return False
            session.add(MarkModel(user_id=user_id, media_id=media_id, marked_at=marked_at))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                # a concurrent writer inserted the same pair
                if session.get(MarkModel, (user_id, media_id)) is not None:
                    return False
                raise IntegrityConstraintViolation("Mark: unknown user or media") from exc
            return True

    def remove(self, *, user_id: int, media_id: int) -> bool:
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="Mark"):
                result = session.execute(
                    delete(MarkModel).where(
                        MarkModel.user_id == user_id,
                        MarkModel.media_id == media_id,
                    )
                )
                session.commit()
            return result.rowcount > 0

    def exists(self, *, user_id: int, media_id: int) -> bool:
        with self._session_factory() as session:
            return session.get(MarkModel, (user_id, media_id)) is not None

    def get(self, *, user_id: int, media_id: int) -> Mark | None:
        with self._session_factory() as session:
            model = session.get(MarkModel, (user_id, media_id))
            return self._to_domain(model) if model is not None else None

    def marked_by(self, media_id: int) -> set[int]:
        """User ids that marked ``media_id``."""
        with self._session_factory() as session:
            return set(
                session.scalars(select(MarkModel.user_id).where(MarkModel.media_id == media_id))
            )

    def marked_media(self, user_id: int) -> set[int]:
        with self._session_factory() as session:
            return set(
                session.scalars(select(MarkModel.media_id).where(MarkModel.user_id == user_id))
            )

    def counts_by_media(self, user_ids: Collection[int]) -> dict[int, int]:
        """Number of marks per item, counting only ``user_ids``."""
        if not user_ids:
            return {}
        with self._session_factory() as session:
            rows = session.execute(
                select(MarkModel.media_id, func.count(MarkModel.user_id))
                .where(MarkModel.user_id.in_(list(user_ids)))
                .group_by(MarkModel.media_id)
            ).all()
        return {media_id: count for media_id, count in rows}

    def media_marked_by_all(self, user_ids: Collection[int]) -> list[int]:
        """Items marked by every user in ``user_ids`` (empty set matches nothing)."""
        if not user_ids:
            return []
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(MarkModel.media_id)
                    .where(MarkModel.user_id.in_(list(user_ids)))
                    .group_by(MarkModel.media_id)
                    .having(func.count(func.distinct(MarkModel.user_id)) == len(set(user_ids)))
                    .order_by(MarkModel.media_id)
                )
            )

    @staticmethod
    def _to_domain(model: MarkModel) -> Mark:
        return Mark(user_id=model.user_id, media_id=model.media_id, marked_at=model.marked_at)


__all__ = ["MarkRepository"]
