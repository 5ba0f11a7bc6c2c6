"""Read access to ``persistent_media``.

Records are written by :meth:`MediaRepository.transition` in the same
transaction that flips an item to ``permanent``.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import PersistentMediaModel
from ..domain.models import PersistentRecord


class PersistentMediaRepository:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, media_id: int) -> PersistentRecord | None:
        with self._session_factory() as session:
            model = session.get(PersistentMediaModel, media_id)
            if model is None:
                return None
            return PersistentRecord(
                media_id=model.media_id,
                user_id=model.user_id,
                persisted_at=model.persisted_at,
            )

    def exists(self, media_id: int) -> bool:
        with self._session_factory() as session:
            return session.get(PersistentMediaModel, media_id) is not None

    def persisted_by(self, user_id: int) -> set[int]:
        with self._session_factory() as session:
            return set(
                session.scalars(
                    select(PersistentMediaModel.media_id).where(
                        PersistentMediaModel.user_id == user_id
                    )
                )
            )


__all__ = ["PersistentMediaRepository"]
