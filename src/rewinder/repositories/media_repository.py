"""Persistence layer for media items.

Every status change goes through :meth:`MediaRepository.transition`, a
conditional ``UPDATE ... WHERE id = :id AND status = :expected``. A zero
rowcount means another actor changed the row first; callers treat that as a
lost race, never as an error.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.db_models import MediaModel, PersistentMediaModel
from ..domain.models import MediaItem, MediaKind, MediaStatus, ensure_transition
from ..domain.naming import ParsedMedia
from ..exceptions import (
    PathCollisionError,
    ensure_found,
    handle_sqlalchemy_errors,
)


def _under(root: Path):
    """SQL predicate matching ``root`` itself and everything below it."""

    prefix = str(root).rstrip(os.sep) + os.sep
    return or_(
        MediaModel.path == str(root),
        MediaModel.path.startswith(prefix, autoescape=True),
    )


class MediaRepository:
    """Store and mutate ``media`` rows."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, media_id: int) -> MediaItem:
        with self._session_factory() as session:
            model = ensure_found(
                session.get(MediaModel, media_id), entity="Media", identifier=media_id
            )
            return self._to_domain(model)

    def find(self, media_id: int) -> MediaItem | None:
        with self._session_factory() as session:
            model = session.get(MediaModel, media_id)
            return self._to_domain(model) if model is not None else None

    def get_by_path(self, path: Path) -> MediaItem | None:
        with self._session_factory() as session:
            model = session.scalar(select(MediaModel).where(MediaModel.path == str(path)))
            return self._to_domain(model) if model is not None else None

    def insert(
        self,
        *,
        parsed: ParsedMedia,
        path: Path,
        size_bytes: int,
        seen_at: datetime,
    ) -> MediaItem:
        """Insert a newly discovered item as ``active``."""
        with self._session_factory() as session:
            model = MediaModel(
                media_type=parsed.kind.value,
                title=parsed.title,
                year=parsed.year if parsed.kind is MediaKind.MOVIE else None,
                season=parsed.season if parsed.kind is MediaKind.TV_SEASON else None,
                path=str(path),
                size_bytes=size_bytes,
                status=MediaStatus.ACTIVE.value,
                trashed_at=None,
                first_seen=seen_at,
                last_seen=seen_at,
            )
            session.add(model)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise PathCollisionError(path) from exc
            return self._to_domain(model)

    def refresh_seen(self, media_id: int, *, size_bytes: int, seen_at: datetime) -> bool:
        """Update size and ``last_seen`` of an active row found on disk."""
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="Media"):
                result = session.execute(
                    update(MediaModel)
                    .where(
                        MediaModel.id == media_id,
                        MediaModel.status == MediaStatus.ACTIVE.value,
                    )
                    .values(size_bytes=size_bytes, last_seen=seen_at)
                )
                session.commit()
            return result.rowcount == 1

    def transition(
        self,
        media_id: int,
        *,
        expected: MediaStatus,
        target: MediaStatus,
        at: datetime,
        path: Path | None = None,
        size_bytes: int | None = None,
        persisted_by: int | None = None,
    ) -> bool:
        """Compare-and-set the status of one row.

        ``at`` becomes ``trashed_at`` for trash, ``persisted_at`` for
        permanent and ``first_seen``/``last_seen`` on revival. A stale ``gone``
        row already holding ``path`` is removed in the same transaction.
        Returns ``False`` when the row was no longer in ``expected``.
        """
        ensure_transition(expected, target)
        if target is MediaStatus.PERMANENT and persisted_by is None:
            raise ValueError("persisted_by is required for permanent transitions")
        values: dict = {"status": target.value}
        if path is not None:
            values["path"] = str(path)
        if size_bytes is not None:
            values["size_bytes"] = size_bytes
        if target is MediaStatus.TRASHED:
            values["trashed_at"] = at
        else:
            values["trashed_at"] = None
        if target is MediaStatus.ACTIVE:
            values["first_seen"] = at
            values["last_seen"] = at

        with self._session_factory() as session:
            try:
                if path is not None:
                    session.execute(
                        delete(MediaModel).where(
                            MediaModel.path == str(path),
                            MediaModel.status == MediaStatus.GONE.value,
                            MediaModel.id != media_id,
                        )
                    )
                result = session.execute(
                    update(MediaModel)
                    .where(
                        MediaModel.id == media_id,
                        MediaModel.status == expected.value,
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    session.rollback()
                    return False
                if target is MediaStatus.PERMANENT:
                    if session.get(PersistentMediaModel, media_id) is None:
                        session.add(
                            PersistentMediaModel(
                                media_id=media_id, user_id=persisted_by, persisted_at=at
                            )
                        )
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if path is not None:
                    raise PathCollisionError(path) from exc
                raise
            return True

    def sweep_unseen(
        self,
        root: Path,
        *,
        before: datetime,
        excluded: Iterable[Path] = (),
    ) -> list[MediaItem]:
        """Retire active rows under ``root`` that the last walk did not see."""
        excluded = list(excluded)
        swept: list[MediaItem] = []
        with self._session_factory() as session:
            query = select(MediaModel).where(
                _under(root),
                MediaModel.status == MediaStatus.ACTIVE.value,
                MediaModel.last_seen < before,
            )
            for skipped in excluded:
                query = query.where(~_under(skipped))
            candidates = session.scalars(query).all()
            for model in candidates:
                result = session.execute(
                    update(MediaModel)
                    .where(
                        MediaModel.id == model.id,
                        MediaModel.status == MediaStatus.ACTIVE.value,
                        MediaModel.last_seen < before,
                    )
                    .values(status=MediaStatus.GONE.value, trashed_at=None)
                )
                if result.rowcount == 1:
                    item = self._to_domain(model)
                    item.status = MediaStatus.GONE
                    swept.append(item)
            session.commit()
        return swept

    def list_media(
        self,
        *,
        kinds: Iterable[MediaKind] | None = None,
        statuses: Iterable[MediaStatus] | None = None,
        ids: Iterable[int] | None = None,
    ) -> list[MediaItem]:
        with self._session_factory() as session:
            query = select(MediaModel)
            if kinds is not None:
                query = query.where(MediaModel.media_type.in_([kind.value for kind in kinds]))
            if statuses is not None:
                query = query.where(MediaModel.status.in_([status.value for status in statuses]))
            if ids is not None:
                query = query.where(MediaModel.id.in_(list(ids)))
            query = query.order_by(MediaModel.title, MediaModel.year, MediaModel.season, MediaModel.id)
            return [self._to_domain(model) for model in session.scalars(query)]

    def list_expired_trash(self, cutoff: datetime) -> list[MediaItem]:
        """Trashed rows with ``trashed_at <= cutoff``, oldest first."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(MediaModel)
                .where(
                    MediaModel.status == MediaStatus.TRASHED.value,
                    MediaModel.trashed_at.is_not(None),
                    MediaModel.trashed_at <= cutoff,
                )
                .order_by(MediaModel.trashed_at, MediaModel.id)
            ).all()
            return [self._to_domain(row) for row in rows]

    def count_by_status(self) -> dict[MediaStatus, int]:
        with self._session_factory() as session:
            rows = session.execute(
                select(MediaModel.status, func.count()).group_by(MediaModel.status)
            ).all()
        counts = {status: 0 for status in MediaStatus}
        for status, count in rows:
            counts[MediaStatus(status)] = count
        return counts

    def total_size(self, status: MediaStatus) -> int:
        with self._session_factory() as session:
            total = session.scalar(
                select(func.coalesce(func.sum(MediaModel.size_bytes), 0)).where(
                    MediaModel.status == status.value
                )
            )
        return int(total or 0)

    @staticmethod
    def _to_domain(model: MediaModel) -> MediaItem:
        return MediaItem(
            id=model.id,
            kind=MediaKind(model.media_type),
            title=model.title,
            year=model.year,
            season=model.season,
            path=Path(model.path),
            size_bytes=model.size_bytes,
            status=MediaStatus(model.status),
            trashed_at=model.trashed_at,
            first_seen=model.first_seen,
            last_seen=model.last_seen,
        )


__all__ = ["MediaRepository"]
