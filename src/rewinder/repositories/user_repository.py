"""Persistence layer for users and their sessions."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.db_models import SessionModel, UserModel
from ..domain.models import User
from ..exceptions import (
    IntegrityConstraintViolation,
    ensure_found,
    handle_sqlalchemy_errors,
)


class UserRepository:
    """Read and remove ``users`` rows; creation is for collaborators and seeding."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        username: str,
        *,
        is_admin: bool = False,
        password_hash: str | None = None,
        created_at: datetime | None = None,
    ) -> User:
        with self._session_factory() as session:
            model = UserModel(
                username=username,
                is_admin=is_admin,
                password_hash=password_hash,
            )
            if created_at is not None:
                model.created_at = created_at
            session.add(model)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise IntegrityConstraintViolation(
                    f"User: username '{username}' already exists"
                ) from exc
            return self._to_domain(model)

    def get(self, user_id: int) -> User:
        with self._session_factory() as session:
            model = ensure_found(session.get(UserModel, user_id), entity="User", identifier=user_id)
            return self._to_domain(model)

    def exists(self, user_id: int) -> bool:
        with self._session_factory() as session:
            return session.get(UserModel, user_id) is not None

    def list_users(self) -> list[User]:
        with self._session_factory() as session:
            rows = session.scalars(select(UserModel).order_by(UserModel.id)).all()
            return [self._to_domain(row) for row in rows]

    def user_ids(self, *, include_admins: bool = True) -> set[int]:
        with self._session_factory() as session:
            query = select(UserModel.id)
            if not include_admins:
                query = query.where(UserModel.is_admin.is_(False))
            return set(session.scalars(query))

    def count(self) -> int:
        with self._session_factory() as session:
            return int(session.scalar(select(func.count()).select_from(UserModel)) or 0)

    def delete(self, user_id: int) -> bool:
        """Delete a user; marks, sessions and persistent records cascade."""
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="User"):
                result = session.execute(delete(UserModel).where(UserModel.id == user_id))
                session.commit()
            return result.rowcount > 0

    @staticmethod
    def _to_domain(model: UserModel) -> User:
        return User(
            id=model.id,
            username=model.username,
            is_admin=model.is_admin,
            created_at=model.created_at,
        )


class SessionRepository:
    """Session rows are issued by the auth layer; maintenance only purges them."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(self, *, token: str, user_id: int, expires_at: datetime) -> None:
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="Session"):
                session.add(SessionModel(token=token, user_id=user_id, expires_at=expires_at))
                session.commit()

    def exists(self, token: str) -> bool:
        with self._session_factory() as session:
            return session.get(SessionModel, token) is not None

    def purge_expired(self, now: datetime) -> int:
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="Session"):
                result = session.execute(delete(SessionModel).where(SessionModel.expires_at <= now))
                session.commit()
            return result.rowcount


__all__ = ["SessionRepository", "UserRepository"]
