"""Domain level exceptions and helpers for repository layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "ConfigError",
    "RepositoryError",
    "NotFoundError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "InvalidTransitionError",
    "NamingParseError",
    "ScanError",
    "PathCollisionError",
    "StorageError",
    "MoveError",
    "MoveTimeoutError",
    "RaceLostError",
    "ConsensusRaceLoss",
    "ReapRaceLoss",
    "ensure_found",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for application specific errors."""


class ConfigError(AppError):
    """Raised at startup when the store or a media root is unusable."""


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class NotFoundError(RepositoryError):
    """Raised when a record could not be located."""


class IntegrityConstraintViolation(RepositoryError):
    """Raised when a database constraint is violated."""


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


class InvalidTransitionError(AppError, ValueError):
    """Raised when a status change is outside the lifecycle table."""


class NamingParseError(AppError):
    """A path does not follow the library naming convention."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class ScanError(AppError):
    """A directory could not be read while scanning; its subtree is skipped."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class PathCollisionError(IntegrityConstraintViolation):
    """A discovered path violates the unique path constraint."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"media path already taken: {path}")
        self.path = Path(path)


class StorageError(AppError):
    """Filesystem failure while touching tier storage."""


class MoveError(StorageError):
    """A relocation failed; the source is left in place."""


class MoveTimeoutError(MoveError):
    """A single relocation exceeded its time budget."""


class RaceLostError(AppError):
    """A compare-and-set predicate failed because another actor won."""


class ConsensusRaceLoss(RaceLostError):
    """Another actor already moved the item out of ``active``."""


class ReapRaceLoss(RaceLostError):
    """The item left ``trashed`` before the reaper could finalize it."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def ensure_found(record: object | None, *, entity: str, identifier: object) -> object:
    """Ensure a record exists, otherwise raise :class:`NotFoundError`."""

    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> RepositoryError:
    if isinstance(exc, sa_exc.IntegrityError):
        return IntegrityConstraintViolation(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return DatabaseOperationError(context.format("database operation failed"))
    return RepositoryError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
