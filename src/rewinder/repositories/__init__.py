"""SQLAlchemy-backed repositories."""

from .mark_repository import MarkRepository
from .media_repository import MediaRepository
from .persistent_repository import PersistentMediaRepository
from .user_repository import SessionRepository, UserRepository

__all__ = [
    "MarkRepository",
    "MediaRepository",
    "PersistentMediaRepository",
    "SessionRepository",
    "UserRepository",
]
