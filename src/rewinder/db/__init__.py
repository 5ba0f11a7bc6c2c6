"""Database models and utilities for the media store."""

from .db_models import (
    Base,
    MarkModel,
    MediaModel,
    PersistentMediaModel,
    SessionModel,
    UserModel,
)

__all__ = [
    "Base",
    "MarkModel",
    "MediaModel",
    "PersistentMediaModel",
    "SessionModel",
    "UserModel",
]
