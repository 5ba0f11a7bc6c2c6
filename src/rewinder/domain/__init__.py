"""Domain layer: lifecycle enums, records and pure helpers."""

from .models import (
    ALLOWED_TRANSITIONS,
    Mark,
    MediaItem,
    MediaKind,
    MediaStatus,
    PersistentRecord,
    StorageTier,
    User,
    ensure_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Mark",
    "MediaItem",
    "MediaKind",
    "MediaStatus",
    "PersistentRecord",
    "StorageTier",
    "User",
    "ensure_transition",
]
