"""Domain models for the media lifecycle engine.

The module exposes lightweight dataclasses and enums shared by repositories
and services. ``MediaStatus`` is a closed set and every status change must go
through :func:`ensure_transition`, which encodes the lifecycle table:

    active -> trashed | permanent | gone
    trashed -> permanent | gone
    gone -> active          (rediscovered by the scanner)
    permanent               (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from ..exceptions import InvalidTransitionError


class MediaKind(str, Enum):
    """Kind of tracked unit: a movie folder or a single TV season folder."""

    MOVIE = "movie"
    TV_SEASON = "tv_season"


class MediaStatus(str, Enum):
    """Lifecycle states stored in ``media.status``."""

    ACTIVE = "active"
    TRASHED = "trashed"
    PERMANENT = "permanent"
    GONE = "gone"


class StorageTier(str, Enum):
    """Sibling directory a library item can live in."""

    ACTIVE = "active"
    TRASH = "trash"
    PERMANENT = "permanent"


ALLOWED_TRANSITIONS: dict[MediaStatus, frozenset[MediaStatus]] = {
    MediaStatus.ACTIVE: frozenset(
        {MediaStatus.TRASHED, MediaStatus.PERMANENT, MediaStatus.GONE}
    ),
    MediaStatus.TRASHED: frozenset({MediaStatus.PERMANENT, MediaStatus.GONE}),
    MediaStatus.GONE: frozenset({MediaStatus.ACTIVE}),
    MediaStatus.PERMANENT: frozenset(),
}


def ensure_transition(current: MediaStatus | str, target: MediaStatus | str) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is allowed."""

    try:
        current_status = MediaStatus(current)
        target_status = MediaStatus(target)
    except ValueError as exc:
        raise InvalidTransitionError(str(exc)) from exc
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"transition {current_status.value} -> {target_status.value} is not allowed"
        )


@dataclass(slots=True)
class MediaItem:
    """One tracked movie or TV season folder."""

    id: int
    kind: MediaKind
    title: str
    path: Path
    size_bytes: int
    status: MediaStatus
    first_seen: datetime
    last_seen: datetime
    year: int | None = None
    season: int | None = None
    trashed_at: datetime | None = None

    @property
    def display_name(self) -> str:
        if self.kind is MediaKind.TV_SEASON:
            return f"{self.title} - Season {self.season}"
        if self.year is not None:
            return f"{self.title} ({self.year})"
        return self.title


@dataclass(slots=True)
class Mark:
    """A user's declaration that an item is no longer needed."""

    user_id: int
    media_id: int
    marked_at: datetime


@dataclass(slots=True)
class PersistentRecord:
    """Exemption of an item from deletion, recording the first persister."""

    media_id: int
    user_id: int
    persisted_at: datetime


@dataclass(slots=True)
class User:
    """Read-only view of a registered library user."""

    id: int
    username: str
    is_admin: bool
    created_at: datetime


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
