from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.rewinder.domain.models import MediaKind, MediaStatus
from src.rewinder.domain.naming import ParsedMedia
from src.rewinder.exceptions import InvalidTransitionError, NotFoundError, PathCollisionError
from src.rewinder.repositories.media_repository import MediaRepository
from src.rewinder.repositories.persistent_repository import PersistentMediaRepository
from src.rewinder.repositories.user_repository import UserRepository

pytestmark = pytest.mark.unit

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
ROOT = Path("/srv/media/Movies")
HEAT = ParsedMedia(kind=MediaKind.MOVIE, title="Heat", year=1995)


def _insert(repo: MediaRepository, name: str, *, root: Path = ROOT, seen_at: datetime = NOW):
    return repo.insert(
        parsed=ParsedMedia(kind=MediaKind.MOVIE, title=name),
        path=root / name,
        size_bytes=100,
        seen_at=seen_at,
    )


def test_insert_and_lookup(session_factory) -> None:
    repo = MediaRepository(session_factory)

    item = repo.insert(parsed=HEAT, path=ROOT / "Heat (1995)", size_bytes=42, seen_at=NOW)

    assert item.status is MediaStatus.ACTIVE
    assert item.first_seen == NOW and item.last_seen == NOW
    assert repo.get(item.id) == item
    assert repo.get_by_path(ROOT / "Heat (1995)") == item
    assert repo.find(item.id + 1) is None
    with pytest.raises(NotFoundError):
        repo.get(item.id + 1)


def test_insert_duplicate_path_raises_collision(session_factory) -> None:
    repo = MediaRepository(session_factory)
    repo.insert(parsed=HEAT, path=ROOT / "Heat (1995)", size_bytes=1, seen_at=NOW)

    with pytest.raises(PathCollisionError) as excinfo:
        repo.insert(parsed=HEAT, path=ROOT / "Heat (1995)", size_bytes=1, seen_at=NOW)

    assert excinfo.value.path == ROOT / "Heat (1995)"


def test_transition_is_compare_and_set(session_factory) -> None:
    repo = MediaRepository(session_factory)
    item = _insert(repo, "Heat")
    trash_path = Path("/srv/media/Movies_trash/Heat")
    later = NOW + timedelta(hours=1)

    assert repo.transition(
        item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.TRASHED, at=later, path=trash_path
    )
    assert not repo.transition(
        item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.TRASHED, at=later
    )

    stored = repo.get(item.id)
    assert stored.status is MediaStatus.TRASHED
    assert stored.trashed_at == later
    assert stored.path == trash_path


def test_transition_rejects_forbidden_edges(session_factory) -> None:
    repo = MediaRepository(session_factory)
    item = _insert(repo, "Heat")

    with pytest.raises(InvalidTransitionError):
        repo.transition(item.id, expected=MediaStatus.TRASHED, target=MediaStatus.ACTIVE, at=NOW)


def test_permanent_transition_records_persister(session_factory) -> None:
    repo = MediaRepository(session_factory)
    user = UserRepository(session_factory).create("alice")
    item = _insert(repo, "Heat")

    with pytest.raises(ValueError):
        repo.transition(item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.PERMANENT, at=NOW)

    assert repo.transition(
        item.id,
        expected=MediaStatus.ACTIVE,
        target=MediaStatus.PERMANENT,
        at=NOW,
        persisted_by=user.id,
    )
    record = PersistentMediaRepository(session_factory).get(item.id)
    assert record is not None
    assert record.user_id == user.id
    assert record.persisted_at == NOW
    assert repo.get(item.id).trashed_at is None


def test_transition_replaces_stale_gone_row_at_destination(session_factory) -> None:
    repo = MediaRepository(session_factory)
    stale = repo.insert(
        parsed=HEAT, path=Path("/srv/media/Movies_trash/Heat"), size_bytes=1, seen_at=NOW
    )
    repo.transition(stale.id, expected=MediaStatus.ACTIVE, target=MediaStatus.GONE, at=NOW)
    item = _insert(repo, "Heat")

    assert repo.transition(
        item.id,
        expected=MediaStatus.ACTIVE,
        target=MediaStatus.TRASHED,
        at=NOW,
        path=Path("/srv/media/Movies_trash/Heat"),
    )
    assert repo.find(stale.id) is None


def test_transition_onto_live_row_raises_collision(session_factory) -> None:
    repo = MediaRepository(session_factory)
    repo.insert(parsed=HEAT, path=Path("/srv/media/Movies_trash/Heat"), size_bytes=1, seen_at=NOW)
    item = _insert(repo, "Heat")

    with pytest.raises(PathCollisionError):
        repo.transition(
            item.id,
            expected=MediaStatus.ACTIVE,
            target=MediaStatus.TRASHED,
            at=NOW,
            path=Path("/srv/media/Movies_trash/Heat"),
        )
    assert repo.get(item.id).status is MediaStatus.ACTIVE


def test_revival_resets_timestamps(session_factory) -> None:
    repo = MediaRepository(session_factory)
    item = _insert(repo, "Heat")
    repo.transition(item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.GONE, at=NOW)
    later = NOW + timedelta(days=3)

    assert repo.transition(
        item.id, expected=MediaStatus.GONE, target=MediaStatus.ACTIVE, at=later, size_bytes=77
    )
    revived = repo.get(item.id)
    assert revived.first_seen == later
    assert revived.last_seen == later
    assert revived.size_bytes == 77


def test_refresh_seen_only_touches_active_rows(session_factory) -> None:
    repo = MediaRepository(session_factory)
    item = _insert(repo, "Heat")
    later = NOW + timedelta(hours=2)

    assert repo.refresh_seen(item.id, size_bytes=500, seen_at=later)
    assert repo.get(item.id).last_seen == later

    repo.transition(item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.GONE, at=later)
    assert not repo.refresh_seen(item.id, size_bytes=1, seen_at=later)


def test_sweep_unseen_respects_root_and_exclusions(session_factory) -> None:
    repo = MediaRepository(session_factory)
    seen = _insert(repo, "Seen", seen_at=NOW + timedelta(minutes=5))
    unseen = _insert(repo, "Unseen")
    hidden = _insert(repo, "Hidden")
    neighbour = _insert(repo, "Other", root=Path("/srv/media/Movies2"))

    swept = repo.sweep_unseen(
        ROOT,
        before=NOW + timedelta(minutes=5),
        excluded=[ROOT / "Hidden"],
    )

    assert [item.id for item in swept] == [unseen.id]
    assert swept[0].status is MediaStatus.GONE
    assert repo.get(seen.id).status is MediaStatus.ACTIVE
    assert repo.get(hidden.id).status is MediaStatus.ACTIVE
    assert repo.get(neighbour.id).status is MediaStatus.ACTIVE


def test_list_expired_trash_uses_inclusive_cutoff(session_factory) -> None:
    repo = MediaRepository(session_factory)
    old = _insert(repo, "Old")
    fresh = _insert(repo, "Fresh")
    repo.transition(old.id, expected=MediaStatus.ACTIVE, target=MediaStatus.TRASHED, at=NOW)
    repo.transition(
        fresh.id,
        expected=MediaStatus.ACTIVE,
        target=MediaStatus.TRASHED,
        at=NOW + timedelta(seconds=1),
    )

    assert [item.id for item in repo.list_expired_trash(NOW)] == [old.id]
    assert [item.id for item in repo.list_expired_trash(NOW + timedelta(seconds=1))] == [
        old.id,
        fresh.id,
    ]


def test_listing_and_aggregates(session_factory) -> None:
    repo = MediaRepository(session_factory)
    movie = _insert(repo, "Heat")
    season = repo.insert(
        parsed=ParsedMedia(kind=MediaKind.TV_SEASON, title="Dark", season=1),
        path=Path("/srv/media/TV Shows/Dark/Season 1"),
        size_bytes=300,
        seen_at=NOW,
    )
    repo.transition(movie.id, expected=MediaStatus.ACTIVE, target=MediaStatus.TRASHED, at=NOW)

    assert [item.id for item in repo.list_media(kinds=[MediaKind.TV_SEASON])] == [season.id]
    assert [item.id for item in repo.list_media(statuses=[MediaStatus.TRASHED])] == [movie.id]
    assert [item.id for item in repo.list_media(ids=[season.id])] == [season.id]

    counts = repo.count_by_status()
    assert counts[MediaStatus.ACTIVE] == 1
    assert counts[MediaStatus.TRASHED] == 1
    assert counts[MediaStatus.GONE] == 0
    assert repo.total_size(MediaStatus.ACTIVE) == 300
    assert repo.total_size(MediaStatus.TRASHED) == 100
