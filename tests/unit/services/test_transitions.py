from __future__ import annotations

import pytest

from src.rewinder.domain.models import MediaKind, MediaStatus
from src.rewinder.domain.naming import ParsedMedia
from src.rewinder.exceptions import InvalidTransitionError, MoveError
from src.rewinder.services.transitions import TransitionOutcome
from tests.conftest import MOVIES_ROOT, TV_ROOT

pytestmark = pytest.mark.unit

SOURCE = TV_ROOT / "Dark" / "Season 1"
TRASHED = TV_ROOT.with_name("TV Shows_trash") / "Dark" / "Season 1"
PERMANENT = TV_ROOT.with_name("TV Shows_permanent") / "Dark" / "Season 1"


@pytest.fixture()
def item(engine, storage):
    storage.add_item(SOURCE, 50)
    return engine.scan().discovered[0]


def test_to_trash_moves_then_commits(engine, storage, item) -> None:
    result = engine.executor.to_trash(item)

    assert result.applied
    assert (result.source, result.destination) == (SOURCE, TRASHED)
    assert storage.exists(TRASHED) and not storage.exists(SOURCE)
    stored = engine.media_repo.get(item.id)
    assert (stored.status, stored.path, stored.size_bytes) == (MediaStatus.TRASHED, TRASHED, 50)


def test_to_permanent_from_trash(engine, storage, item) -> None:
    user = engine.user_repo.create("alice")
    trashed = engine.media_repo.get(engine.executor.to_trash(item).media_id)

    result = engine.executor.to_permanent(trashed, user_id=user.id)

    assert result.applied
    assert result.destination == PERMANENT
    stored = engine.media_repo.get(item.id)
    assert stored.status is MediaStatus.PERMANENT
    assert stored.trashed_at is None
    assert engine.persistent_repo.get(item.id).user_id == user.id


def test_stale_snapshot_is_rejected(engine, item) -> None:
    engine.executor.to_trash(item)
    trashed = engine.media_repo.get(item.id)

    with pytest.raises(InvalidTransitionError):
        engine.executor.to_trash(trashed)


def test_status_change_during_move_rolls_file_back(engine, storage, item, clock) -> None:
    def concurrent_sweep(src, dst):
        storage.before_move = None
        engine.media_repo.transition(
            item.id, expected=MediaStatus.ACTIVE, target=MediaStatus.GONE, at=clock()
        )

    storage.before_move = concurrent_sweep

    result = engine.executor.to_trash(item)

    assert result.outcome is TransitionOutcome.RACE_LOST
    assert storage.moves == [(SOURCE, TRASHED), (TRASHED, SOURCE)]
    assert storage.exists(SOURCE)
    assert engine.media_repo.get(item.id).status is MediaStatus.GONE


def test_source_taken_by_another_mover_is_a_lost_race(engine, storage, item) -> None:
    storage.move_atomic(SOURCE, TRASHED)

    result = engine.executor.to_trash(item)

    assert result.outcome is TransitionOutcome.RACE_LOST
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_source_deleted_externally_raises_move_error(engine, storage, item) -> None:
    storage.delete(SOURCE)

    with pytest.raises(MoveError, match="source missing"):
        engine.executor.to_trash(item)

    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_occupied_destination_raises_move_error(engine, storage, item) -> None:
    storage.add_item(TRASHED)

    with pytest.raises(MoveError):
        engine.executor.to_trash(item)

    assert storage.exists(SOURCE)
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_destination_tracked_by_live_row_is_moved_back(engine, storage, item, clock) -> None:
    engine.media_repo.insert(
        parsed=ParsedMedia(kind=MediaKind.TV_SEASON, title="Dark", season=1),
        path=TRASHED,
        size_bytes=1,
        seen_at=clock(),
    )

    with pytest.raises(MoveError, match="already tracked"):
        engine.executor.to_trash(item)

    assert storage.exists(SOURCE)
    assert not storage.exists(TRASHED)
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_path_outside_libraries_raises_move_error(engine, clock) -> None:
    item = engine.media_repo.insert(
        parsed=ParsedMedia(kind=MediaKind.MOVIE, title="Stray"),
        path=MOVIES_ROOT.parent.parent / "Stray",
        size_bytes=1,
        seen_at=clock(),
    )

    with pytest.raises(MoveError):
        engine.executor.to_trash(item)
