from __future__ import annotations

import pytest

from src.rewinder.domain.models import MediaStatus
from src.rewinder.exceptions import InvalidTransitionError, MoveError
from tests.conftest import MOVIES_ROOT

pytestmark = pytest.mark.unit

SOURCE = MOVIES_ROOT / "Interstellar (2014)"
TRASHED = MOVIES_ROOT.with_name("Movies_trash") / "Interstellar (2014)"
PERMANENT = MOVIES_ROOT.with_name("Movies_permanent") / "Interstellar (2014)"


@pytest.fixture()
def item(engine, storage):
    storage.add_item(SOURCE)
    return engine.scan().discovered[0]


@pytest.fixture()
def users(engine):
    return engine.user_repo.create("alice"), engine.user_repo.create("bob")


def test_persist_active_item(engine, storage, item, users, clock) -> None:
    alice, _bob = users

    result = engine.persist(alice.id, item.id)

    assert result.created is True
    assert result.record.user_id == alice.id
    assert result.record.persisted_at == clock.now
    stored = engine.media_repo.get(item.id)
    assert (stored.status, stored.path) == (MediaStatus.PERMANENT, PERMANENT)
    assert storage.exists(PERMANENT)


def test_persist_is_idempotent_and_keeps_first_persister(engine, item, users) -> None:
    alice, bob = users
    engine.persist(alice.id, item.id)

    again = engine.persist(bob.id, item.id)

    assert again.created is False
    assert again.record.user_id == alice.id
    assert engine.persist(alice.id, item.id).created is False


def test_persist_rescues_trashed_item(engine, storage, item, users) -> None:
    alice, bob = users
    engine.mark(alice.id, item.id)
    engine.mark(bob.id, item.id)
    assert storage.exists(TRASHED)

    result = engine.persist(bob.id, item.id)

    assert result.created is True
    stored = engine.media_repo.get(item.id)
    assert stored.status is MediaStatus.PERMANENT
    assert stored.trashed_at is None
    assert storage.exists(PERMANENT) and not storage.exists(TRASHED)


def test_persist_gone_item_is_rejected(engine, storage, item, users, clock) -> None:
    alice, _bob = users
    storage.delete(SOURCE)
    clock.advance(hours=1)
    engine.scan()

    with pytest.raises(InvalidTransitionError):
        engine.persist(alice.id, item.id)


def test_persist_move_failure_is_reported(engine, storage, item, users) -> None:
    alice, _bob = users
    storage.fail_moves[SOURCE] = MoveError("read-only filesystem")

    result = engine.persist(alice.id, item.id)

    assert result.created is False
    assert isinstance(result.error, MoveError)
    assert engine.persistent_repo.get(item.id) is None
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_persist_retries_after_concurrent_trash(engine, storage, item, users) -> None:
    alice, _bob = users

    def concurrent_trash(src, dst):
        storage.before_move = None
        engine.executor.to_trash(engine.media_repo.get(item.id))

    storage.before_move = concurrent_trash

    result = engine.persist(alice.id, item.id)

    assert result.created is True
    assert storage.moves == [(SOURCE, TRASHED), (TRASHED, PERMANENT)]
    assert engine.media_repo.get(item.id).status is MediaStatus.PERMANENT
