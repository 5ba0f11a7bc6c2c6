from __future__ import annotations

import threading

import pytest

from src.rewinder.domain.models import MediaStatus
from src.rewinder.exceptions import MoveError, NotFoundError
from src.rewinder.services.consensus import EligibilityPolicy
from src.rewinder.services.transitions import TransitionOutcome
from tests.conftest import MOVIES_ROOT, build_engine

pytestmark = pytest.mark.unit

TRASH = MOVIES_ROOT.with_name("Movies_trash")


def _discover(engine, storage, name: str = "Interstellar (2014)"):
    storage.add_item(MOVIES_ROOT / name)
    return engine.scan().discovered[0]


def _users(engine, *names: str, is_admin: bool = False):
    return [engine.user_repo.create(name, is_admin=is_admin) for name in names]


def test_all_users_marking_trashes_the_item(engine, storage, clock) -> None:
    item = _discover(engine, storage)
    alice, bob, carol = _users(engine, "alice", "bob", "carol")

    first = engine.mark(alice.id, item.id)
    second = engine.mark(bob.id, item.id)

    assert (first.mark_count, first.eligible_count, first.transition) == (1, 3, None)
    assert (second.mark_count, second.transition) == (2, None)
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE

    clock.advance(minutes=5)
    last = engine.mark(carol.id, item.id)

    assert last.changed and last.marked
    assert last.transition is not None
    assert last.transition.outcome is TransitionOutcome.APPLIED
    trashed = engine.media_repo.get(item.id)
    assert trashed.status is MediaStatus.TRASHED
    assert trashed.path == TRASH / "Interstellar (2014)"
    assert trashed.trashed_at == clock.now
    assert storage.moves == [(MOVIES_ROOT / "Interstellar (2014)", TRASH / "Interstellar (2014)")]


def test_mark_is_idempotent(engine, storage) -> None:
    item = _discover(engine, storage)
    alice, _bob = _users(engine, "alice", "bob")

    assert engine.mark(alice.id, item.id).changed is True
    repeat = engine.mark(alice.id, item.id)

    assert repeat.changed is False
    assert repeat.marked is True
    assert repeat.mark_count == 1


def test_mark_unknown_user_or_media(engine, storage) -> None:
    item = _discover(engine, storage)
    (alice,) = _users(engine, "alice")

    with pytest.raises(NotFoundError):
        engine.mark(alice.id + 100, item.id)
    with pytest.raises(NotFoundError):
        engine.mark(alice.id, item.id + 100)


def test_unmark_only_while_active(engine, storage) -> None:
    item = _discover(engine, storage)
    alice, bob = _users(engine, "alice", "bob")
    engine.mark(alice.id, item.id)

    result = engine.unmark(alice.id, item.id)
    assert (result.changed, result.marked, result.mark_count) == (True, False, 0)
    assert engine.unmark(alice.id, item.id).changed is False

    engine.mark(alice.id, item.id)
    engine.mark(bob.id, item.id)
    assert engine.media_repo.get(item.id).status is MediaStatus.TRASHED

    after_trash = engine.unmark(alice.id, item.id)
    assert after_trash.changed is False
    assert after_trash.marked is True


def test_non_admin_policy_ignores_admin_marks(session_factory, storage, clock) -> None:
    engine = build_engine(session_factory, storage, clock, policy=EligibilityPolicy.NON_ADMIN)
    item = _discover(engine, storage)
    (admin,) = _users(engine, "root", is_admin=True)
    (viewer,) = _users(engine, "viewer")

    admin_mark = engine.mark(admin.id, item.id)
    assert (admin_mark.mark_count, admin_mark.eligible_count) == (0, 1)
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE

    engine.mark(viewer.id, item.id)
    assert engine.media_repo.get(item.id).status is MediaStatus.TRASHED


def test_no_eligible_users_never_reaches_consensus(session_factory, storage, clock) -> None:
    engine = build_engine(session_factory, storage, clock, policy=EligibilityPolicy.NON_ADMIN)
    item = _discover(engine, storage)
    (admin,) = _users(engine, "root", is_admin=True)

    result = engine.mark(admin.id, item.id)

    assert result.eligible_count == 0
    assert result.transition is None
    assert engine.sweep_consensus().checked == 0
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE


def test_failed_move_keeps_mark_and_sweep_retries(engine, storage) -> None:
    item = _discover(engine, storage)
    (alice,) = _users(engine, "alice")
    storage.fail_moves[item.path] = MoveError("disk full")

    result = engine.mark(alice.id, item.id)

    assert isinstance(result.error, MoveError)
    assert result.changed and result.marked
    assert engine.media_repo.get(item.id).status is MediaStatus.ACTIVE

    storage.fail_moves.clear()
    report = engine.sweep_consensus()

    assert [entry.media_id for entry in report.trashed] == [item.id]
    assert engine.media_repo.get(item.id).status is MediaStatus.TRASHED


def test_removing_last_holdout_triggers_consensus(engine, storage) -> None:
    item = _discover(engine, storage)
    alice, bob = _users(engine, "alice", "bob")
    engine.mark(alice.id, item.id)

    report = engine.remove_user(bob.id)

    assert [entry.media_id for entry in report.trashed] == [item.id]
    assert engine.media_repo.get(item.id).status is MediaStatus.TRASHED


def test_concurrent_final_marks_move_the_item_once(file_session_factory, storage, clock) -> None:
    engine = build_engine(file_session_factory, storage, clock)
    item = _discover(engine, storage)
    users = _users(engine, "alice", "bob", "carol")
    barrier = threading.Barrier(len(users))
    results = []
    errors = []

    def mark(user_id: int) -> None:
        barrier.wait()
        try:
            results.append(engine.mark(user_id, item.id))
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=mark, args=(user.id,)) for user in users]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(results) == 3
    assert len(storage.moves) == 1
    assert engine.mark_repo.marked_by(item.id) == {user.id for user in users}
    assert engine.media_repo.get(item.id).status is MediaStatus.TRASHED
    applied = [result for result in results if result.transition and result.transition.applied]
    assert len(applied) == 1
