from __future__ import annotations

from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.rewinder.db.db_init import init_db
from src.rewinder.db.db_session import create_db_engine, create_session_factory
from src.rewinder.services.consensus import EligibilityPolicy
from src.rewinder.services.engine import LifecycleEngine
from tests.mocks.clock import FakeClock
from tests.mocks.storage import InMemoryMediaStorage

MOVIES_ROOT = Path("/srv/media/Movies")
TV_ROOT = Path("/srv/media/TV Shows")
GRACE_PERIOD = timedelta(days=7)


def build_engine(
    session_factory: sessionmaker[Session],
    storage: InMemoryMediaStorage,
    clock: FakeClock,
    *,
    policy: EligibilityPolicy = EligibilityPolicy.ALL,
    media_dirs: tuple[Path, ...] = (MOVIES_ROOT, TV_ROOT),
) -> LifecycleEngine:
    return LifecycleEngine(
        session_factory=session_factory,
        media_dirs=media_dirs,
        storage=storage,
        clock=clock,
        grace_period=GRACE_PERIOD,
        policy=policy,
    )


@pytest.fixture()
def db_engine() -> Iterator[Engine]:
    engine = create_db_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    factory = create_session_factory(db_engine)
    init_db(db_engine, factory)
    return factory


@pytest.fixture()
def file_session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    """File backed store for tests that hit the database from several threads."""

    engine = create_db_engine(f"sqlite:///{tmp_path / 'rewinder.db'}")
    factory = create_session_factory(engine)
    init_db(engine, factory)
    yield factory
    engine.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def storage() -> InMemoryMediaStorage:
    storage = InMemoryMediaStorage()
    for root in (MOVIES_ROOT, TV_ROOT):
        for suffix in ("", "_trash", "_permanent"):
            storage.add_dir(root.with_name(root.name + suffix))
    return storage


@pytest.fixture()
def engine(
    session_factory: sessionmaker[Session],
    storage: InMemoryMediaStorage,
    clock: FakeClock,
) -> LifecycleEngine:
    return build_engine(session_factory, storage, clock)
