"""Database initialization helpers."""

from __future__ import annotations

import secrets

import structlog
from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..security.passwords import hash_password
from .db_models import Base, UserModel
from .db_session import enable_sqlite_foreign_keys

logger = structlog.get_logger(__name__)

_MEDIA_REBUILD_DDL = """
CREATE TABLE media_new (
    id INTEGER NOT NULL,
    media_type VARCHAR(16) NOT NULL,
    title VARCHAR(512) NOT NULL,
    year INTEGER,
    season INTEGER,
    path VARCHAR(4096) NOT NULL,
    size_bytes BIGINT NOT NULL,
    status VARCHAR(16) NOT NULL,
    trashed_at DATETIME,
    first_seen DATETIME NOT NULL,
    last_seen DATETIME NOT NULL,
    CONSTRAINT pk_media PRIMARY KEY (id),
    CONSTRAINT uq_media_path UNIQUE (path),
    CONSTRAINT ck_media_status CHECK (status IN ('active', 'trashed', 'permanent', 'gone')),
    CONSTRAINT ck_media_media_type CHECK (media_type IN ('movie', 'tv_season'))
)
"""

_MEDIA_COLUMNS = (
    "id, media_type, title, year, season, path, size_bytes, status, "
    "trashed_at, first_seen, last_seen"
)


def init_db(
    engine: Engine,
    session_factory: sessionmaker[Session],
    *,
    initial_admin_user: str | None = None,
) -> str | None:
    """Create tables, upgrade legacy schemas and seed the initial admin.

    Returns the generated admin password when a new admin was created.
    """
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    _migrate_media_status_constraint(engine)

    if not initial_admin_user:
        return None
    with session_factory() as session:
        password = _seed_admin(session, initial_admin_user)
        session.commit()
    return password


def _media_table_sql(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return conn.execute(
            text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'media'")
        ).scalar()


def _migrate_media_status_constraint(engine: Engine) -> None:
    """Rebuild a legacy SQLite ``media`` table whose status check lacks ``permanent``."""
    if engine.dialect.name != "sqlite":
        return
    ddl = _media_table_sql(engine)
    if not ddl or "'permanent'" in ddl:
        return

    logger.info("db.migrate.media_status", action="rebuild")
    with engine.connect() as conn:
        # foreign_keys cannot change inside a transaction
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        conn.commit()
        conn.exec_driver_sql(_MEDIA_REBUILD_DDL)
        conn.exec_driver_sql(
            f"INSERT INTO media_new ({_MEDIA_COLUMNS}) SELECT {_MEDIA_COLUMNS} FROM media"
        )
        conn.exec_driver_sql("DROP TABLE media")
        conn.exec_driver_sql("ALTER TABLE media_new RENAME TO media")
        conn.exec_driver_sql("CREATE INDEX IF NOT EXISTS ix_media_status ON media (status)")
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()


def _seed_admin(session: Session, username: str) -> str | None:
    existing = session.scalar(select(UserModel).where(UserModel.username == username))
    if existing is not None:
        return None
    password = secrets.token_urlsafe(12)
    session.add(
        UserModel(
            username=username,
            password_hash=hash_password(password),
            is_admin=True,
        )
    )
    logger.warning(
        "db.seed.admin_created",
        username=username,
        password=password,
        hint="change this password after first login",
    )
    return password


__all__ = ["init_db"]
