"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db
from .db.db_session import create_db_engine, create_session_factory
from .domain.models import StorageTier
from .exceptions import ConfigError
from .media.layout import LibraryLayout
from .services.consensus import EligibilityPolicy


class AppConfig(BaseSettings):
    """Environment driven settings (``REWINDER_*``, optionally from ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="REWINDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///rewinder.db",
        description="SQLAlchemy URL of the item store.",
    )
    media_dirs: Annotated[list[Path], NoDecode] = Field(
        default_factory=list,
        description="Active library roots; comma separated in the environment.",
    )
    grace_period_days: float = Field(
        default=7,
        ge=0,
        description="Days a trashed item is kept before the reaper deletes it.",
    )
    cleanup_interval_hours: float = Field(
        default=1,
        ge=0,
        description="Reaper cadence in hours; 0 disables the reaper job.",
    )
    scan_interval_hours: float = Field(
        default=1,
        gt=0,
        description="Library scan cadence in hours.",
    )
    eligible_users: EligibilityPolicy = Field(
        default=EligibilityPolicy.ALL,
        description="Which users count towards consensus: all or non_admin.",
    )
    move_timeout_seconds: float = Field(
        default=3600,
        gt=0,
        description="Upper bound for one cross-device copy.",
    )
    watch_enabled: bool = Field(
        default=True,
        description="Rescan a library root when folders appear in or vanish from it.",
    )
    watch_settle_seconds: float = Field(
        default=5,
        ge=0,
        description="Quiet period after the last filesystem event before the rescan.",
    )
    initial_admin_user: str | None = Field(
        default=None,
        description="Username of an admin to create on first start.",
    )
    log_level: str = Field(default="INFO")

    @field_validator("media_dirs", mode="before")
    @classmethod
    def _split_media_dirs(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def grace_period(self) -> timedelta:
        return timedelta(days=self.grace_period_days)


@dataclass(slots=True)
class RuntimeConfig:
    settings: AppConfig
    engine: Engine
    session_factory: sessionmaker[Session]
    layout: LibraryLayout
    admin_password: str | None = None


def _ensure_media_dirs(layout: LibraryLayout) -> None:
    """Check every active root and create its trash and permanent siblings."""
    for library in layout.libraries:
        root = library.root
        if not root.is_dir():
            raise ConfigError(f"media dir does not exist or is not a directory: {root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise ConfigError(f"media dir is not readable: {root}")
        if not os.access(root, os.W_OK):
            raise ConfigError(f"media dir is not writable: {root}")
        for tier in (StorageTier.TRASH, StorageTier.PERMANENT):
            tier_root = library.tier_root(tier)
            try:
                tier_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigError(f"cannot create {tier_root}: {exc}") from exc
            if not os.access(tier_root, os.W_OK):
                raise ConfigError(f"{tier.value} dir is not writable: {tier_root}")


def load_config(settings: AppConfig | None = None) -> RuntimeConfig:
    """Load settings, validate media dirs and prepare the database."""
    if settings is None:
        try:
            settings = AppConfig()
        except ValidationError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc

    layout = LibraryLayout(settings.media_dirs)
    _ensure_media_dirs(layout)

    try:
        engine = create_db_engine(settings.database_url)
        session_factory = create_session_factory(engine)
        admin_password = init_db(
            engine,
            session_factory,
            initial_admin_user=settings.initial_admin_user,
        )
    except SQLAlchemyError as exc:
        raise ConfigError(f"database unavailable: {exc}") from exc

    return RuntimeConfig(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        layout=layout,
        admin_password=admin_password,
    )


__all__ = ["AppConfig", "RuntimeConfig", "load_config"]
