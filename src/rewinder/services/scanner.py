"""Reconcile library folders on disk with ``media`` rows."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from ..domain.models import MediaItem, MediaStatus, StorageTier
from ..domain.naming import LibraryKind, parse_media_path, parse_season_number
from ..domain.retention import Clock, utc_now
from ..exceptions import AppError, NamingParseError, PathCollisionError, ScanError
from ..infrastructure.storage import MediaStorage
from ..media.layout import Library, LibraryLayout
from ..repositories.media_repository import MediaRepository

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ScanReport:
    """Outcome of one scan pass."""

    started_at: datetime
    discovered: list[MediaItem] = field(default_factory=list)
    refreshed: int = 0
    revived: list[MediaItem] = field(default_factory=list)
    gone: list[MediaItem] = field(default_factory=list)
    missing_trash: list[MediaItem] = field(default_factory=list)
    orphaned: list[MediaItem] = field(default_factory=list)
    errors: list[AppError] = field(default_factory=list)
    aborted: bool = False

    @property
    def scan_errors(self) -> list[ScanError]:
        return [error for error in self.errors if isinstance(error, ScanError)]


@dataclass(slots=True)
class _Candidate:
    library: Library
    path: Path


@dataclass(slots=True)
class _Walk:
    library: Library
    readable: bool = True
    candidates: list[_Candidate] = field(default_factory=list)
    unreadable: list[Path] = field(default_factory=list)


class _ScanAborted(Exception):
    pass


class LibraryScanner:
    """Walk active library roots and bring the item store in line with disk."""

    def __init__(
        self,
        *,
        media_repo: MediaRepository,
        storage: MediaStorage,
        layout: LibraryLayout,
        clock: Clock | None = None,
    ) -> None:
        self._media_repo = media_repo
        self._storage = storage
        self._layout = layout
        self._clock = clock or utc_now

    def scan(
        self,
        roots: Iterable[Path] | None = None,
        *,
        stop_event: threading.Event | None = None,
    ) -> ScanReport:
        report = ScanReport(started_at=self._clock())
        libraries = self._select_libraries(roots, report)
        logger.info(
            "scan.started",
            roots=[str(library.root) for library in libraries],
            started_at=report.started_at.isoformat(),
        )

        walks: list[_Walk] = []
        try:
            for library in libraries:
                self._check_stop(stop_event)
                walk = self._walk(library, report)
                walks.append(walk)
                for candidate in walk.candidates:
                    self._check_stop(stop_event)
                    self._reconcile(candidate, walk, report)
        except _ScanAborted:
            report.aborted = True
            logger.warning("scan.aborted", processed_roots=len(walks))
            return report

        for walk in walks:
            self._sweep(walk, report)
        self._reconcile_trash(libraries, report)

        logger.info(
            "scan.completed",
            discovered=len(report.discovered),
            refreshed=report.refreshed,
            revived=len(report.revived),
            gone=len(report.gone),
            missing_trash=len(report.missing_trash),
            orphaned=len(report.orphaned),
            errors=len(report.errors),
        )
        return report

    @staticmethod
    def _check_stop(stop_event: threading.Event | None) -> None:
        if stop_event is not None and stop_event.is_set():
            raise _ScanAborted()

    def _select_libraries(self, roots: Iterable[Path] | None, report: ScanReport) -> list[Library]:
        libraries = self._layout.libraries
        if roots is None:
            return libraries
        by_root = {library.root: library for library in libraries}
        selected = []
        for root in roots:
            library = by_root.get(Path(root))
            if library is None:
                report.errors.append(ScanError(root, "not a configured library root"))
                continue
            selected.append(library)
        return selected

    def _list(self, path: Path, walk: _Walk, report: ScanReport) -> list[Path] | None:
        try:
            return self._storage.list_subdirs(path)
        except OSError as exc:
            error = ScanError(path, exc.strerror or str(exc))
            report.errors.append(error)
            walk.unreadable.append(path)
            logger.warning("scan.unreadable", path=str(path), error=str(exc))
            return None

    def _walk(self, library: Library, report: ScanReport) -> _Walk:
        walk = _Walk(library=library)
        top_level = self._list(library.root, walk, report)
        if top_level is None:
            walk.readable = False
            return walk

        for entry in top_level:
            if library.kind is LibraryKind.MOVIES:
                walk.candidates.append(_Candidate(library, entry))
                continue
            children = self._list(entry, walk, report)
            if children is None:
                continue
            seasons = [child for child in children if parse_season_number(child.name) is not None]
            if seasons:
                walk.candidates.extend(_Candidate(library, season) for season in seasons)
            elif library.kind is LibraryKind.MIXED:
                walk.candidates.append(_Candidate(library, entry))
            else:
                report.errors.append(NamingParseError(entry, "show folder has no season folders"))
        return walk

    def _reconcile(self, candidate: _Candidate, walk: _Walk, report: ScanReport) -> None:
        library = candidate.library
        relative = candidate.path.relative_to(library.root)
        try:
            parsed = parse_media_path(relative, library.kind)
        except NamingParseError as exc:
            report.errors.append(exc)
            return
        try:
            size = self._storage.size_of(candidate.path)
        except OSError as exc:
            report.errors.append(ScanError(candidate.path, exc.strerror or str(exc)))
            walk.unreadable.append(candidate.path)
            return

        seen_at = report.started_at
        existing = self._media_repo.get_by_path(candidate.path)
        if existing is None:
            try:
                item = self._media_repo.insert(
                    parsed=parsed, path=candidate.path, size_bytes=size, seen_at=seen_at
                )
            except PathCollisionError as exc:
                report.errors.append(exc)
                logger.warning("scan.path_collision", path=str(candidate.path))
                return
            report.discovered.append(item)
            logger.info("scan.item.discovered", media_id=item.id, path=str(item.path))
            return

        if existing.status is MediaStatus.ACTIVE:
            if self._media_repo.refresh_seen(existing.id, size_bytes=size, seen_at=seen_at):
                report.refreshed += 1
            return

        if existing.status is MediaStatus.GONE:
            revived = self._media_repo.transition(
                existing.id,
                expected=MediaStatus.GONE,
                target=MediaStatus.ACTIVE,
                at=seen_at,
                size_bytes=size,
            )
            if revived:
                report.revived.append(self._media_repo.get(existing.id))
                logger.info("scan.item.revived", media_id=existing.id, path=str(existing.path))

    def _sweep(self, walk: _Walk, report: ScanReport) -> None:
        if not walk.readable:
            logger.warning("scan.sweep.skipped", root=str(walk.library.root))
            return
        swept = self._media_repo.sweep_unseen(
            walk.library.root, before=report.started_at, excluded=walk.unreadable
        )
        for item in swept:
            report.gone.append(item)
            logger.info("scan.item.gone", media_id=item.id, path=str(item.path))
            mirrors = [
                self._layout.destination(item.path, tier)
                for tier in (StorageTier.TRASH, StorageTier.PERMANENT)
            ]
            if any(self._storage.exists(mirror) for mirror in mirrors):
                report.orphaned.append(item)
                logger.error(
                    "scan.item.orphaned",
                    media_id=item.id,
                    path=str(item.path),
                    mirrors=[str(mirror) for mirror in mirrors if self._storage.exists(mirror)],
                )

    def _reconcile_trash(self, libraries: list[Library], report: ScanReport) -> None:
        """Retire trashed rows whose file vanished from the trash tier."""
        trash_roots = {library.trash_root for library in libraries}
        for item in self._media_repo.list_media(statuses=[MediaStatus.TRASHED]):
            placement = self._layout.locate(item.path)
            if placement is None or placement.library.trash_root not in trash_roots:
                continue
            if self._storage.exists(item.path):
                continue
            # a persist is relocating it right now
            if self._storage.exists(self._layout.destination(item.path, StorageTier.PERMANENT)):
                continue
            if self._media_repo.transition(
                item.id,
                expected=MediaStatus.TRASHED,
                target=MediaStatus.GONE,
                at=report.started_at,
            ):
                report.missing_trash.append(item)
                logger.info("scan.trash.missing", media_id=item.id, path=str(item.path))


__all__ = ["LibraryScanner", "ScanReport"]
