"""Rescan a library root when folders appear in or vanish from it.

Each configured root is watched non-recursively. Events only schedule a scan
of the affected root after a quiet period; every status change still goes
through the scanner's compare-and-set reconciliation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .scanner import ScanReport

logger = logging.getLogger(__name__)


class _ObserverLike(Protocol):
    def schedule(self, event_handler: Any, path: str, recursive: bool = False) -> Any: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def join(self, timeout: float | None = ...) -> None: ...


class LibraryEventHandler(FileSystemEventHandler):
    """Translate directory events under a library root into rescan requests."""

    def __init__(self, roots: list[Path], notify: Callable[[Path], None]) -> None:
        super().__init__()
        self._roots = set(roots)
        self._notify = notify

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._maybe_notify(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._maybe_notify(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._maybe_notify(event.src_path)
            self._maybe_notify(event.dest_path)

    def _maybe_notify(self, raw_path: str | bytes) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        path = Path(raw_path)
        # partial copies and claims are renamed in place by movers
        if path.name.startswith("."):
            return
        if path.parent in self._roots:
            self._notify(path.parent)


class LibraryWatcher:
    """Debounced root rescans driven by ``watchdog``.

    With ``settle_seconds`` of zero the scan runs on the observer thread as
    soon as the event arrives.
    """

    def __init__(
        self,
        engine: Any,
        *,
        settle_seconds: float = 5.0,
        observer_factory: Callable[[], _ObserverLike] = Observer,
    ) -> None:
        self._engine = engine
        self._settle_seconds = settle_seconds
        self._observer_factory = observer_factory
        self._roots = [library.root for library in engine.layout.libraries]
        self.handler = LibraryEventHandler(self._roots, self.notify)
        self._observer: _ObserverLike | None = None
        self._lock = threading.Lock()
        self._scan_lock = threading.Lock()
        self._timers: dict[Path, threading.Timer] = {}

    @property
    def running(self) -> bool:
        return self._observer is not None

    def pending(self) -> list[Path]:
        with self._lock:
            return sorted(self._timers)

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = self._observer_factory()
        watched = 0
        for root in self._roots:
            if not root.is_dir():
                logger.warning("watcher.root_missing", extra={"root": str(root)})
                continue
            observer.schedule(self.handler, str(root), recursive=False)
            watched += 1
            logger.info("watcher.watching", extra={"root": str(root)})
        observer.start()
        self._observer = observer
        logger.info("watcher.started", extra={"roots": watched})

    def stop(self) -> None:
        if self._observer is None:
            return
        with self._lock:
            timers, self._timers = list(self._timers.values()), {}
        for timer in timers:
            timer.cancel()
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("watcher.stopped")

    def notify(self, root: Path) -> None:
        """Schedule a rescan of ``root``; repeated events restart the quiet period."""
        if self._settle_seconds <= 0:
            self.scan_root(root)
            return
        timer = threading.Timer(self._settle_seconds, self._fire, args=(root,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(root, None)
            self._timers[root] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def flush(self) -> dict[Path, ScanReport | None]:
        """Run every pending rescan now."""
        with self._lock:
            pending, self._timers = self._timers, {}
        results = {}
        for root, timer in pending.items():
            timer.cancel()
            results[root] = self.scan_root(root)
        return results

    def _fire(self, root: Path) -> None:
        with self._lock:
            if self._timers.get(root) is not threading.current_thread():
                return
            del self._timers[root]
        self.scan_root(root)

    def scan_root(self, root: Path) -> ScanReport | None:
        with self._scan_lock:
            try:
                report = self._engine.scan([root])
            except Exception:
                logger.exception("watcher.scan.failed", extra={"root": str(root)})
                return None
        logger.info(
            "watcher.scan.completed",
            extra={
                "root": str(root),
                "discovered": len(report.discovered),
                "gone": len(report.gone),
            },
        )
        return report


__all__ = ["LibraryEventHandler", "LibraryWatcher"]
