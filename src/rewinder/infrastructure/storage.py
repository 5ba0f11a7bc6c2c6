"""Filesystem access for library tiers.

``MediaStorage`` is the seam the scanner, transition executor and reaper talk
to. ``LocalMediaStorage`` implements it on the local filesystem; tests use an
in-memory fake with the same surface.
"""

from __future__ import annotations

import errno
import os
import shutil
import time
import uuid
from pathlib import Path

import structlog

from ..exceptions import MoveError, MoveTimeoutError

logger = structlog.get_logger(__name__)


class MediaStorage:
    """Low-level tier storage API."""

    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def is_dir(self, path: Path) -> bool:
        raise NotImplementedError

    def list_subdirs(self, path: Path) -> list[Path]:
        """Visible child directories of ``path``; raises ``OSError`` when unreadable."""

        raise NotImplementedError

    def size_of(self, path: Path) -> int:
        """Total size in bytes of a file or directory tree."""

        raise NotImplementedError

    def move_atomic(self, src: Path, dst: Path, *, timeout: float | None = None) -> None:
        """Relocate ``src`` to ``dst`` so that ``dst`` appears complete or not at all.

        Raises ``FileNotFoundError`` when ``src`` is missing and
        :class:`MoveError` for every other failure, leaving ``src`` in place.
        """

        raise NotImplementedError

    def delete(self, path: Path) -> None:
        """Remove a file or directory tree; ``FileNotFoundError`` when missing."""

        raise NotImplementedError

    def remove_empty_parents(self, path: Path, *, boundary: Path) -> int:
        """Remove empty ancestors of ``path`` up to, not including, ``boundary``."""

        raise NotImplementedError

    def ensure_dir(self, path: Path) -> None:
        raise NotImplementedError


def tree_size(path: Path) -> int:
    """Recursive byte size; unreadable entries count as zero."""

    if not path.is_dir():
        return path.stat().st_size
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                continue
    return total


_CHUNK_SIZE = 8 * 1024 * 1024


def _copy_file(source: str, target: str, *, deadline: float | None, label: str) -> None:
    """Chunked ``copy2`` that raises :class:`MoveTimeoutError` past ``deadline``."""

    with open(source, "rb") as reader, open(target, "wb") as writer:
        while True:
            if deadline is not None and time.monotonic() > deadline:
                raise MoveTimeoutError(label)
            chunk = reader.read(_CHUNK_SIZE)
            if not chunk:
                break
            writer.write(chunk)
    shutil.copystat(source, target)


class LocalMediaStorage(MediaStorage):
    """``MediaStorage`` over the local filesystem."""

    def exists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def list_subdirs(self, path: Path) -> list[Path]:
        with os.scandir(path) as entries:
            children = [
                Path(entry.path)
                for entry in entries
                if not entry.name.startswith(".") and entry.is_dir(follow_symlinks=False)
            ]
        return sorted(children)

    def size_of(self, path: Path) -> int:
        return tree_size(path)

    def ensure_dir(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def move_atomic(self, src: Path, dst: Path, *, timeout: float | None = None) -> None:
        if not self.exists(src):
            raise FileNotFoundError(errno.ENOENT, "source missing", str(src))
        if self.exists(dst):
            raise MoveError(f"destination already exists: {dst}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MoveError(f"cannot create {dst.parent}: {exc}") from exc

        try:
            os.rename(src, dst)
        except FileNotFoundError:
            raise
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise MoveError(f"rename {src} -> {dst} failed: {exc}") from exc
            logger.info("storage.move.cross_device", src=str(src), dst=str(dst))
            self._copy_across(src, dst, timeout=timeout)

    def _copy_across(self, src: Path, dst: Path, *, timeout: float | None) -> None:
        """Claim ``src``, copy it next to ``dst``, verify, rename into place.

        The source is first renamed to a hidden sibling on its own volume, so
        a competing mover sees ``FileNotFoundError`` before copying anything.
        On any failure the claim is renamed back to ``src``. ``timeout`` is
        checked between chunks and bounds a single large file too.
        """

        claimed = src.parent / f".{src.name}.moving-{uuid.uuid4().hex}"
        try:
            os.rename(src, claimed)
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise MoveError(f"cannot claim {src}: {exc}") from exc

        partial = dst.parent / f".{dst.name}.partial-{uuid.uuid4().hex}"
        deadline = time.monotonic() + timeout if timeout else None

        def copy_with_deadline(source: str, target: str) -> str:
            _copy_file(source, target, deadline=deadline, label=f"moving {src} exceeded {timeout}s")
            return target

        try:
            if claimed.is_dir():
                shutil.copytree(claimed, partial, symlinks=True, copy_function=copy_with_deadline)
            else:
                copy_with_deadline(str(claimed), str(partial))
            expected, copied = tree_size(claimed), tree_size(partial)
            if expected != copied:
                raise MoveError(f"size mismatch after copy: {copied} != {expected} for {src}")
            os.rename(partial, dst)
        except MoveError:
            self._discard(partial)
            self._release(claimed, src)
            raise
        except (OSError, shutil.Error) as exc:
            self._discard(partial)
            self._release(claimed, src)
            raise MoveError(f"copy {src} -> {dst} failed: {exc}") from exc

        try:
            self.delete(claimed)
        except OSError as exc:
            # dst is complete; leave both copies for manual repair
            raise MoveError(f"copied {src} but could not remove {claimed}: {exc}") from exc

    def _release(self, claimed: Path, src: Path) -> None:
        try:
            os.rename(claimed, src)
        except OSError as exc:
            logger.error("storage.release.failed", claimed=str(claimed), src=str(src), error=str(exc))

    def _discard(self, path: Path) -> None:
        if not self.exists(path):
            return
        try:
            self.delete(path)
        except OSError as exc:
            logger.error("storage.discard.failed", path=str(path), error=str(exc))

    def delete(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def remove_empty_parents(self, path: Path, *, boundary: Path) -> int:
        removed = 0
        boundary = Path(os.path.normpath(boundary))
        current = Path(os.path.normpath(path.parent))
        while current != boundary and boundary in current.parents:
            try:
                if any(current.iterdir()):
                    break
                current.rmdir()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.debug("storage.cleanup.stopped", path=str(current), error=str(exc))
                break
            else:
                removed += 1
                logger.debug("storage.cleanup.removed_dir", path=str(current))
            current = current.parent
        return removed


__all__ = ["LocalMediaStorage", "MediaStorage", "tree_size"]
