"""Tier path arithmetic for configured libraries.

Each library root ``L`` has two siblings, ``L_trash`` and ``L_permanent``,
that mirror its relative structure. An item at ``L/Show/Season 1`` moves to
``L_trash/Show/Season 1`` and so on.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

from ..domain.models import StorageTier
from ..domain.naming import LibraryKind, library_kind

TIER_SUFFIXES = {
    StorageTier.ACTIVE: "",
    StorageTier.TRASH: "_trash",
    StorageTier.PERMANENT: "_permanent",
}


@dataclass(frozen=True, slots=True)
class Library:
    root: Path
    kind: LibraryKind

    def tier_root(self, tier: StorageTier) -> Path:
        return self.root.with_name(self.root.name + TIER_SUFFIXES[tier])

    @property
    def trash_root(self) -> Path:
        return self.tier_root(StorageTier.TRASH)

    @property
    def permanent_root(self) -> Path:
        return self.tier_root(StorageTier.PERMANENT)


@dataclass(frozen=True, slots=True)
class Placement:
    """Where a path sits: library, tier and path relative to the tier root."""

    library: Library
    tier: StorageTier
    relative: PurePath


class LibraryLayout:
    """Resolve item paths against the configured library roots."""

    def __init__(self, roots: Iterable[Path | str]) -> None:
        self._libraries = [
            Library(root=Path(root), kind=library_kind(root)) for root in roots
        ]

    @property
    def libraries(self) -> list[Library]:
        return list(self._libraries)

    def locate(self, path: Path) -> Placement | None:
        """Longest tier root that contains ``path``."""

        best: Placement | None = None
        best_depth = -1
        for library in self._libraries:
            for tier in StorageTier:
                root = library.tier_root(tier)
                if path == root or root not in path.parents:
                    continue
                depth = len(root.parts)
                if depth > best_depth:
                    best_depth = depth
                    best = Placement(library=library, tier=tier, relative=path.relative_to(root))
        return best

    def destination(self, path: Path, tier: StorageTier) -> Path:
        """Mirror of ``path`` inside ``tier`` of the same library."""

        placement = self.locate(path)
        if placement is None:
            raise ValueError(f"{path} is not inside a configured library")
        return placement.library.tier_root(tier) / placement.relative

    def tier_root_for(self, path: Path) -> Path:
        placement = self.locate(path)
        if placement is None:
            raise ValueError(f"{path} is not inside a configured library")
        return placement.library.tier_root(placement.tier)


__all__ = ["Library", "LibraryLayout", "Placement", "TIER_SUFFIXES"]
