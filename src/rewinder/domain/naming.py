"""Folder naming convention for movie and TV libraries.

Movies live at ``<library>/<Title> (<Year>)`` and TV seasons at
``<library>/<Show>/Season <N>``. Parsing is tolerant of case and whitespace
but never guesses: a movie folder without a ``(YYYY)`` suffix gets no year and
a show folder without season folders yields nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath

from ..exceptions import NamingParseError
from .models import MediaKind

_WHITESPACE_RE = re.compile(r"\s+")
_MOVIE_RE = re.compile(r"^(?P<title>.*?)\s*\(\s*(?P<year>\d{4})\s*\)$")
_SEASON_RE = re.compile(r"^(?:season[\s_]*(?P<long>\d+)|s(?P<short>\d{1,3}))$")


class LibraryKind(str, Enum):
    """What a library root is expected to hold, derived from its folder name."""

    MOVIES = "movies"
    TV = "tv"
    MIXED = "mixed"


_LIBRARY_NAMES = {
    "movies": LibraryKind.MOVIES,
    "movie": LibraryKind.MOVIES,
    "films": LibraryKind.MOVIES,
    "tv shows": LibraryKind.TV,
    "tv": LibraryKind.TV,
    "tv series": LibraryKind.TV,
    "shows": LibraryKind.TV,
}


@dataclass(frozen=True, slots=True)
class ParsedMedia:
    """Result of parsing one candidate folder."""

    kind: MediaKind
    title: str
    year: int | None = None
    season: int | None = None


def normalize_name(name: str) -> str:
    """Collapse internal whitespace and strip the ends."""

    return _WHITESPACE_RE.sub(" ", name).strip()


def library_kind(root: Path | str) -> LibraryKind:
    """Classify a library root by its folder name."""

    name = normalize_name(PurePath(root).name).lower().replace("_", " ")
    return _LIBRARY_NAMES.get(name, LibraryKind.MIXED)


def parse_movie_dir(name: str) -> tuple[str, int | None]:
    """Split ``"Inception (2010)"`` into ``("Inception", 2010)``.

    Names without a trailing four digit year keep their full text as title.
    """

    normalized = normalize_name(name)
    match = _MOVIE_RE.match(normalized)
    if match and match.group("title"):
        return match.group("title"), int(match.group("year"))
    return normalized, None


def parse_season_number(name: str) -> int | None:
    """Return the season number for ``Season 3``/``season_03``/``S3`` folders."""

    match = _SEASON_RE.match(normalize_name(name).lower())
    if match is None:
        return None
    return int(match.group("long") or match.group("short"))


def parse_media_path(relative: PurePath | str, kind: LibraryKind = LibraryKind.MIXED) -> ParsedMedia:
    """Parse a candidate path relative to its library root.

    ``Title (Year)`` is a movie, ``Show/Season N`` a TV season. Anything else
    raises :class:`NamingParseError`.
    """

    parts = [part for part in PurePath(relative).parts if part not in ("", ".")]
    if len(parts) == 1 and kind is not LibraryKind.TV:
        title, year = parse_movie_dir(parts[0])
        if not title:
            raise NamingParseError(relative, "empty movie title")
        return ParsedMedia(kind=MediaKind.MOVIE, title=title, year=year)

    if len(parts) == 2 and kind is not LibraryKind.MOVIES:
        season = parse_season_number(parts[1])
        show = normalize_name(parts[0])
        if season is None:
            raise NamingParseError(relative, "not a season folder")
        if not show:
            raise NamingParseError(relative, "empty show title")
        return ParsedMedia(kind=MediaKind.TV_SEASON, title=show, season=season)

    raise NamingParseError(relative, f"does not match the {kind.value} library layout")


__all__ = [
    "LibraryKind",
    "ParsedMedia",
    "library_kind",
    "normalize_name",
    "parse_media_path",
    "parse_movie_dir",
    "parse_season_number",
]
