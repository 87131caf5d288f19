# titledb/core/title.py

"""TitleRecord dataclass and its supporting enums.

This module defines the canonical per-title entity stored by
:class:`titledb.core.title_store.TitleStore`, together with the closed
app type enumeration, the platform bit-set and the language/VR support
bundles. Merging two partial records of the same id happens here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Iterable

__all__ = [
    "AppPlatforms",
    "AppType",
    "LanguageSupport",
    "TitleRecord",
    "VRSupport",
    "merge_unique",
    "parse_platforms",
]


class AppType(Enum):
    """Closed set of app categories."""

    APPLICATION = "Application"
    DEMO = "Demo"
    DLC = "DLC"
    GAME = "Game"
    MEDIA = "Media"
    TOOL = "Tool"
    OTHER = "Other"
    UNKNOWN = "Unknown"
    MOD = "Mod"

    @classmethod
    def parse(cls, text: str | None) -> AppType:
        """Matches ``text`` case-insensitively against the enumeration.

        Args:
            text: Raw type string, e.g. ``"game"`` or ``"DLC"``.

        Returns:
            The matching member, ``OTHER`` for an unmatched non-empty string,
            ``UNKNOWN`` when the string is missing or blank.
        """
        if text is None or not text.strip():
            return cls.UNKNOWN
        wanted = text.strip().casefold()
        for member in cls:
            if member.value.casefold() == wanted:
                return member
        return cls.OTHER


class AppPlatforms(IntFlag):
    """Bit-set of supported operating systems."""

    NONE = 0
    WINDOWS = 1
    MAC = 1 << 1
    LINUX = 1 << 2
    ALL = WINDOWS | MAC | LINUX


_PLATFORM_KEYWORDS: tuple[tuple[str, AppPlatforms], ...] = (
    ("windows", AppPlatforms.WINDOWS),
    ("mac", AppPlatforms.MAC),
    ("linux", AppPlatforms.LINUX),
)


def parse_platforms(oslist: str) -> AppPlatforms:
    """Builds a platform bit-set from an os-list string.

    Matching is a case-insensitive substring search, so separators and
    ordering do not matter (``"Windows;Linux"`` and ``"linux,windows"``
    both yield WINDOWS | LINUX).

    Args:
        oslist: Raw os-list text.

    Returns:
        The detected platforms, ``NONE`` if none are mentioned.
    """
    lowered = oslist.casefold()
    platforms = AppPlatforms.NONE
    for keyword, flag in _PLATFORM_KEYWORDS:
        if keyword in lowered:
            platforms |= flag
    return platforms


def merge_unique(target: list[str], incoming: Iterable[str] | None) -> list[str]:
    """Appends items of ``incoming`` not already in ``target``, ignoring case.

    The first spelling seen wins and the existing order is kept, which
    matters for tags where position encodes relevance.

    Args:
        target: List to extend in place.
        incoming: Strings to add. Blank strings are skipped.

    Returns:
        The same ``target`` list.
    """
    if not incoming:
        return target
    seen = {item.casefold() for item in target}
    for item in incoming:
        if not item or not item.strip():
            continue
        key = item.casefold()
        if key not in seen:
            seen.add(key)
            target.append(item)
    return target


@dataclass
class LanguageSupport:
    """Languages a title supports, split by kind of support."""

    full_audio: list[str] = field(default_factory=list)
    interface: list[str] = field(default_factory=list)
    subtitles: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.full_audio = merge_unique([], self.full_audio)
        self.interface = merge_unique([], self.interface)
        self.subtitles = merge_unique([], self.subtitles)

    def is_empty(self) -> bool:
        return not (self.full_audio or self.interface or self.subtitles)

    def merge_in(self, other: LanguageSupport) -> None:
        merge_unique(self.full_audio, other.full_audio)
        merge_unique(self.interface, other.interface)
        merge_unique(self.subtitles, other.subtitles)


@dataclass
class VRSupport:
    """VR hardware a title works with."""

    headsets: list[str] = field(default_factory=list)
    input: list[str] = field(default_factory=list)
    play_area: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.headsets = merge_unique([], self.headsets)
        self.input = merge_unique([], self.input)
        self.play_area = merge_unique([], self.play_area)

    def is_empty(self) -> bool:
        return not (self.headsets or self.input or self.play_area)

    def merge_in(self, other: VRSupport) -> None:
        merge_unique(self.headsets, other.headsets)
        merge_unique(self.input, other.input)
        merge_unique(self.play_area, other.play_area)


@dataclass
class TitleRecord:
    """All known metadata for one title.

    Every field except ``app_id`` is optional. Set-valued attributes are
    lists kept unique case-insensitively; tags keep their stored order.
    ``platforms`` is None while nothing is known about them, which
    callers should read as "all platforms" (see ``effective_platforms``).
    Completion times are whole hours, 0 meaning absent.
    """

    app_id: int
    name: str | None = None
    app_type: AppType = AppType.UNKNOWN
    platforms: AppPlatforms | None = None
    parent_id: int = 0

    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)

    language_support: LanguageSupport = field(default_factory=LanguageSupport)
    vr_support: VRSupport = field(default_factory=VRSupport)

    release_date: str | None = None

    # HLTB completion estimates (hours)
    hltb_main: int = 0
    hltb_extras: int = 0
    hltb_completionist: int = 0

    # Freshness (UNIX timestamps)
    last_app_info_update: int = 0
    last_store_scrape: int = 0

    def __post_init__(self):
        """Normalizes set-valued fields to case-insensitive unique lists."""
        self.genres = merge_unique([], self.genres)
        self.tags = merge_unique([], self.tags)
        self.flags = merge_unique([], self.flags)
        self.developers = merge_unique([], self.developers)
        self.publishers = merge_unique([], self.publishers)

    @property
    def effective_platforms(self) -> AppPlatforms:
        """Platforms with "unknown" resolved to all platforms."""
        return AppPlatforms.ALL if self.platforms is None else self.platforms

    def merge_in(self, other: TitleRecord) -> TitleRecord:
        """Merges another partial record of the same title into this one.

        Scalars are overwritten only by non-empty incoming values, sets are
        unioned and freshness timestamps take the maximum. Platforms follow
        the store-scrape precedence: a cache-derived value never replaces
        one that came from a store scrape.

        Args:
            other: Record carrying the same ``app_id``.

        Returns:
            This record, updated in place.

        Raises:
            ValueError: If the ids differ.
        """
        if other.app_id != self.app_id:
            raise ValueError(f"Cannot merge record {other.app_id} into {self.app_id}")

        if other.name:
            self.name = other.name
        if other.app_type != AppType.UNKNOWN:
            self.app_type = other.app_type
        if other.parent_id > 0:
            self.parent_id = other.parent_id
        if other.release_date:
            self.release_date = other.release_date

        if other.platforms is not None:
            if self.platforms is None or self.platforms == AppPlatforms.NONE:
                self.platforms = other.platforms
            elif other.platforms != AppPlatforms.NONE and (
                self.last_store_scrape == 0 or other.last_store_scrape > 0
            ):
                self.platforms = other.platforms

        merge_unique(self.genres, other.genres)
        merge_unique(self.tags, other.tags)
        merge_unique(self.flags, other.flags)
        merge_unique(self.developers, other.developers)
        merge_unique(self.publishers, other.publishers)
        self.language_support.merge_in(other.language_support)
        self.vr_support.merge_in(other.vr_support)

        if other.hltb_main > 0:
            self.hltb_main = other.hltb_main
        if other.hltb_extras > 0:
            self.hltb_extras = other.hltb_extras
        if other.hltb_completionist > 0:
            self.hltb_completionist = other.hltb_completionist

        self.last_app_info_update = max(self.last_app_info_update, other.last_app_info_update)
        self.last_store_scrape = max(self.last_store_scrape, other.last_store_scrape)
        return self

    def clear_locale_data(self) -> None:
        """Drops every field whose text depends on the store language."""
        self.tags = []
        self.flags = []
        self.genres = []
        self.release_date = None
        self.vr_support = VRSupport()
        self.language_support = LanguageSupport()
        # pretend it is really old data
        self.last_store_scrape = 1
