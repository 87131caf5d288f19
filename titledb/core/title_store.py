"""titledb - Title Store.

Thread-safe, in-memory collection of :class:`TitleRecord` objects keyed by
app id. Every write funnels through :meth:`TitleStore.add`, which merges
partial records into the existing entry, so ingestion adapters can feed
the store concurrently without losing updates.

Architecture:
    appinfo cache / app list / HLTB feed -> partial records -> add() (merge)
                                                                 |
                                          JSON snapshot <- save() / load()
"""

from __future__ import annotations

import logging
import re
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Mapping

from titledb.core.appinfo_reader import load_apps
from titledb.core.errors import CorruptSnapshotError, SourceUnavailableError
from titledb.core.language import StoreLanguage
from titledb.core.title import AppType, LanguageSupport, TitleRecord, VRSupport, merge_unique
from titledb.utils.snapshot import read_snapshot, write_snapshot

logger = logging.getLogger("titledb.title_store")

__all__ = ["DEFAULT_LOOKUP_DEPTH", "FALLBACK_ATTRIBUTES", "TitleFilter", "TitleStore"]

DEFAULT_LOOKUP_DEPTH = 3

TitleFilter = Mapping[int, bool]
"""App id -> hidden flag. Only listed, non-hidden ids take part in a query."""

_Getter = Callable[[TitleRecord], list[str]]

FALLBACK_ATTRIBUTES: dict[str, _Getter] = {
    "genres": lambda r: r.genres,
    "tags": lambda r: r.tags,
    "flags": lambda r: r.flags,
    "developers": lambda r: r.developers,
    "publishers": lambda r: r.publishers,
}

_UNION_ATTRIBUTES: dict[str, _Getter] = {
    **FALLBACK_ATTRIBUTES,
    "full_audio": lambda r: r.language_support.full_audio,
    "interface": lambda r: r.language_support.interface,
    "subtitles": lambda r: r.language_support.subtitles,
    "headsets": lambda r: r.vr_support.headsets,
    "input": lambda r: r.vr_support.input,
    "play_area": lambda r: r.vr_support.play_area,
}

_GAME_LIST_TYPES = frozenset({AppType.APPLICATION, AppType.GAME, AppType.MOD})
_YEAR_PATTERN = re.compile(r"\b(1[89]\d\d|2\d\d\d)\b")


def _getter(table: dict[str, _Getter], attribute: str) -> _Getter:
    try:
        return table[attribute]
    except KeyError:
        raise ValueError(f"Unknown attribute: {attribute!r}") from None


class TitleStore:
    """Keyed collection of title records plus store-wide settings.

    One instance is created by the process entry point and handed to every
    consumer. A single re-entrant lock guards structural operations
    (load, save, language change, reset) as well as individual merges;
    queries copy what they need under the lock and compute outside it.

    Attributes:
        path: Default snapshot location for :meth:`load` and :meth:`save`.
        lookup_depth: Default number of parent hops for lookups.
        last_hltb_update: When completion times were last applied.
    """

    def __init__(
        self,
        path: Path | None = None,
        language: StoreLanguage = StoreLanguage.ENGLISH,
        lookup_depth: int = DEFAULT_LOOKUP_DEPTH,
    ) -> None:
        """Initializes an empty store.

        Args:
            path: Default snapshot file. Needed for :meth:`change_language`
                to persist its result.
            language: Initial store language.
            lookup_depth: Parent hops used when a lookup gives no depth.
        """
        self.path = path
        self.lookup_depth = lookup_depth
        self.last_hltb_update: int = 0
        self._language = language
        self._entries: dict[int, TitleRecord] = {}
        self._lock = threading.RLock()

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def language(self) -> StoreLanguage:
        return self._language

    @property
    def language_code(self) -> str:
        return self._language.code

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, app_id: object) -> bool:
        return isinstance(app_id, int) and self.contains(app_id)

    def values(self) -> list[TitleRecord]:
        """Returns the stored records (a list copy, records are live)."""
        with self._lock:
            return list(self._entries.values())

    # ========================================================================
    # CRUD
    # ========================================================================

    def add(self, record: TitleRecord | None) -> None:
        """Inserts a record or merges it into the existing one.

        The store never keeps a reference to ``record`` itself, so callers
        may reuse or discard it afterwards.

        Args:
            record: Partial record. None or a non-positive id is ignored.
        """
        if record is None or record.app_id <= 0:
            return

        with self._lock:
            existing = self._entries.get(record.app_id)
            if existing is None:
                self._entries[record.app_id] = TitleRecord(record.app_id).merge_in(record)
            else:
                existing.merge_in(record)

    def get(self, app_id: int) -> TitleRecord | None:
        with self._lock:
            return self._entries.get(app_id)

    def contains(self, app_id: int) -> bool:
        with self._lock:
            return app_id in self._entries

    def remove(self, app_id: int) -> bool:
        """Removes a record.

        Returns:
            True if a record was removed.
        """
        with self._lock:
            return self._entries.pop(app_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def reset(self) -> None:
        """Drops every record and returns the language to English."""
        with self._lock:
            self._entries.clear()
            self._language = StoreLanguage.ENGLISH
            self.last_hltb_update = 0
            logger.info("Title store was reset")

    def get_name(self, app_id: int) -> str:
        with self._lock:
            entry = self._entries.get(app_id)
            if entry is None or not entry.name:
                return ""
            return entry.name

    def get_release_year(self, app_id: int) -> int:
        """Extracts the year from the stored release date.

        Returns:
            The year, or 0 if unknown or unparseable.
        """
        with self._lock:
            entry = self._entries.get(app_id)
            release_date = entry.release_date if entry is not None else None
        if not release_date:
            return 0
        match = _YEAR_PATTERN.search(release_date)
        return int(match.group(1)) if match else 0

    def is_type(self, app_id: int, app_type: AppType) -> bool:
        with self._lock:
            entry = self._entries.get(app_id)
            return entry is not None and entry.app_type == app_type

    def include_in_game_list(self, app_id: int) -> bool:
        """Whether the title is an application, game or mod."""
        with self._lock:
            entry = self._entries.get(app_id)
            return entry is not None and entry.app_type in _GAME_LIST_TYPES

    # ========================================================================
    # HIERARCHICAL LOOKUP
    # ========================================================================

    def resolve_attribute(self, app_id: int, attribute: str, max_depth: int | None = None) -> list[str]:
        """Returns a set-valued attribute, falling back along the parent chain.

        If the title has no values for ``attribute``, its parent is asked,
        then the grandparent, for at most ``max_depth`` hops. Cycles in
        the parent chain end when the hop budget runs out.

        Args:
            app_id: Title to look up.
            attribute: One of ``genres``, ``tags``, ``flags``,
                ``developers``, ``publishers``.
            max_depth: Maximum number of parent hops; defaults to
                :attr:`lookup_depth`.

        Returns:
            A copy of the first non-empty value list found, or an empty list.

        Raises:
            ValueError: If ``attribute`` is not a known set-valued attribute.
        """
        getter = _getter(FALLBACK_ATTRIBUTES, attribute)
        current_id = app_id
        depth = self.lookup_depth if max_depth is None else max_depth

        while True:
            with self._lock:
                entry = self._entries.get(current_id)
                if entry is None:
                    return []
                values = list(getter(entry))
                parent_id = entry.parent_id

            if values:
                return values
            if depth <= 0 or parent_id <= 0:
                return []
            current_id = parent_id
            depth -= 1

    def get_developers(self, app_id: int, depth: int | None = None) -> list[str]:
        return self.resolve_attribute(app_id, "developers", depth)

    def get_publishers(self, app_id: int, depth: int | None = None) -> list[str]:
        return self.resolve_attribute(app_id, "publishers", depth)

    def get_tags(self, app_id: int, depth: int | None = None) -> list[str]:
        return self.resolve_attribute(app_id, "tags", depth)

    def get_flags(self, app_id: int, depth: int | None = None) -> list[str]:
        return self.resolve_attribute(app_id, "flags", depth)

    def get_genres(self, app_id: int, depth: int | None = None, tag_fallback: bool = False) -> list[str]:
        """Returns genres with optional tag fallback and parent fallback.

        With ``tag_fallback`` a title without genres uses those of its own
        tags that are known genres anywhere in the store. This is tried
        before moving on to the parent.

        Args:
            app_id: Title to look up.
            depth: Maximum number of parent hops.
            tag_fallback: Whether to derive genres from tags.

        Returns:
            Genre names, possibly empty.
        """
        known_genres: set[str] | None = None
        if tag_fallback:
            known_genres = {genre.casefold() for genre in self.union_across_all("genres")}

        current_id = app_id
        if depth is None:
            depth = self.lookup_depth
        while True:
            with self._lock:
                entry = self._entries.get(current_id)
                if entry is None:
                    return []
                genres = list(entry.genres)
                tags = list(entry.tags)
                parent_id = entry.parent_id

            if not genres and known_genres is not None:
                genres = [tag for tag in tags if tag.casefold() in known_genres]
            if genres:
                return genres
            if depth <= 0 or parent_id <= 0:
                return []
            current_id = parent_id
            depth -= 1

    def supports_vr(self, app_id: int, depth: int | None = None) -> bool:
        """Whether the title, or an ancestor within ``depth`` hops, lists VR support."""
        current_id = app_id
        if depth is None:
            depth = self.lookup_depth
        while True:
            with self._lock:
                entry = self._entries.get(current_id)
                if entry is None:
                    return False
                has_vr = not entry.vr_support.is_empty()
                parent_id = entry.parent_id

            if has_vr:
                return True
            if depth <= 0 or parent_id <= 0:
                return False
            current_id = parent_id
            depth -= 1

    # ========================================================================
    # AGGREGATES
    # ========================================================================

    def _collect(self, getter: _Getter, filter_set: TitleFilter | None) -> list[list[str]]:
        """Copies one attribute of every selected record under the lock."""
        with self._lock:
            if filter_set is None:
                records = list(self._entries.values())
            else:
                records = [
                    self._entries[app_id]
                    for app_id, hidden in filter_set.items()
                    if not hidden and app_id in self._entries
                ]
            return [list(getter(record)) for record in records]

    def union_across_all(self, attribute: str) -> list[str]:
        """Case-insensitive union of an attribute over every record.

        Args:
            attribute: A set-valued attribute name, or one of the language
                (``full_audio``, ``interface``, ``subtitles``) or VR
                (``headsets``, ``input``, ``play_area``) sub-lists.

        Returns:
            Values sorted case-insensitively.
        """
        union: list[str] = []
        for values in self._collect(_getter(_UNION_ATTRIBUTES, attribute), None):
            merge_unique(union, values)
        return sorted(union, key=str.casefold)

    @property
    def all_genres(self) -> list[str]:
        return self.union_across_all("genres")

    @property
    def all_flags(self) -> list[str]:
        return self.union_across_all("flags")

    def all_languages(self) -> LanguageSupport:
        return LanguageSupport(
            full_audio=self.union_across_all("full_audio"),
            interface=self.union_across_all("interface"),
            subtitles=self.union_across_all("subtitles"),
        )

    def all_vr_support(self) -> VRSupport:
        return VRSupport(
            headsets=self.union_across_all("headsets"),
            input=self.union_across_all("input"),
            play_area=self.union_across_all("play_area"),
        )

    def aggregate_count(self, attribute: str, filter_set: TitleFilter | None = None, min_count: int = 0) -> dict[str, int]:
        """Counts how many selected titles carry each value of an attribute.

        Values differing only in case are counted together under the first
        spelling seen.

        Args:
            attribute: ``developers``, ``publishers`` or another set-valued
                attribute.
            filter_set: Optional app id -> hidden mapping; None selects all.
            min_count: Minimum count for a value to be returned.

        Returns:
            Unsorted mapping of value to count.
        """
        counts: dict[str, int] = {}
        spelling: dict[str, str] = {}
        for values in self._collect(_getter(FALLBACK_ATTRIBUTES, attribute), filter_set):
            for value in values:
                key = spelling.setdefault(value.casefold(), value)
                counts[key] = counts.get(key, 0) + 1
        return {name: count for name, count in counts.items() if count >= min_count}

    def calculate_sorted_dev_list(self, filter_set: TitleFilter | None, min_count: int) -> dict[str, int]:
        return self.aggregate_count("developers", filter_set, min_count)

    def calculate_sorted_pub_list(self, filter_set: TitleFilter | None, min_count: int) -> dict[str, int]:
        return self.aggregate_count("publishers", filter_set, min_count)

    @staticmethod
    def tag_weights(tag_count: int, weight_factor: float) -> list[float]:
        """Per-position weights for a title's first ``tag_count`` tags.

        The first tag gets ``weight_factor``, the last gets 1.0, with linear
        interpolation between. A single tag gets ``weight_factor``; a
        factor of 1 or less gives every tag 1.0.

        Args:
            tag_count: Number of tags being scored.
            weight_factor: Weight of the first tag.

        Returns:
            One weight per position.
        """
        if weight_factor <= 1:
            return [1.0] * tag_count
        if tag_count <= 1:
            return [float(weight_factor)] * tag_count
        weights = []
        for i in range(tag_count):
            inter = i / (tag_count - 1)
            weights.append((1 - inter) * weight_factor + inter)
        return weights

    def aggregate_tag_score(
        self,
        filter_set: TitleFilter | None = None,
        weight_factor: float = 1.0,
        min_score: float = 0,
        tags_per_game: int = 0,
        exclude_genres: bool = False,
        sort_by_score: bool = True,
    ) -> dict[str, float]:
        """Scores tags across the selected titles, weighting by tag position.

        Args:
            filter_set: Optional app id -> hidden mapping; None selects all.
            weight_factor: Weight of each title's first tag.
            min_score: Minimum accumulated score to keep a tag.
            tags_per_game: How many leading tags of each title count,
                0 for all.
            exclude_genres: Drop tags that are also known genres.
            sort_by_score: Order by descending score (ties by name) instead
                of ascending name.

        Returns:
            Ordered mapping of tag to score.
        """
        scores: dict[str, float] = {}
        spelling: dict[str, str] = {}

        for tags in self._collect(FALLBACK_ATTRIBUTES["tags"], filter_set):
            tags_to_load = len(tags) if tags_per_game == 0 else min(tags_per_game, len(tags))
            for tag, weight in zip(tags[:tags_to_load], self.tag_weights(tags_to_load, weight_factor)):
                key = spelling.setdefault(tag.casefold(), tag)
                scores[key] = scores.get(key, 0.0) + weight

        if exclude_genres:
            genres = {genre.casefold() for genre in self.union_across_all("genres")}
            scores = {tag: score for tag, score in scores.items() if tag.casefold() not in genres}

        kept = [(tag, score) for tag, score in scores.items() if score >= min_score]
        if sort_by_score:
            kept.sort(key=lambda item: (-item[1], item[0].casefold()))
        else:
            kept.sort(key=lambda item: item[0].casefold())
        return dict(kept)

    # ========================================================================
    # LANGUAGE
    # ========================================================================

    def change_language(self, language: StoreLanguage) -> bool:
        """Switches the store language and drops locale-dependent data.

        Tags, flags, genres, release dates, VR and language support are
        cleared on every record and the store-scrape marker is set to
        "very stale" so the data gets fetched again. The store is saved
        afterwards when it has a snapshot path. Runs synchronously over
        the whole store.

        Args:
            language: New store language.

        Returns:
            False if the language was already active, True otherwise.
        """
        with self._lock:
            if language == self._language:
                return False

            logger.info("Changing store language from %s to %s", self._language.value, language.value)
            self._language = language
            cleared = 0
            for entry in self._entries.values():
                if entry.app_id <= 0:
                    continue
                entry.clear_locale_data()
                cleared += 1
            logger.info("Cleared locale-dependent data of %d records", cleared)

            if self.path is not None:
                self.save()
            return True

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _resolve_path(self, path: Path | None) -> Path:
        resolved = path if path is not None else self.path
        if resolved is None:
            raise ValueError("No snapshot path given and the store has no default path")
        return resolved

    def load(self, path: Path | None = None) -> bool:
        """Merges a snapshot into this store.

        Records are merged into the live instance, so references to the
        store stay valid. The snapshot is fully parsed before anything is
        applied.

        Args:
            path: Snapshot file; defaults to :attr:`path`.

        Returns:
            True if loaded, False if the file does not exist.

        Raises:
            CorruptSnapshotError: If the file is unreadable or malformed.
                The store is left unchanged.
        """
        path = self._resolve_path(path)
        with self._lock:
            logger.info("Loading title store from '%s'", path)
            if not path.exists():
                logger.warning("Title store file not found at '%s'", path)
                return False

            started = time.perf_counter()
            try:
                snapshot = read_snapshot(path)
            except (OSError, ValueError) as e:
                logger.error("Title store file at '%s' is corrupt: %s", path, e)
                raise CorruptSnapshotError(str(path), e) from e

            self._language = StoreLanguage.parse(snapshot["language"])
            self.last_hltb_update = snapshot["last_hltb_update"]
            for record in snapshot["entries"]:
                self.add(record)

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("Loaded %d records from '%s' in %.0fms", len(snapshot["entries"]), path, elapsed_ms)
            return True

    def save(self, path: Path | None = None) -> None:
        """Persists every record, the language and the HLTB timestamp.

        Args:
            path: Snapshot file; defaults to :attr:`path`.

        Raises:
            OSError: If the snapshot cannot be written.
        """
        path = self._resolve_path(path)
        with self._lock:
            logger.info("Saving title store to '%s'", path)
            started = time.perf_counter()
            try:
                write_snapshot(path, list(self._entries.values()), self._language.value, self.last_hltb_update)
            except OSError as e:
                logger.error("Failed to save title store to '%s': %s", path, e)
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("Saved %d records to '%s' in %.0fms", len(self._entries), path, elapsed_ms)

    # ========================================================================
    # INGESTION
    # ========================================================================

    def ingest_from_local_cache(self, path: Path) -> int:
        """Merges every title found in an appinfo cache file.

        Each extracted record is stamped with the ingestion time and merged
        through :meth:`add`.

        Args:
            path: Path to the appinfo cache.

        Returns:
            Number of records touched.

        Raises:
            SourceUnavailableError: If the file is missing or unreadable.
        """
        if not path.exists():
            logger.warning("AppInfo cache not found at '%s'", path)
            raise SourceUnavailableError(str(path), "file not found")

        try:
            apps = load_apps(path)
        except OSError as e:
            logger.error("Failed to read AppInfo cache '%s': %s", path, e)
            raise SourceUnavailableError(str(path), e) from e

        timestamp = int(time.time())
        count = 0
        for record in apps.values():
            if record.app_id <= 0:
                continue
            record.last_app_info_update = timestamp
            self.add(record)
            count += 1

        logger.info("Integrated %d records from AppInfo cache", count)
        return count

    def reconcile_public_list(self, entries: Iterable[tuple[int, str]]) -> int:
        """Reconciles names against the public app list.

        Known titles whose name differs get the new name and their type
        reset to Unknown, since a rename often comes with a
        recategorization. Unknown ids become minimal new records.

        Args:
            entries: ``(app_id, name)`` pairs.

        Returns:
            Number of newly created records.
        """
        added = 0
        updated = 0
        for app_id, name in entries:
            if app_id <= 0:
                continue
            with self._lock:
                entry = self._entries.get(app_id)
                if entry is None:
                    self.add(TitleRecord(app_id, name=name))
                    added += 1
                    continue
                if entry.name and entry.name == name:
                    continue
                entry.name = name
                entry.app_type = AppType.UNKNOWN
                updated += 1

        logger.info("Parsed list of public apps, added %d apps and updated %d apps", added, updated)
        return added

    def apply_completion_times(self, rows: Iterable, include_imputed: bool = False) -> int:
        """Sets HLTB completion estimates on known titles.

        Args:
            rows: Objects with ``app_id``, ``main``, ``extras``,
                ``completionist`` and the matching ``*_imputed`` flags
                (see :class:`titledb.integrations.hltb_feed.CompletionTimeRow`).
            include_imputed: Keep estimated values; otherwise they are
                stored as 0.

        Returns:
            Number of records updated.
        """
        updated = 0
        for row in rows:
            with self._lock:
                entry = self._entries.get(row.app_id)
                if entry is None:
                    continue
                entry.hltb_main = 0 if row.main_imputed and not include_imputed else row.main
                entry.hltb_extras = 0 if row.extras_imputed and not include_imputed else row.extras
                entry.hltb_completionist = (
                    0 if row.completionist_imputed and not include_imputed else row.completionist
                )
            updated += 1

        self.last_hltb_update = int(time.time())
        logger.info("Applied completion times to %d records", updated)
        return updated
