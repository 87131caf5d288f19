"""Tests for TitleStore.

Covers merge-on-add, hierarchical lookups, aggregates, language changes,
persistence and the three ingestion entry points.
"""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import pytest

from titledb.core.errors import CorruptSnapshotError, SourceUnavailableError
from titledb.core.language import StoreLanguage
from titledb.core.title import AppPlatforms, AppType, LanguageSupport, TitleRecord, VRSupport
from titledb.core.title_store import TitleStore
from titledb.integrations.hltb_feed import CompletionTimeRow
from titledb.utils.snapshot import record_to_dict


class TestAdd:
    """Tests for add/get/remove."""

    def test_add_and_get(self, store: TitleStore) -> None:
        """Added records can be looked up."""
        store.add(TitleRecord(10, name="Foo"))

        assert store.contains(10)
        assert 10 in store
        assert store.get(10).name == "Foo"
        assert len(store) == 1

    def test_add_ignores_invalid(self, store: TitleStore) -> None:
        """None and non-positive ids are ignored."""
        store.add(None)
        store.add(TitleRecord(0, name="Zero"))
        store.add(TitleRecord(-5, name="Negative"))

        assert len(store) == 0

    def test_add_merges_same_id(self, store: TitleStore) -> None:
        """Adding an existing id merges instead of replacing."""
        store.add(TitleRecord(10, name="Foo", app_type=AppType.GAME))
        store.add(TitleRecord(10, parent_id=5))

        record = store.get(10)
        assert (record.name, record.app_type, record.parent_id) == ("Foo", AppType.GAME, 5)
        assert len(store) == 1

    def test_add_does_not_keep_caller_object(self, store: TitleStore) -> None:
        """Mutating the added record afterwards does not touch the store."""
        incoming = TitleRecord(10, name="Foo", tags=["A"])
        store.add(incoming)
        incoming.tags.append("B")
        incoming.name = "Changed"

        assert store.get(10).tags == ["A"]
        assert store.get(10).name == "Foo"

    def test_get_missing(self, store: TitleStore) -> None:
        """Unknown ids are not errors."""
        assert store.get(99) is None
        assert store.contains(99) is False
        assert store.get_name(99) == ""

    def test_remove_and_clear(self, populated_store: TitleStore) -> None:
        """Records can be removed individually or all at once."""
        assert populated_store.remove(441) is True
        assert populated_store.remove(441) is False
        populated_store.clear()
        assert len(populated_store) == 0

    def test_reset_restores_english(self, populated_store: TitleStore) -> None:
        """Reset empties the store and returns to English."""
        populated_store._language = StoreLanguage.GERMAN
        populated_store.reset()

        assert len(populated_store) == 0
        assert populated_store.language == StoreLanguage.ENGLISH

    def test_concurrent_adds_lose_nothing(self, store: TitleStore) -> None:
        """Concurrent merges into the same id keep every value."""

        def worker(prefix: str) -> None:
            for i in range(200):
                store.add(TitleRecord(1, tags=[f"{prefix}{i}"]))

        threads = [threading.Thread(target=worker, args=(p,)) for p in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.get(1).tags) == 800


class TestSimpleQueries:
    """Tests for name, year and type helpers."""

    def test_release_year(self, populated_store: TitleStore) -> None:
        """The year is extracted from free-form dates."""
        assert populated_store.get_release_year(440) == 2007
        assert populated_store.get_release_year(441) == 0

    def test_is_type_and_game_list(self, populated_store: TitleStore) -> None:
        """Only applications, games and mods belong in the game list."""
        assert populated_store.is_type(441, AppType.DLC)
        assert populated_store.include_in_game_list(440)
        assert not populated_store.include_in_game_list(441)
        assert not populated_store.include_in_game_list(228980)
        assert not populated_store.include_in_game_list(1)


class TestResolveAttribute:
    """Tests for parent-chain fallback lookups."""

    def test_direct_value(self, populated_store: TitleStore) -> None:
        """A title's own values are returned."""
        assert populated_store.get_developers(440) == ["Valve"]

    def test_falls_back_to_parent(self, populated_store: TitleStore) -> None:
        """A DLC without developers inherits them from its base game."""
        assert populated_store.get_developers(441) == ["Valve"]
        assert populated_store.get_genres(441) == ["Action", "Free to Play"]

    def test_depth_zero_disables_fallback(self, populated_store: TitleStore) -> None:
        """With depth 0 only the title itself is consulted."""
        assert populated_store.resolve_attribute(441, "developers", max_depth=0) == []

    def test_depth_limits_chain(self, store: TitleStore) -> None:
        """The chain is followed for at most max_depth hops."""
        store.add(TitleRecord(1, developers=["Root Dev"]))
        store.add(TitleRecord(2, parent_id=1))
        store.add(TitleRecord(3, parent_id=2))
        store.add(TitleRecord(4, parent_id=3))

        assert store.get_developers(4, depth=3) == ["Root Dev"]
        assert store.get_developers(4, depth=2) == []

    def test_store_default_depth(self) -> None:
        """The store-wide lookup depth applies when none is given."""
        store = TitleStore(lookup_depth=1)
        store.add(TitleRecord(1, publishers=["Pub"]))
        store.add(TitleRecord(2, parent_id=1))
        store.add(TitleRecord(3, parent_id=2))

        assert store.get_publishers(2) == ["Pub"]
        assert store.get_publishers(3) == []
        assert store.get_publishers(3, depth=2) == ["Pub"]

    def test_cycle_terminates(self, store: TitleStore) -> None:
        """A parent cycle ends after the hop budget with an empty result."""
        store.add(TitleRecord(1, parent_id=2))
        store.add(TitleRecord(2, parent_id=1))

        assert store.resolve_attribute(1, "publishers") == []
        assert store.resolve_attribute(1, "tags", max_depth=1000) == []

    def test_missing_parent(self, store: TitleStore) -> None:
        """A dangling parent reference yields an empty result."""
        store.add(TitleRecord(1, parent_id=999))
        assert store.get_flags(1) == []

    def test_unknown_attribute(self, store: TitleStore) -> None:
        """Only set-valued attributes can be resolved."""
        with pytest.raises(ValueError):
            store.resolve_attribute(1, "name")

    def test_result_is_a_copy(self, populated_store: TitleStore) -> None:
        """Mutating the result does not change the record."""
        populated_store.get_tags(440).append("Mutated")
        assert "Mutated" not in populated_store.get(440).tags

    def test_genre_tag_fallback(self, populated_store: TitleStore) -> None:
        """Tags that are known genres stand in for missing genres."""
        populated_store.add(TitleRecord(500, tags=["Shooter", "free to play", "Indie"]))

        assert populated_store.get_genres(500) == []
        assert populated_store.get_genres(500, tag_fallback=True) == ["free to play"]

    def test_supports_vr(self, store: TitleStore) -> None:
        """VR support is inherited along the parent chain."""
        store.add(TitleRecord(1, vr_support=VRSupport(headsets=["Valve Index"])))
        store.add(TitleRecord(2, parent_id=1))
        store.add(TitleRecord(3))

        assert store.supports_vr(1)
        assert store.supports_vr(2)
        assert not store.supports_vr(2, depth=0)
        assert not store.supports_vr(3)
        assert not store.supports_vr(404)


class TestUnions:
    """Tests for store-wide vocabularies."""

    def test_all_genres_case_insensitive_sorted(self, store: TitleStore) -> None:
        """Genres are unioned ignoring case and sorted."""
        store.add(TitleRecord(1, genres=["RPG", "action"]))
        store.add(TitleRecord(2, genres=["Action", "Indie"]))

        assert store.all_genres == ["action", "Indie", "RPG"]

    def test_all_flags(self, populated_store: TitleStore) -> None:
        """Flags are collected from every record."""
        assert populated_store.all_flags == ["Multi-player", "Steam Achievements"]

    def test_all_languages_and_vr(self, store: TitleStore) -> None:
        """Language and VR bundles are unioned per sub-list."""
        store.add(TitleRecord(1, language_support=LanguageSupport(interface=["English"], subtitles=["German"])))
        store.add(TitleRecord(2, language_support=LanguageSupport(interface=["english", "French"])))
        store.add(TitleRecord(3, vr_support=VRSupport(input=["Tracked"], play_area=["Seated"])))

        languages = store.all_languages()
        vr = store.all_vr_support()
        assert languages.interface == ["English", "French"]
        assert languages.subtitles == ["German"]
        assert vr.input == ["Tracked"]
        assert vr.play_area == ["Seated"]
        assert vr.headsets == []

    def test_unknown_selector(self, store: TitleStore) -> None:
        """Unknown selectors are rejected."""
        with pytest.raises(ValueError):
            store.union_across_all("colour")


class TestAggregateCount:
    """Tests for developer/publisher counts."""

    def test_hidden_titles_are_excluded(self, store: TitleStore) -> None:
        """Acme counts 2 when its third title is hidden by the filter."""
        store.add(TitleRecord(1, developers=["Acme"]))
        store.add(TitleRecord(2, developers=["Acme", "Other"]))
        store.add(TitleRecord(3, developers=["Acme"]))

        result = store.calculate_sorted_dev_list({1: False, 2: False, 3: True}, min_count=2)

        assert result == {"Acme": 2}

    def test_without_filter_counts_all(self, store: TitleStore) -> None:
        """No filter means every record is counted."""
        store.add(TitleRecord(1, publishers=["Pub"]))
        store.add(TitleRecord(2, publishers=["pub"]))

        assert store.calculate_sorted_pub_list(None, 0) == {"Pub": 2}

    def test_filter_ignores_unknown_ids(self, store: TitleStore) -> None:
        """Ids missing from the store are skipped."""
        store.add(TitleRecord(1, developers=["Acme"]))

        assert store.aggregate_count("developers", {1: False, 77: False}, 1) == {"Acme": 1}


class TestAggregateTagScore:
    """Tests for weighted tag scoring."""

    def test_weights_interpolate(self) -> None:
        """Three tags with factor 3 weigh 3, 2 and 1."""
        assert TitleStore.tag_weights(3, 3) == [3.0, 2.0, 1.0]

    def test_single_tag_and_uniform(self) -> None:
        """A single tag gets the factor; factor <= 1 is uniform."""
        assert TitleStore.tag_weights(1, 4) == [4.0]
        assert TitleStore.tag_weights(3, 1) == [1.0, 1.0, 1.0]
        assert TitleStore.tag_weights(0, 3) == []

    def test_scores_by_position(self, store: TitleStore) -> None:
        """Scores for one title follow the positional weights."""
        store.add(TitleRecord(1, tags=["A", "B", "C"]))

        scores = store.aggregate_tag_score(weight_factor=3)

        assert scores == {"A": 3.0, "B": 2.0, "C": 1.0}
        assert list(scores) == ["A", "B", "C"]

    def test_accumulates_and_sorts_by_name(self, store: TitleStore) -> None:
        """Scores add up across titles; name order is ascending."""
        store.add(TitleRecord(1, tags=["Zombies", "Action"]))
        store.add(TitleRecord(2, tags=["action"]))

        scores = store.aggregate_tag_score(sort_by_score=False)

        assert list(scores) == ["Action", "Zombies"]
        assert scores["Action"] == 2.0

    def test_tags_per_game_and_min_score(self, store: TitleStore) -> None:
        """Only leading tags count and low scores are dropped."""
        store.add(TitleRecord(1, tags=["A", "B", "C"]))
        store.add(TitleRecord(2, tags=["A", "C"]))

        scores = store.aggregate_tag_score(tags_per_game=1)
        assert scores == {"A": 2.0}

        scores = store.aggregate_tag_score(min_score=2)
        assert scores == {"A": 2.0, "C": 2.0}

    def test_exclude_genres(self, populated_store: TitleStore) -> None:
        """Tags that are also genres are removed."""
        scores = populated_store.aggregate_tag_score(exclude_genres=True)

        assert "Free to Play" not in scores
        assert set(scores) == {"Shooter", "Multiplayer"}

    def test_filter(self, store: TitleStore) -> None:
        """Hidden titles do not contribute."""
        store.add(TitleRecord(1, tags=["Seen"]))
        store.add(TitleRecord(2, tags=["Hidden"]))

        assert store.aggregate_tag_score({1: False, 2: True}) == {"Seen": 1.0}


class TestChangeLanguage:
    """Tests for change_language."""

    def test_clears_locale_data(self, populated_store: TitleStore) -> None:
        """Tags, genres and flags go; id, name and parent stay."""
        before = {r.app_id: (r.name, r.parent_id) for r in populated_store.values()}

        assert populated_store.change_language(StoreLanguage.GERMAN) is True

        assert populated_store.language == StoreLanguage.GERMAN
        for record in populated_store.values():
            assert record.tags == [] and record.genres == [] and record.flags == []
            assert record.release_date is None
            assert record.last_store_scrape == 1
            assert (record.name, record.parent_id) == before[record.app_id]

    def test_persists_afterwards(self, populated_store: TitleStore) -> None:
        """The store is saved after switching."""
        populated_store.change_language(StoreLanguage.FRENCH)

        document = json.loads(populated_store.path.read_text(encoding="utf-8"))
        assert document["language"] == "french"

    def test_same_language_is_noop(self, populated_store: TitleStore) -> None:
        """Switching to the active language changes nothing."""
        assert populated_store.change_language(StoreLanguage.ENGLISH) is False
        assert populated_store.get(440).tags
        assert not populated_store.path.exists()


class TestPersistence:
    """Tests for load and save."""

    def test_round_trip(self, populated_store: TitleStore, tmp_path) -> None:
        """Saving then loading reproduces every record."""
        populated_store.add(
            TitleRecord(
                999,
                platforms=AppPlatforms.NONE,
                hltb_main=5,
                vr_support=VRSupport(headsets=["Quest"]),
                last_app_info_update=123,
            )
        )
        populated_store.last_hltb_update = 42
        populated_store.save()

        loaded = TitleStore(populated_store.path)
        assert loaded.load() is True

        assert loaded.last_hltb_update == 42
        assert loaded.language == StoreLanguage.ENGLISH
        original = {r.app_id: record_to_dict(r) for r in populated_store.values()}
        restored = {r.app_id: record_to_dict(r) for r in loaded.values()}
        assert restored == original

    def test_load_keeps_language(self, store: TitleStore) -> None:
        """The persisted language is restored."""
        store._language = StoreLanguage.JAPANESE
        store.save()

        loaded = TitleStore(store.path)
        loaded.load()
        assert loaded.language == StoreLanguage.JAPANESE
        assert loaded.language_code == "ja"

    def test_load_merges_into_live_instance(self, populated_store: TitleStore) -> None:
        """Loading merges into existing records."""
        populated_store.save()
        populated_store.add(TitleRecord(5, name="Only in memory"))
        record = populated_store.get(440)

        populated_store.load()

        assert populated_store.get(440) is record
        assert populated_store.contains(5)

    def test_missing_file(self, store: TitleStore) -> None:
        """A missing snapshot is reported as False."""
        assert store.load() is False

    def test_corrupt_file_leaves_store_unchanged(self, populated_store: TitleStore) -> None:
        """Invalid JSON raises CorruptSnapshotError without touching data."""
        populated_store.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(CorruptSnapshotError):
            populated_store.load()

        assert len(populated_store) == 3

    @pytest.mark.parametrize(
        "document",
        [
            {"version": 1, "entries": {}},
            {"entries": [{"app_id": 1, "genres": [1, 2]}]},
            {"entries": [{"app_id": 1, "tags": "Action"}]},
            {"entries": [{"app_id": 1, "name": 42}]},
            {"entries": [{"app_id": 1, "language_support": ["English"]}]},
            {"entries": [{"app_id": 1, "platforms": 5}]},
            {"language": 5, "entries": []},
            {"last_hltb_update": [1], "entries": []},
            {"last_hltb_update": "yesterday", "entries": []},
        ],
    )
    def test_structurally_invalid_file(self, store: TitleStore, document: dict) -> None:
        """Valid JSON with the wrong shape or field types is corrupt."""
        store.path.write_text(json.dumps(document), encoding="utf-8")

        with pytest.raises(CorruptSnapshotError):
            store.load()
        assert len(store) == 0

    def test_no_path(self) -> None:
        """Saving without any path is a usage error."""
        with pytest.raises(ValueError):
            TitleStore().save()


class TestIngestFromLocalCache:
    """Tests for ingest_from_local_cache."""

    def test_count_excludes_invalid_ids(self, store: TitleStore, appinfo_file, build_section) -> None:
        """Sections with id 0 are neither stored nor counted."""
        path = appinfo_file(build_section(0, name="Zero") + build_section(10, name="Foo"))

        assert store.ingest_from_local_cache(path) == 1
        assert len(store) == 1
        assert store.contains(10)

    def test_ingest(self, store: TitleStore, appinfo_file, build_section) -> None:
        """Cache records are merged and stamped with the ingestion time."""
        path = appinfo_file(build_section(10, name="Foo", app_type="Game") + build_section(10, parent=5))

        with patch("titledb.core.title_store.time.time", return_value=1_700_000_000):
            count = store.ingest_from_local_cache(path)

        record = store.get(10)
        assert count == 1
        assert (record.name, record.app_type, record.parent_id) == ("Foo", AppType.GAME, 5)
        assert record.last_app_info_update == 1_700_000_000

    def test_idempotent(self, store: TitleStore, appinfo_file, build_section) -> None:
        """Ingesting the same cache twice gives the same state."""
        path = appinfo_file(
            build_section(1, name="One", app_type="game", oslist="windows")
            + build_section(2, name="Two", app_type="dlc", parent=1)
        )

        with patch("titledb.core.title_store.time.time", return_value=1_700_000_000):
            store.ingest_from_local_cache(path)
            once = {r.app_id: record_to_dict(r) for r in store.values()}
            store.ingest_from_local_cache(path)
            twice = {r.app_id: record_to_dict(r) for r in store.values()}

        assert once == twice

    def test_scraped_platforms_survive(self, store: TitleStore, appinfo_file, build_section) -> None:
        """Cache platforms do not override store-scraped ones."""
        store.add(TitleRecord(1, platforms=AppPlatforms.ALL, last_store_scrape=1_600_000_000))
        path = appinfo_file(build_section(1, oslist="windows"))

        store.ingest_from_local_cache(path)

        assert store.get(1).platforms == AppPlatforms.ALL

    def test_missing_file(self, store: TitleStore, tmp_path) -> None:
        """A missing cache is reported as an unavailable source."""
        with pytest.raises(SourceUnavailableError):
            store.ingest_from_local_cache(tmp_path / "missing.vdf")
        assert len(store) == 0


class TestReconcilePublicList:
    """Tests for reconcile_public_list."""

    def test_adds_and_renames(self, populated_store: TitleStore) -> None:
        """New ids are added; renamed ones get their type reset."""
        added = populated_store.reconcile_public_list(
            [(440, "Team Fortress 2"), (441, "TF2 Official Soundtrack"), (570, "Dota 2")]
        )

        assert added == 1
        assert populated_store.get(570).name == "Dota 2"
        assert populated_store.get(570).app_type == AppType.UNKNOWN
        assert populated_store.get(440).app_type == AppType.GAME
        assert populated_store.get(441).name == "TF2 Official Soundtrack"
        assert populated_store.get(441).app_type == AppType.UNKNOWN
        assert populated_store.get(441).parent_id == 440

    def test_repeat_is_noop(self, store: TitleStore) -> None:
        """A second identical pass adds nothing."""
        entries = [(1, "One"), (2, "Two")]
        assert store.reconcile_public_list(entries) == 2
        assert store.reconcile_public_list(entries) == 0
        assert len(store) == 2

    def test_new_records_go_through_add(self, populated_store: TitleStore) -> None:
        """Unknown ids are inserted with add(); known ids are renamed in place."""
        with patch.object(populated_store, "add", wraps=populated_store.add) as add:
            populated_store.reconcile_public_list([(440, "Renamed"), (570, "Dota 2")])

        assert [call.args[0].app_id for call in add.call_args_list] == [570]
        assert populated_store.get(570).name == "Dota 2"


class TestApplyCompletionTimes:
    """Tests for apply_completion_times."""

    def _rows(self) -> list[CompletionTimeRow]:
        return [
            CompletionTimeRow(440, "TF2", main=10, extras=20, completionist=30, completionist_imputed=True),
            CompletionTimeRow(12345, "Unknown game", main=1, extras=2, completionist=3),
        ]

    def test_zeroes_imputed(self, populated_store: TitleStore) -> None:
        """Imputed values are dropped unless requested; unknown ids are skipped."""
        with patch("titledb.core.title_store.time.time", return_value=1_700_000_500):
            updated = populated_store.apply_completion_times(self._rows(), include_imputed=False)

        record = populated_store.get(440)
        assert updated == 1
        assert (record.hltb_main, record.hltb_extras, record.hltb_completionist) == (10, 20, 0)
        assert not populated_store.contains(12345)
        assert populated_store.last_hltb_update == 1_700_000_500

    def test_includes_imputed(self, populated_store: TitleStore) -> None:
        """Imputed values are kept when asked for."""
        populated_store.apply_completion_times(self._rows(), include_imputed=True)

        assert populated_store.get(440).hltb_completionist == 30
