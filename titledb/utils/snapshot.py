"""JSON snapshot (de)serialization for the title store.

A snapshot is one human-readable JSON document::

    {
      "version": 1,
      "language": "english",
      "last_hltb_update": 1700000000,
      "entries": [{"app_id": 440, "name": "Team Fortress 2", ...}, ...]
    }

Platforms are written as a list of flag names (``null`` when unknown) and
the app type by its display value, so the file stays readable and diffable.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from titledb.core.title import AppPlatforms, AppType, LanguageSupport, TitleRecord, VRSupport

__all__ = [
    "SNAPSHOT_VERSION",
    "read_snapshot",
    "record_from_dict",
    "record_to_dict",
    "write_snapshot",
]

logger = logging.getLogger("titledb.snapshot")

SNAPSHOT_VERSION = 1

_PLATFORM_NAMES: tuple[tuple[str, AppPlatforms], ...] = (
    ("windows", AppPlatforms.WINDOWS),
    ("mac", AppPlatforms.MAC),
    ("linux", AppPlatforms.LINUX),
)


def _platforms_to_list(platforms: AppPlatforms | None) -> list[str] | None:
    if platforms is None:
        return None
    return [name for name, flag in _PLATFORM_NAMES if platforms & flag]


def _platforms_from_list(names: list[str] | None) -> AppPlatforms | None:
    if names is None:
        return None
    platforms = AppPlatforms.NONE
    lookup = dict(_PLATFORM_NAMES)
    for name in names:
        flag = lookup.get(str(name).lower())
        if flag is None:
            raise ValueError(f"Unknown platform: {name!r}")
        platforms |= flag
    return platforms


def record_to_dict(record: TitleRecord) -> dict[str, Any]:
    """Converts a record to plain JSON-compatible data.

    Args:
        record: The record to serialize.

    Returns:
        Dict holding every persistent field.
    """
    return {
        "app_id": record.app_id,
        "name": record.name,
        "app_type": record.app_type.value,
        "platforms": _platforms_to_list(record.platforms),
        "parent_id": record.parent_id,
        "genres": list(record.genres),
        "tags": list(record.tags),
        "flags": list(record.flags),
        "developers": list(record.developers),
        "publishers": list(record.publishers),
        "language_support": {
            "full_audio": list(record.language_support.full_audio),
            "interface": list(record.language_support.interface),
            "subtitles": list(record.language_support.subtitles),
        },
        "vr_support": {
            "headsets": list(record.vr_support.headsets),
            "input": list(record.vr_support.input),
            "play_area": list(record.vr_support.play_area),
        },
        "release_date": record.release_date,
        "hltb_main": record.hltb_main,
        "hltb_extras": record.hltb_extras,
        "hltb_completionist": record.hltb_completionist,
        "last_app_info_update": record.last_app_info_update,
        "last_store_scrape": record.last_store_scrape,
    }


def _strings(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{key} must be a list of strings")
    return list(value)


def _optional_text(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def record_from_dict(data: dict[str, Any]) -> TitleRecord:
    """Rebuilds a record from :func:`record_to_dict` output.

    Args:
        data: Parsed JSON object for one record.

    Returns:
        The reconstructed record.

    Raises:
        KeyError: If ``app_id`` is missing.
        ValueError: If a field has an unusable value.
        TypeError: If a field has the wrong JSON type.
    """
    app_type_text = data.get("app_type")
    app_type = AppType(app_type_text) if app_type_text else AppType.UNKNOWN
    languages = data.get("language_support") or {}
    vr = data.get("vr_support") or {}
    if not isinstance(languages, dict) or not isinstance(vr, dict):
        raise ValueError("language_support and vr_support must be objects")

    return TitleRecord(
        app_id=int(data["app_id"]),
        name=_optional_text(data, "name"),
        app_type=app_type,
        platforms=_platforms_from_list(data.get("platforms")),
        parent_id=int(data.get("parent_id") or 0),
        genres=_strings(data, "genres"),
        tags=_strings(data, "tags"),
        flags=_strings(data, "flags"),
        developers=_strings(data, "developers"),
        publishers=_strings(data, "publishers"),
        language_support=LanguageSupport(
            full_audio=_strings(languages, "full_audio"),
            interface=_strings(languages, "interface"),
            subtitles=_strings(languages, "subtitles"),
        ),
        vr_support=VRSupport(
            headsets=_strings(vr, "headsets"),
            input=_strings(vr, "input"),
            play_area=_strings(vr, "play_area"),
        ),
        release_date=_optional_text(data, "release_date"),
        hltb_main=int(data.get("hltb_main") or 0),
        hltb_extras=int(data.get("hltb_extras") or 0),
        hltb_completionist=int(data.get("hltb_completionist") or 0),
        last_app_info_update=int(data.get("last_app_info_update") or 0),
        last_store_scrape=int(data.get("last_store_scrape") or 0),
    )


def read_snapshot(path: Path) -> dict[str, Any]:
    """Reads and structurally validates a snapshot file.

    Args:
        path: Snapshot file path.

    Returns:
        The parsed document with ``entries`` converted to TitleRecords.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the JSON is invalid or the structure is wrong.
    """
    with open(path, encoding="utf-8") as f:
        document = json.load(f)

    if not isinstance(document, dict):
        raise ValueError("snapshot root is not an object")
    entries = document.get("entries")
    if not isinstance(entries, list):
        raise ValueError("snapshot has no entries list")

    records: list[TitleRecord] = []
    for raw in entries:
        if not isinstance(raw, dict):
            raise ValueError("snapshot entry is not an object")
        try:
            records.append(record_from_dict(raw))
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"invalid entry: {e!r}") from e

    language = document.get("language")
    if language is not None and not isinstance(language, str):
        raise ValueError(f"snapshot language is not a string: {language!r}")

    try:
        last_hltb_update = int(document.get("last_hltb_update") or 0)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid last_hltb_update: {e}") from e

    return {
        "version": document.get("version", SNAPSHOT_VERSION),
        "language": language,
        "last_hltb_update": last_hltb_update,
        "entries": records,
    }


def write_snapshot(
    path: Path,
    records: list[TitleRecord],
    language: str,
    last_hltb_update: int,
) -> None:
    """Writes a snapshot atomically (temp file, then replace).

    Args:
        path: Target file path. Parent directories are created.
        records: Records to persist.
        language: Active store language name.
        last_hltb_update: Timestamp of the last completion-time import.

    Raises:
        OSError: If the file cannot be written.
    """
    document = {
        "version": SNAPSHOT_VERSION,
        "language": language,
        "last_hltb_update": last_hltb_update,
        "entries": [record_to_dict(record) for record in sorted(records, key=lambda r: r.app_id)],
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug("Wrote %d records to %s", len(records), path)
