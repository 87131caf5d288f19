# titledb/core/appinfo_reader.py

"""Extracts title records from a Steam appinfo cache.

The cache is treated as an opaque blob: instead of walking the header and
per-app framing, the reader scans for the ``common`` section that starts
every app's metadata, decodes that section with the binary VDF decoder and
pulls a fixed-shape :class:`TitleRecord` out of it. Damaged sections are
skipped by seeking to the next boundary.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterator

from titledb.core.title import AppPlatforms, AppType, TitleRecord, parse_platforms
from titledb.core.vdf_node import VdfNode, decode, seek_to
from titledb.utils.vdf_constants import RECORD_BOUNDARY, VdfDecodeError

logger = logging.getLogger("titledb.appinfo_reader")

__all__ = ["extract_record", "iter_nodes", "load_apps", "read_apps"]


def _node_to_int(node: VdfNode | None) -> int | None:
    """Reads an integer from an integer node or a numeric string node."""
    if node is None:
        return None
    if node.is_integer:
        return int(node.value)
    if node.is_text:
        text = node.text().strip()
        try:
            return int(text)
        except ValueError:
            return None
    return None


def extract_record(node: VdfNode | None) -> TitleRecord | None:
    """Builds a partial TitleRecord from a decoded ``common`` section.

    Args:
        node: Decoded array node.

    Returns:
        The record, or None when the node is not an array or carries no
        usable id. That is the normal outcome for sections that do not
        describe a title.
    """
    if node is None or not node.is_array:
        return None

    app_id = _node_to_int(node.get_node_at(["gameid"], False))
    if app_id is None or app_id <= 0:
        return None

    name_node = node.get_node_at(["name"], False)
    name = name_node.text() if name_node is not None else None

    type_node = node.get_node_at(["type"], False)
    app_type = AppType.parse(type_node.text() if type_node is not None else None)

    oslist_node = node.get_node_at(["oslist"], False)
    platforms = parse_platforms(oslist_node.text()) if oslist_node is not None else AppPlatforms.NONE

    parent_id = _node_to_int(node.get_node_at(["parent"], False))
    if parent_id is None or parent_id < 0:
        parent_id = 0

    return TitleRecord(
        app_id=app_id,
        name=name or None,
        app_type=app_type,
        platforms=platforms,
        parent_id=parent_id,
    )


def iter_nodes(stream: BinaryIO, limit: int | None = None) -> Iterator[VdfNode]:
    """Yields every decodable ``common`` section in the stream.

    Seeks to the record boundary, decodes one node, and repeats until the
    boundary can no longer be found. Sections that fail to decode are
    logged and skipped.

    Args:
        stream: Seekable binary stream positioned anywhere before the data.
        limit: Absolute offset not to read past.
    """
    skipped = 0
    while seek_to(stream, RECORD_BOUNDARY, limit):
        try:
            node = decode(stream, limit)
        except VdfDecodeError as e:
            skipped += 1
            logger.debug("Skipping undecodable section: %s", e)
            continue
        if node is None:
            break
        yield node

    if skipped:
        logger.info("Skipped %d undecodable appinfo sections", skipped)


def read_apps(stream: BinaryIO, limit: int | None = None) -> dict[int, TitleRecord]:
    """Extracts all title records from a stream.

    Duplicate ids within one pass are merged rather than overwritten, so
    repeated raw entries make a pass idempotent.

    Args:
        stream: Seekable binary stream.
        limit: Absolute offset not to read past.

    Returns:
        Records keyed by app id.
    """
    result: dict[int, TitleRecord] = {}
    for node in iter_nodes(stream, limit):
        record = extract_record(node)
        if record is None:
            continue
        existing = result.get(record.app_id)
        if existing is None:
            result[record.app_id] = record
        else:
            existing.merge_in(record)
    return result


def load_apps(path: Path) -> dict[int, TitleRecord]:
    """Reads an appinfo cache file into memory and extracts its records.

    Args:
        path: Path to the cache file.

    Returns:
        Records keyed by app id.

    Raises:
        OSError: If the file cannot be read.
    """
    data = path.read_bytes()
    apps = read_apps(BytesIO(data), len(data))
    logger.info("Extracted %d apps from %s", len(apps), path.name)
    return apps
