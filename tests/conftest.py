# tests/conftest.py
from __future__ import annotations

import struct
from pathlib import Path
from typing import Callable

import pytest

from titledb.core.title import AppPlatforms, AppType, TitleRecord
from titledb.core.title_store import TitleStore


def vdf_string(name: str, value: str) -> bytes:
    """Binary VDF string entry."""
    return b"\x01" + name.encode("utf-8") + b"\x00" + value.encode("utf-8") + b"\x00"


def vdf_int32(name: str, value: int) -> bytes:
    """Binary VDF int32 entry."""
    return b"\x02" + name.encode("utf-8") + b"\x00" + struct.pack("<i", value)


def common_section(
    app_id: int,
    name: str | None = None,
    app_type: str | None = None,
    oslist: str | None = None,
    parent: int | None = None,
) -> bytes:
    """One appinfo entry whose ``common`` section carries the given keys."""
    body = vdf_int32("gameid", app_id)
    if name is not None:
        body += vdf_string("name", name)
    if app_type is not None:
        body += vdf_string("type", app_type)
    if oslist is not None:
        body += vdf_string("oslist", oslist)
    if parent is not None:
        body += vdf_int32("parent", parent)
    return b"\x00appinfo\x00" + b"\x00common\x00" + body + b"\x08" + b"\x08"


@pytest.fixture
def build_section() -> Callable[..., bytes]:
    """Factory for binary appinfo ``common`` sections."""
    return common_section


@pytest.fixture
def appinfo_file(tmp_path: Path) -> Callable[[bytes], Path]:
    """Writes raw appinfo bytes to a temporary file."""

    def _write(data: bytes) -> Path:
        path = tmp_path / "appinfo.vdf"
        path.write_bytes(b"\x29\x44\x56\x07\x01\x00\x00\x00" + data + b"\x00\x00\x00\x00")
        return path

    return _write


@pytest.fixture
def store(tmp_path: Path) -> TitleStore:
    """Empty store with a snapshot path inside tmp_path."""
    return TitleStore(tmp_path / "titledb.json")


@pytest.fixture
def populated_store(store: TitleStore) -> TitleStore:
    """Store with a base game, its DLC and an unrelated tool."""
    store.add(
        TitleRecord(
            440,
            name="Team Fortress 2",
            app_type=AppType.GAME,
            platforms=AppPlatforms.WINDOWS | AppPlatforms.LINUX,
            genres=["Action", "Free to Play"],
            tags=["Free to Play", "Shooter", "Multiplayer"],
            flags=["Multi-player", "Steam Achievements"],
            developers=["Valve"],
            publishers=["Valve"],
            release_date="10 Oct, 2007",
        )
    )
    store.add(TitleRecord(441, name="TF2 Soundtrack", app_type=AppType.DLC, parent_id=440))
    store.add(
        TitleRecord(
            228980,
            name="Steamworks Common Redistributables",
            app_type=AppType.TOOL,
            developers=["Valve"],
            publishers=["Valve"],
        )
    )
    return store
