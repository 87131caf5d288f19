"""Binary VDF tree decoder for Steam appinfo caches.

Decodes one array level of a binary VDF stream into a tree of typed
:class:`VdfNode` objects. Parsing is depth-first and uses an explicit
stack instead of recursion, so deeply nested input cannot exhaust the
interpreter stack.

Wire layout of a child entry::

    <tag:1> <name:NUL-terminated UTF-8> <payload>

Arrays (tag 0x00) have no payload of their own; their children follow
until an end tag (0x08 or 0x0B) closes the level.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO, Sequence

from titledb.utils.vdf_constants import (
    END_TAGS,
    TYPE_COLOR,
    TYPE_DICT,
    TYPE_FLOAT32,
    TYPE_INT32,
    TYPE_INT64,
    TYPE_POINTER,
    TYPE_STRING,
    TYPE_UINT64,
    TYPE_WIDESTRING,
    MalformedStreamError,
    UnexpectedEndError,
)

__all__ = ["NodeType", "VdfNode", "decode", "seek_to"]

_SEEK_CHUNK_SIZE = 64 * 1024


class NodeType(IntEnum):
    """Variants a decoded node can take."""

    ARRAY = TYPE_DICT
    STRING = TYPE_STRING
    INT32 = TYPE_INT32
    FLOAT32 = TYPE_FLOAT32
    POINTER = TYPE_POINTER
    WIDESTRING = TYPE_WIDESTRING
    COLOR = TYPE_COLOR
    INT64 = TYPE_INT64


_INTEGER_TYPES = frozenset({NodeType.INT32, NodeType.POINTER, NodeType.COLOR, NodeType.INT64})
_VALUE_TAGS = frozenset(
    {TYPE_STRING, TYPE_INT32, TYPE_FLOAT32, TYPE_POINTER, TYPE_WIDESTRING, TYPE_COLOR, TYPE_UINT64, TYPE_INT64}
)


@dataclass
class VdfNode:
    """A single decoded node.

    Scalar nodes carry ``value``; array nodes carry an ordered list of
    ``(name, child)`` pairs. Names are not required to be unique.
    """

    node_type: NodeType
    value: str | int | float | None = None
    children: list[tuple[str, VdfNode]] = field(default_factory=list)

    @property
    def is_array(self) -> bool:
        return self.node_type == NodeType.ARRAY

    @property
    def is_integer(self) -> bool:
        return self.node_type in _INTEGER_TYPES

    @property
    def is_text(self) -> bool:
        return self.node_type in (NodeType.STRING, NodeType.WIDESTRING)

    def child(self, name: str, case_sensitive: bool = True) -> VdfNode | None:
        """Returns the first direct child called ``name``."""
        if not self.is_array:
            return None
        if case_sensitive:
            for child_name, node in self.children:
                if child_name == name:
                    return node
            return None
        wanted = name.casefold()
        for child_name, node in self.children:
            if child_name.casefold() == wanted:
                return node
        return None

    def get_node_at(self, path: Sequence[str], case_sensitive: bool = True) -> VdfNode | None:
        """Descends through named children along ``path``.

        Args:
            path: Ordered child names, outermost first.
            case_sensitive: Whether names must match exactly.

        Returns:
            The node at the end of the path, or None if any segment is missing.
        """
        node: VdfNode | None = self
        for segment in path:
            node = node.child(segment, case_sensitive)
            if node is None:
                return None
        return node

    def text(self) -> str:
        """Returns the node value as text, empty for arrays."""
        if self.is_array or self.value is None:
            return ""
        return str(self.value)


class _NodeReader:
    """Bounded primitive reads from a binary stream."""

    def __init__(self, stream: BinaryIO, limit: int | None) -> None:
        self._stream = stream
        self._limit = limit

    def at_end(self) -> bool:
        position = self._stream.tell()
        if self._limit is not None and position >= self._limit:
            return True
        if not self._stream.read(1):
            return True
        self._stream.seek(position)
        return False

    def read(self, size: int) -> bytes:
        position = self._stream.tell()
        if self._limit is not None and position + size > self._limit:
            raise UnexpectedEndError(f"Need {size} bytes past stream limit", position)
        data = self._stream.read(size)
        if len(data) < size:
            raise UnexpectedEndError(f"Need {size} bytes, got {len(data)}", position)
        return data

    def read_tag(self) -> int:
        return self.read(1)[0]

    def read_string(self) -> str:
        """Read a NUL-terminated UTF-8 string."""
        buf = bytearray()
        while True:
            ch = self.read(1)
            if ch == b"\x00":
                break
            buf.extend(ch)
        return buf.decode("utf-8", errors="replace")

    def read_widestring(self) -> str:
        """Read a UTF-16LE string terminated by two NUL bytes."""
        buf = bytearray()
        while True:
            pair = self.read(2)
            if pair == b"\x00\x00":
                break
            buf.extend(pair)
        return buf.decode("utf-16-le", errors="replace")

    def read_value(self, tag: int, offset: int) -> VdfNode:
        if tag == TYPE_STRING:
            return VdfNode(NodeType.STRING, self.read_string())
        if tag == TYPE_INT32:
            return VdfNode(NodeType.INT32, struct.unpack("<i", self.read(4))[0])
        if tag == TYPE_FLOAT32:
            return VdfNode(NodeType.FLOAT32, struct.unpack("<f", self.read(4))[0])
        if tag == TYPE_POINTER:
            return VdfNode(NodeType.POINTER, struct.unpack("<i", self.read(4))[0])
        if tag == TYPE_WIDESTRING:
            return VdfNode(NodeType.WIDESTRING, self.read_widestring())
        if tag == TYPE_COLOR:
            return VdfNode(NodeType.COLOR, struct.unpack("<i", self.read(4))[0])
        if tag == TYPE_UINT64:
            return VdfNode(NodeType.INT64, struct.unpack("<Q", self.read(8))[0])
        if tag == TYPE_INT64:
            return VdfNode(NodeType.INT64, struct.unpack("<q", self.read(8))[0])
        raise MalformedStreamError(tag, offset)


def decode(stream: BinaryIO, limit: int | None = None) -> VdfNode | None:
    """Decodes one array level starting at the current stream position.

    Reads child entries until the end tag that closes the level, descending
    into nested arrays depth-first. On success the stream is left just past
    that end tag.

    Args:
        stream: Seekable binary stream.
        limit: Absolute offset the decoder must not read past. None reads
            up to the end of the stream.

    Returns:
        The decoded array node, or None if the stream is already at its end.

    Raises:
        MalformedStreamError: If an unknown type tag is encountered.
        UnexpectedEndError: If the stream ends before the level is closed.
    """
    reader = _NodeReader(stream, limit)
    if reader.at_end():
        return None

    root = VdfNode(NodeType.ARRAY)
    stack: list[VdfNode] = [root]

    while stack:
        offset = stream.tell()
        tag = reader.read_tag()
        if tag in END_TAGS:
            stack.pop()
            continue

        if tag != TYPE_DICT and tag not in _VALUE_TAGS:
            raise MalformedStreamError(tag, offset)

        name = reader.read_string()
        if tag == TYPE_DICT:
            child = VdfNode(NodeType.ARRAY)
            stack[-1].children.append((name, child))
            stack.append(child)
        else:
            stack[-1].children.append((name, reader.read_value(tag, offset)))

    return root


def seek_to(stream: BinaryIO, pattern: bytes, limit: int | None = None) -> bool:
    """Scans forward for the first occurrence of ``pattern``.

    Args:
        stream: Seekable binary stream.
        pattern: Exact byte sequence to find.
        limit: Absolute offset the scan must not pass. None scans to the
            end of the stream.

    Returns:
        True with the stream positioned just after the match, or False with
        the stream positioned at the limit (or end of stream).
    """
    if not pattern:
        return True

    window = b""
    window_start = stream.tell()
    keep = len(pattern) - 1

    while True:
        consumed = window_start + len(window)
        size = _SEEK_CHUNK_SIZE if limit is None else min(_SEEK_CHUNK_SIZE, limit - consumed)
        chunk = stream.read(size) if size > 0 else b""
        if not chunk:
            stream.seek(consumed)
            return False

        window += chunk
        index = window.find(pattern)
        if index != -1:
            stream.seek(window_start + index + len(pattern))
            return True

        if len(window) > keep:
            window_start += len(window) - keep
            window = window[len(window) - keep :]
