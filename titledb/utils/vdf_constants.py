# titledb/utils/vdf_constants.py

"""Constants for the Steam binary VDF format found in appinfo caches.

Contains the binary VDF type markers, the record boundary used to
resynchronize between app entries, and the decoder error types.
"""

from __future__ import annotations

__all__ = [
    "END_TAGS",
    "MalformedStreamError",
    "RECORD_BOUNDARY",
    "TYPE_COLOR",
    "TYPE_DICT",
    "TYPE_END",
    "TYPE_END_ALT",
    "TYPE_FLOAT32",
    "TYPE_INT32",
    "TYPE_INT64",
    "TYPE_POINTER",
    "TYPE_STRING",
    "TYPE_UINT64",
    "TYPE_WIDESTRING",
    "UnexpectedEndError",
    "VdfDecodeError",
]


# ===== BINARY VDF TYPE MARKERS =====

TYPE_DICT: int = 0x00
TYPE_STRING: int = 0x01
TYPE_INT32: int = 0x02
TYPE_FLOAT32: int = 0x03
TYPE_POINTER: int = 0x04
TYPE_WIDESTRING: int = 0x05
TYPE_COLOR: int = 0x06
TYPE_UINT64: int = 0x07
TYPE_END: int = 0x08
TYPE_INT64: int = 0x0A
TYPE_END_ALT: int = 0x0B

END_TAGS: frozenset[int] = frozenset({TYPE_END, TYPE_END_ALT})


# ===== RECORD BOUNDARY =====

RECORD_BOUNDARY: bytes = b"\x00\x00common\x00"
"""Two NUL bytes, ``common``, NUL: start of the ``common`` section of an app entry."""


# ===== EXCEPTIONS =====


class VdfDecodeError(Exception):
    """Base class for binary VDF decoding failures.

    Attributes:
        offset: Stream position at which decoding failed.
    """

    def __init__(self, message: str, offset: int):
        """Initializes the exception.

        Args:
            message: Human-readable description.
            offset: Stream position at which decoding failed.
        """
        self.offset = offset
        super().__init__(f"{message} (offset {offset})")


class MalformedStreamError(VdfDecodeError):
    """Raised when an unrecognized type tag is read.

    Attributes:
        tag: The offending tag byte.
    """

    def __init__(self, tag: int, offset: int):
        """Initializes the exception.

        Args:
            tag: The offending tag byte.
            offset: Stream position of the tag.
        """
        self.tag = tag
        super().__init__(f"Unknown binary VDF type tag: 0x{tag:02x}", offset)


class UnexpectedEndError(VdfDecodeError):
    """Raised when the stream ends before a node is structurally complete."""
