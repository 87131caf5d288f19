"""Error types raised by the title store and its ingestion adapters.

Decoder errors live in :mod:`titledb.utils.vdf_constants` next to the
binary tag values they refer to.
"""

from __future__ import annotations

__all__ = ["CorruptSnapshotError", "SourceUnavailableError", "TitleDbError"]


class TitleDbError(Exception):
    """Base class for all titledb errors."""


class SourceUnavailableError(TitleDbError):
    """Raised when an ingestion source cannot be read.

    Covers missing cache files, failed network fetches and payloads that
    cannot be parsed at all. The store is left in its prior state.

    Attributes:
        source: Short name of the source (file path or URL).
    """

    def __init__(self, source: str, reason: object):
        """Initializes the exception.

        Args:
            source: File path or URL that could not be read.
            reason: The underlying error or a description of it.
        """
        self.source = source
        self.reason = reason
        super().__init__(f"Source unavailable: {source} ({reason})")


class CorruptSnapshotError(TitleDbError):
    """Raised when a persisted snapshot is unreadable or structurally invalid.

    Attributes:
        path: Path of the snapshot file.
    """

    def __init__(self, path: str, reason: object):
        """Initializes the exception.

        Args:
            path: Path of the snapshot file.
            reason: What made the snapshot unusable.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt snapshot at {path}: {reason}")
