"""HowLongToBeat completion-time feed.

Downloads a CSV export of completion times keyed by Steam app id and
converts the duration columns (seconds) to whole hours, rounding up.

Expected columns::

    steam_id, game_name, comp_main, comp_plus, comp_100
    [comp_main_imputed, comp_plus_imputed, comp_100_imputed]

The ``*_imputed`` columns are optional; ``1``, ``true`` or ``yes`` mark the
matching duration as estimated by the feed rather than measured.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass

import requests

from titledb.core.errors import SourceUnavailableError

logger = logging.getLogger("titledb.hltb_feed")

__all__ = ["CompletionTimeClient", "CompletionTimeRow", "parse_completion_csv", "seconds_to_hours"]

_REQUIRED_COLUMNS = ("steam_id", "comp_main", "comp_plus", "comp_100")
_TRUE_VALUES = frozenset({"1", "true", "yes", "y"})
_ERROR_MARKER = "An error has occurred."


@dataclass(frozen=True)
class CompletionTimeRow:
    """Frozen dataclass for one title's completion estimates.

    Attributes:
        app_id: Steam application ID.
        name: Display name as given by the feed.
        main: Hours for the main story.
        extras: Hours for main story plus extras.
        completionist: Hours for 100% completion.
        main_imputed: Whether ``main`` is an estimate.
        extras_imputed: Whether ``extras`` is an estimate.
        completionist_imputed: Whether ``completionist`` is an estimate.
    """

    app_id: int
    name: str
    main: int = 0
    extras: int = 0
    completionist: int = 0
    main_imputed: bool = False
    extras_imputed: bool = False
    completionist_imputed: bool = False


def seconds_to_hours(value: str | None) -> int:
    """Converts a duration in seconds to whole hours, rounding up.

    Args:
        value: Seconds as text; blank or unparseable values count as 0.

    Returns:
        Hours, never negative.
    """
    if value is None or not value.strip():
        return 0
    try:
        seconds = float(value)
    except ValueError:
        return 0
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 3600)


def _is_flag_set(value: str | None) -> bool:
    return bool(value) and value.strip().lower() in _TRUE_VALUES


def parse_completion_csv(text: str) -> list[CompletionTimeRow]:
    """Parses the completion-time CSV.

    Rows with an empty or non-numeric ``steam_id`` are skipped.

    Args:
        text: CSV text including the header row.

    Returns:
        Parsed rows in file order.

    Raises:
        ValueError: If required columns are missing.
    """
    reader = csv.DictReader(io.StringIO(text))
    columns = set(reader.fieldnames or ())
    missing = [column for column in _REQUIRED_COLUMNS if column not in columns]
    if missing:
        raise ValueError(f"completion CSV is missing columns: {', '.join(missing)}")

    rows: list[CompletionTimeRow] = []
    for raw in reader:
        steam_id = (raw.get("steam_id") or "").strip()
        if not steam_id.isdigit():
            continue
        rows.append(
            CompletionTimeRow(
                app_id=int(steam_id),
                name=(raw.get("game_name") or "").strip(),
                main=seconds_to_hours(raw.get("comp_main")),
                extras=seconds_to_hours(raw.get("comp_plus")),
                completionist=seconds_to_hours(raw.get("comp_100")),
                main_imputed=_is_flag_set(raw.get("comp_main_imputed")),
                extras_imputed=_is_flag_set(raw.get("comp_plus_imputed")),
                completionist_imputed=_is_flag_set(raw.get("comp_100_imputed")),
            )
        )
    return rows


class CompletionTimeClient:
    """Downloads the completion-time CSV.

    Attributes:
        url: CSV export URL.
        timeout: Request timeout in seconds.
    """

    def __init__(self, url: str, timeout: float = 60.0) -> None:
        if not url or not url.strip():
            raise ValueError("Completion-time feed URL must not be empty")
        self.url = url.strip()
        self.timeout = timeout

    def fetch(self) -> list[CompletionTimeRow]:
        """Downloads and parses the feed.

        Returns:
            Parsed rows.

        Raises:
            SourceUnavailableError: On network failure, a server-side error
                page or an unusable CSV.
        """
        logger.info("Downloading completion times from %s", self.url)
        try:
            resp = requests.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SourceUnavailableError(self.url, exc) from exc

        resp.encoding = "utf-8"
        text = resp.text
        if _ERROR_MARKER in text:
            raise SourceUnavailableError(self.url, "feed returned an error page")

        try:
            rows = parse_completion_csv(text)
        except (ValueError, csv.Error) as exc:
            raise SourceUnavailableError(self.url, exc) from exc

        logger.info("Parsed %d completion-time rows", len(rows))
        return rows
