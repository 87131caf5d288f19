"""Runs the ingestion sources against one title store.

Each source (local appinfo cache, public app list, completion-time feed)
is optional and independent: a failing source is reported in its
:class:`IngestionReport` without affecting the others. Sources run
concurrently on a thread pool; the store serializes their merges.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from titledb.core.errors import SourceUnavailableError
from titledb.core.title_store import TitleStore
from titledb.integrations.app_list import AppListClient
from titledb.integrations.hltb_feed import CompletionTimeClient

logger = logging.getLogger("titledb.ingestion_service")

__all__ = ["IngestionReport", "IngestionService"]


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of one ingestion source.

    Attributes:
        source: Source name (``appinfo``, ``app_list`` or ``hltb``).
        count: Records added or updated; 0 on failure.
        ok: Whether the source completed.
        error: Failure description when ``ok`` is False.
        duration: Wall time in seconds.
    """

    source: str
    count: int = 0
    ok: bool = True
    error: str | None = None
    duration: float = 0.0


class IngestionService:
    """Feeds a :class:`TitleStore` from the configured sources.

    Attributes:
        store: The store receiving all records.
        appinfo_path: Local appinfo cache, or None to skip it.
        app_list_client: Public app list client, or None to skip it.
        hltb_client: Completion-time client, or None to skip it.
        include_imputed: Keep estimated completion times.
    """

    def __init__(
        self,
        store: TitleStore,
        appinfo_path: Path | None = None,
        app_list_client: AppListClient | None = None,
        hltb_client: CompletionTimeClient | None = None,
        include_imputed: bool = False,
    ) -> None:
        self.store = store
        self.appinfo_path = appinfo_path
        self.app_list_client = app_list_client
        self.hltb_client = hltb_client
        self.include_imputed = include_imputed

    def ingest_appinfo(self) -> int:
        return self.store.ingest_from_local_cache(self.appinfo_path)

    def ingest_app_list(self) -> int:
        entries = self.app_list_client.fetch()
        return self.store.reconcile_public_list((entry.app_id, entry.name) for entry in entries)

    def ingest_completion_times(self) -> int:
        rows = self.hltb_client.fetch()
        return self.store.apply_completion_times(rows, self.include_imputed)

    def _sources(self) -> dict[str, Callable[[], int]]:
        sources: dict[str, Callable[[], int]] = {}
        if self.appinfo_path is not None:
            sources["appinfo"] = self.ingest_appinfo
        if self.app_list_client is not None:
            sources["app_list"] = self.ingest_app_list
        if self.hltb_client is not None:
            sources["hltb"] = self.ingest_completion_times
        return sources

    @staticmethod
    def _run_source(name: str, func: Callable[[], int]) -> IngestionReport:
        started = time.perf_counter()
        try:
            count = func()
        except SourceUnavailableError as e:
            logger.warning("Ingestion source '%s' unavailable: %s", name, e)
            return IngestionReport(name, ok=False, error=str(e), duration=time.perf_counter() - started)
        return IngestionReport(name, count=count, duration=time.perf_counter() - started)

    def run(self, max_workers: int = 3) -> list[IngestionReport]:
        """Runs every configured source concurrently.

        The completion-time feed only updates titles the store already
        knows, so it runs after the other sources have finished.

        Args:
            max_workers: Thread pool size.

        Returns:
            One report per configured source, in source order.
        """
        sources = self._sources()
        hltb = sources.pop("hltb", None)
        reports: dict[str, IngestionReport] = {}

        if sources:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                futures = {pool.submit(self._run_source, name, func): name for name, func in sources.items()}
                for future in as_completed(futures):
                    report = future.result()
                    reports[report.source] = report

        if hltb is not None:
            reports["hltb"] = self._run_source("hltb", hltb)

        ordered = [reports[name] for name in ("appinfo", "app_list", "hltb") if name in reports]
        for report in ordered:
            if report.ok:
                logger.info("Source '%s' touched %d records in %.1fs", report.source, report.count, report.duration)
        return ordered
