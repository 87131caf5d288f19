#!/usr/bin/env python3
"""titledb - Main Entry Point.

Loads the title store snapshot, refreshes it from the configured sources
and saves it again.
"""

from __future__ import annotations

import argparse
import logging
import sys

from titledb.config import Config
from titledb.core.errors import CorruptSnapshotError
from titledb.core.language import StoreLanguage
from titledb.core.logging import logger, setup_logging
from titledb.core.title_store import TitleStore
from titledb.integrations.app_list import AppListClient
from titledb.integrations.hltb_feed import CompletionTimeClient
from titledb.services.ingestion_service import IngestionService
from titledb.version import __app_name__, __version__

__all__ = ["build_ingestion_service", "main"]


def _store_language(text: str) -> StoreLanguage:
    try:
        return StoreLanguage.parse(text, strict=True)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=__app_name__, description="Refresh the local Steam title store.")
    parser.add_argument("--language", type=_store_language, help="switch the store language before ingesting")
    parser.add_argument("--offline", action="store_true", help="skip the network sources")
    parser.add_argument("--verbose", action="store_true", help="log debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_ingestion_service(cfg: Config, store: TitleStore, offline: bool = False) -> IngestionService:
    """Creates the ingestion service for the configured sources.

    Args:
        cfg: Loaded configuration.
        store: The store to feed.
        offline: Skip the public app list and the completion-time feed.

    Returns:
        The configured service.
    """
    app_list_client = None
    hltb_client = None
    if not offline:
        app_list_client = AppListClient(cfg.APP_LIST_URL, api_key=cfg.STEAM_API_KEY, timeout=cfg.REQUEST_TIMEOUT)
        if cfg.HLTB_CSV_URL:
            hltb_client = CompletionTimeClient(cfg.HLTB_CSV_URL, timeout=cfg.REQUEST_TIMEOUT)

    return IngestionService(
        store,
        appinfo_path=cfg.APPINFO_PATH,
        app_list_client=app_list_client,
        hltb_client=hltb_client,
        include_imputed=cfg.INCLUDE_IMPUTED_TIMES,
    )


def main(argv: list[str] | None = None) -> int:
    """Main application execution flow.

    Returns:
        Exit code (0 = success, 1 = store could not be loaded or saved).
    """
    args = _parse_args(argv)
    cfg = Config()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, cfg.LOG_FILE)
    logger.info("%s %s", __app_name__, __version__)

    store = TitleStore(cfg.DATABASE_FILE, cfg.STORE_LANGUAGE, cfg.LOOKUP_DEPTH)
    try:
        store.load()
    except CorruptSnapshotError as e:
        logger.error("Cannot continue with a corrupt store: %s", e)
        return 1

    # The configured language wins over whatever the snapshot was saved in
    language = args.language or cfg.STORE_LANGUAGE
    store.change_language(language)
    if language != cfg.STORE_LANGUAGE:
        cfg.STORE_LANGUAGE = language
        cfg.save()

    reports = build_ingestion_service(cfg, store, offline=args.offline).run()
    failed = [report.source for report in reports if not report.ok]
    if failed:
        logger.warning("Sources unavailable: %s", ", ".join(failed))

    try:
        store.save()
    except OSError:
        return 1

    logger.info("Title store holds %d records", len(store))
    return 0


if __name__ == "__main__":
    sys.exit(main())
