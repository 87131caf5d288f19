"""Steam public app list client.

Downloads the full list of public apps (id + name) used to reconcile
names and discover titles the local cache does not know about.
Supports both the legacy ``ISteamApps/GetAppList/v2`` payload and the
paginated ``IStoreService/GetAppList/v1`` payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from titledb.core.errors import SourceUnavailableError

logger = logging.getLogger("titledb.app_list")

__all__ = ["AppListClient", "AppListEntry", "parse_app_list"]

_DEFAULT_URL = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"
_STORE_URL = "https://api.steampowered.com/IStoreService/GetAppList/v1/"
_PAGE_SIZE = 50000
_MAX_PAGES = 500


@dataclass(frozen=True)
class AppListEntry:
    """Frozen dataclass for one public app list row.

    Attributes:
        app_id: Steam application ID.
        name: Display name of the application.
    """

    app_id: int
    name: str


def parse_app_list(payload: Any) -> list[AppListEntry]:
    """Extracts (id, name) pairs from an app list payload.

    Entries without a positive id or a name are dropped.

    Args:
        payload: Decoded JSON, either ``{"applist": {"apps": [...]}}`` or
            ``{"response": {"apps": [...]}}``.

    Returns:
        Entries in payload order.

    Raises:
        ValueError: If the payload has neither shape.
    """
    if not isinstance(payload, dict):
        raise ValueError("app list payload is not an object")

    container = payload.get("applist") or payload.get("response")
    if not isinstance(container, dict):
        raise ValueError("app list payload has no applist/response object")
    apps = container.get("apps", [])
    if not isinstance(apps, list):
        raise ValueError("app list payload has no apps list")

    entries: list[AppListEntry] = []
    for item in apps:
        if not isinstance(item, dict):
            continue
        try:
            app_id = int(item.get("appid") or 0)
        except (TypeError, ValueError):
            continue
        name = str(item.get("name") or "").strip()
        if app_id <= 0 or not name:
            continue
        entries.append(AppListEntry(app_id=app_id, name=name))
    return entries


class AppListClient:
    """Fetches the public app list.

    Without an API key the legacy endpoint is used in one request. With a
    key the store endpoint is paged until it reports no more results.

    Attributes:
        url: Legacy endpoint URL.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, url: str = _DEFAULT_URL, api_key: str | None = None, timeout: float = 60.0) -> None:
        self.url = url
        self.api_key = api_key.strip() if api_key and api_key.strip() else None
        self.timeout = timeout
        self._session = requests.Session()

    def fetch(self) -> list[AppListEntry]:
        """Downloads and parses the app list.

        Returns:
            All public apps.

        Raises:
            SourceUnavailableError: On network failure or an unusable payload.
        """
        logger.info("Downloading list of public apps")
        if self.api_key:
            entries = self._fetch_paged()
        else:
            try:
                entries = parse_app_list(self._get_json(self.url))
            except ValueError as exc:
                raise SourceUnavailableError(self.url, exc) from exc
        logger.info("Downloaded %d public apps", len(entries))
        return entries

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = self._session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as exc:
            raise SourceUnavailableError(url, exc) from exc
        except ValueError as exc:
            raise SourceUnavailableError(url, f"invalid JSON: {exc}") from exc

    def _fetch_paged(self) -> list[AppListEntry]:
        entries: list[AppListEntry] = []
        last_appid = 0

        for _ in range(_MAX_PAGES):
            payload = self._get_json(
                _STORE_URL,
                params={
                    "key": self.api_key,
                    "max_results": _PAGE_SIZE,
                    "last_appid": last_appid,
                    "include_games": True,
                    "include_dlc": True,
                    "include_software": True,
                },
            )
            try:
                page = parse_app_list(payload)
            except ValueError as exc:
                raise SourceUnavailableError(_STORE_URL, exc) from exc
            entries.extend(page)

            response = payload.get("response") or {}
            next_last_appid = int(response.get("last_appid") or 0)
            if not response.get("have_more_results") or not page or next_last_appid <= last_appid:
                break
            last_appid = next_last_appid

        return entries
