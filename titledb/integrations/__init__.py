from __future__ import annotations

__all__: list[str] = ["AppListClient", "AppListEntry", "CompletionTimeClient", "CompletionTimeRow"]

from titledb.integrations.app_list import AppListClient, AppListEntry
from titledb.integrations.hltb_feed import CompletionTimeClient, CompletionTimeRow
