"""
Configuration - data paths, source URLs and store settings.
Settings are read from ``settings.json`` in the data directory and can be
overridden through environment variables (a ``.env`` file is honoured).
"""

from __future__ import annotations

import json
import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from titledb.core.language import StoreLanguage

logger = logging.getLogger("titledb.config")


__all__ = ["Config"]

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class Config:
    """
    Central configuration handling for titledb.
    Manages paths, source URLs, API keys and lookup settings.
    """

    DATA_DIR: Path = Path.home() / ".titledb"
    DATABASE_FILE: Path | None = None
    LOG_FILE: Path | None = None
    SETTINGS_FILE: Path | None = None

    STORE_LANGUAGE: StoreLanguage = StoreLanguage.ENGLISH

    # Sources
    APPINFO_PATH: Path | None = None
    APP_LIST_URL: str = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"
    HLTB_CSV_URL: str = ""
    STEAM_API_KEY: str | None = None

    REQUEST_TIMEOUT: float = 60.0
    INCLUDE_IMPUTED_TIMES: bool = False
    LOOKUP_DEPTH: int = 3

    def __post_init__(self):
        """Apply environment overrides and load persisted settings."""
        load_dotenv()

        env_data_dir = os.getenv("TITLEDB_DATA_DIR")
        if env_data_dir:
            self.DATA_DIR = Path(env_data_dir)
        if self.SETTINGS_FILE is None:
            self.SETTINGS_FILE = self.DATA_DIR / "settings.json"

        self._load_settings()
        self._apply_env()

        if self.DATABASE_FILE is None:
            self.DATABASE_FILE = self.DATA_DIR / "titledb.json"
        if self.LOG_FILE is None:
            self.LOG_FILE = self.DATA_DIR / "titledb.log"

        # Auto-detect the appinfo cache if missing
        if self.APPINFO_PATH is None:
            steam_path = self._find_steam_path()
            if steam_path is not None:
                candidate = steam_path / "appcache" / "appinfo.vdf"
                if candidate.exists():
                    self.APPINFO_PATH = candidate

    def _load_settings(self) -> None:
        """Load settings from JSON file."""
        if not self.SETTINGS_FILE.exists():
            return

        try:
            with open(self.SETTINGS_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)

            self.STORE_LANGUAGE = StoreLanguage.parse(data.get("store_language", self.STORE_LANGUAGE.value))

            appinfo_path = data.get("appinfo_path")
            if appinfo_path:
                self.APPINFO_PATH = Path(appinfo_path)

            self.APP_LIST_URL = data.get("app_list_url", self.APP_LIST_URL)
            self.HLTB_CSV_URL = data.get("hltb_csv_url", self.HLTB_CSV_URL)
            self.STEAM_API_KEY = data.get("steam_api_key", self.STEAM_API_KEY)
            self.REQUEST_TIMEOUT = float(data.get("request_timeout", self.REQUEST_TIMEOUT))
            self.INCLUDE_IMPUTED_TIMES = bool(data.get("include_imputed_times", self.INCLUDE_IMPUTED_TIMES))
            self.LOOKUP_DEPTH = int(data.get("lookup_depth", self.LOOKUP_DEPTH))

        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error("Failed to load settings from %s: %s", self.SETTINGS_FILE, e)

    def _apply_env(self) -> None:
        """Override settings with TITLEDB_* environment variables."""
        env_language = os.getenv("TITLEDB_STORE_LANGUAGE")
        if env_language:
            self.STORE_LANGUAGE = StoreLanguage.parse(env_language)

        env_appinfo = os.getenv("TITLEDB_APPINFO_PATH")
        if env_appinfo:
            self.APPINFO_PATH = Path(env_appinfo)

        self.APP_LIST_URL = os.getenv("TITLEDB_APP_LIST_URL", self.APP_LIST_URL)
        self.HLTB_CSV_URL = os.getenv("TITLEDB_HLTB_CSV_URL", self.HLTB_CSV_URL)

        env_key = os.getenv("STEAM_API_KEY")
        if env_key:
            self.STEAM_API_KEY = env_key

        try:
            env_timeout = os.getenv("TITLEDB_REQUEST_TIMEOUT")
            if env_timeout:
                self.REQUEST_TIMEOUT = float(env_timeout)
            env_depth = os.getenv("TITLEDB_LOOKUP_DEPTH")
            if env_depth:
                self.LOOKUP_DEPTH = int(env_depth)
        except ValueError as e:
            logger.error("Ignoring invalid numeric environment override: %s", e)

        env_imputed = os.getenv("TITLEDB_INCLUDE_IMPUTED_TIMES")
        if env_imputed:
            self.INCLUDE_IMPUTED_TIMES = _env_bool(env_imputed)

    def save(self) -> None:
        """Save current configuration to JSON file."""
        data = {
            "store_language": self.STORE_LANGUAGE.value,
            "appinfo_path": str(self.APPINFO_PATH) if self.APPINFO_PATH else "",
            "app_list_url": self.APP_LIST_URL,
            "hltb_csv_url": self.HLTB_CSV_URL,
            "steam_api_key": self.STEAM_API_KEY,
            "request_timeout": self.REQUEST_TIMEOUT,
            "include_imputed_times": self.INCLUDE_IMPUTED_TIMES,
            "lookup_depth": self.LOOKUP_DEPTH,
        }

        try:
            self.SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
            with open(self.SETTINGS_FILE, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error("Failed to save settings to %s: %s", self.SETTINGS_FILE, e)

    @staticmethod
    def _find_steam_path() -> Path | None:
        """Auto-detect Steam path on Linux and Windows."""
        system = platform.system()

        if system == "Windows":
            try:
                import winreg

                key = winreg.OpenKey(winreg.HKEY_CURRENT_USER, r"Software\Valve\Steam")
                path_str, _ = winreg.QueryValueEx(key, "SteamPath")
                path = Path(path_str)
                if path.exists():
                    return path
            except OSError:
                # Fallback to standard paths if registry fails
                common_paths = [Path(r"C:\Program Files (x86)\Steam"), Path(r"C:\Program Files\Steam")]
                for p in common_paths:
                    if p.exists():
                        return p

        else:
            paths = [
                Path.home() / ".steam" / "steam",
                Path.home() / ".local" / "share" / "Steam",
                Path.home() / "Library" / "Application Support" / "Steam",
            ]
            for p in paths:
                if p.exists():
                    return p.resolve() if p.is_symlink() else p

        return None
