"""
Central version management for titledb.
"""

from __future__ import annotations

__all__ = ["__app_name__", "__version__", "__release_date__", "__author__", "__license__"]

__app_name__ = "titledb"
__version__ = "0.3.0"
__release_date__ = "2026-10-19"
__author__ = "SwitchBros"
__license__ = "MIT"
