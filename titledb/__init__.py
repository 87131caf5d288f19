"""titledb - local metadata store for Steam titles."""

from __future__ import annotations

from titledb.version import __app_name__, __version__

__all__: list[str] = ["__app_name__", "__version__"]
