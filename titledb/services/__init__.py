from __future__ import annotations

from titledb.services.ingestion_service import IngestionReport, IngestionService

__all__: list[str] = [
    "IngestionReport",
    "IngestionService",
]
