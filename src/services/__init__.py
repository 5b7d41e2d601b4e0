"""Services that orchestrate collection across the source catalog."""

from src.services.ingestion_service import IngestionCoordinator, SourceRunResult

__all__ = ["IngestionCoordinator", "SourceRunResult"]
