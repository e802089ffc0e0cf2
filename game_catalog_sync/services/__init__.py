"""Aggregation, discovery and bulk import on top of the provider clients and the catalog."""

from .aggregator import GameAggregator
from .discovery import DiscoveryResponse, DiscoveryService, UnifiedSearchResult
from .importer import CatalogImporter, ImportReport, export_catalog

__all__ = [
    "CatalogImporter",
    "DiscoveryResponse",
    "DiscoveryService",
    "GameAggregator",
    "ImportReport",
    "UnifiedSearchResult",
    "export_catalog",
]
