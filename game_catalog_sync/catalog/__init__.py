"""Local game catalog persisted with SQLAlchemy."""

from .models import Game
from .store import CatalogPage, CatalogStore, SearchFilters

__all__ = ["CatalogPage", "CatalogStore", "Game", "SearchFilters"]
