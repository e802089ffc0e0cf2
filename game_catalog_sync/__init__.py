"""Game Catalog Sync - Search a local game catalog and grow it from RAWG metadata and Steam pricing."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("game-catalog-sync")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"
