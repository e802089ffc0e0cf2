"""API clients for the metadata and pricing providers."""

from .rawg_client import RAWGClient
from .steam_client import SteamClient, extract_app_id, normalize_price

__all__ = [
    "RAWGClient",
    "SteamClient",
    "extract_app_id",
    "normalize_price",
]
