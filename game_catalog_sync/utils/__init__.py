"""Utility functions and helpers."""

from __future__ import annotations

from .ttl_cache import TTLCache
from .utilities import (
    RateLimiter,
    compact_title,
    fuzzy_score,
    load_credentials,
    normalize_game_name,
    pick_best_match,
    resolve_rawg_api_key,
    with_retries,
)

__all__ = [
    "RateLimiter",
    "TTLCache",
    "compact_title",
    "fuzzy_score",
    "load_credentials",
    "normalize_game_name",
    "pick_best_match",
    "resolve_rawg_api_key",
    "with_retries",
]
