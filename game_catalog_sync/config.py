from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RetryConfig:
    retries: int = 3
    base_sleep_s: float = 1.0
    jitter_s: float = 0.3
    http_429_default_retry_after_s: float = 5.0


@dataclass(frozen=True)
class RequestConfig:
    timeout_s: int = 10


@dataclass(frozen=True)
class MatchingConfig:
    min_score: int = 65
    suggestions_limit: int = 5


@dataclass(frozen=True)
class CacheTTLConfig:
    # Seconds each provider response stays fresh. Entries simply expire; there is no
    # invalidation API.
    search_s: float = 3600.0
    listing_s: float = 3600.0
    details_s: float = 86400.0
    screenshots_s: float = 86400.0
    pricing_s: float = 43200.0
    storesearch_s: float = 3600.0


@dataclass(frozen=True)
class RAWGConfig:
    api_url: str = "https://api.rawg.io/api"
    min_interval_s: float = 0.5
    search_limit: int = 10
    screenshots_page_size: int = 6
    pc_platform_id: int = 4
    # Genre slugs that RAWG models as tags rather than genres.
    tag_genres: tuple[str, ...] = ("horror",)


@dataclass(frozen=True)
class SteamConfig:
    store_url: str = "https://store.steampowered.com"
    storesearch_min_interval_s: float = 0.5
    appdetails_min_interval_s: float = 1.2
    default_region: str = "us"
    cdn_url: str = "https://cdn.akamai.steamstatic.com/steam/apps"


@dataclass(frozen=True)
class PricingConfig:
    # Raw values above this threshold are minor units (cents).
    minor_unit_threshold: int = 100
    # Extra store regions queried to fill the per-currency price maps.
    extra_regions: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiscoveryConfig:
    min_query_length: int = 2
    local_limit: int = 20
    remote_limit: int = 5
    max_import_workers: int = 5


@dataclass(frozen=True)
class ImportConfig:
    page_size: int = 40
    max_pages: int = 5
    max_page_failures: int = 3
    top_target: int = 80
    popular_target: int = 30
    screenshots_limit: int = 6


RETRY = RetryConfig()
REQUEST = RequestConfig()
MATCHING = MatchingConfig()
CACHE_TTL = CacheTTLConfig()
RAWG = RAWGConfig()
STEAM = SteamConfig()
PRICING = PricingConfig()
DISCOVERY = DiscoveryConfig()
IMPORT = ImportConfig()

DATABASE_URL_ENV = "GAME_CATALOG_DATABASE_URL"
RAWG_API_KEY_ENV = "RAWG_API_KEY"


def default_database_url(root: str | Path | None = None) -> str:
    """
    Resolve the catalog database URL.

    The environment variable wins; otherwise a SQLite file under `<root>/data/`.
    """
    explicit = os.getenv(DATABASE_URL_ENV, "").strip()
    if explicit:
        return explicit
    base = Path(root) if root is not None else Path(__file__).resolve().parent.parent
    return f"sqlite:///{(base / 'data' / 'catalog.db').as_posix()}"
