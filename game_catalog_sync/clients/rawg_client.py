from __future__ import annotations

import logging
from typing import Any

import requests

from ..config import CACHE_TTL, RAWG, RETRY
from ..errors import NotFoundError, UpstreamUnavailableError
from ..models import MetadataRecord, MetadataSummary, StoreLink
from ..utils.ttl_cache import TTLCache
from ..utils.utilities import RateLimiter
from .http_client import ConfiguredHTTPJSONClient, HTTPJSONClient, HTTPRequestDefaults
from .parse import as_float, as_int, as_str, get_list_of_dicts, names_of

_NOT_FOUND = object()


class RAWGClient:
    """
    Metadata provider client for the RAWG games database.

    Every call is read-through cached in the injected TTLCache; search/listing failures raise
    UpstreamUnavailableError so callers choose how to degrade.
    """

    def __init__(
        self,
        api_key: str,
        cache: TTLCache | None = None,
        *,
        api_url: str = RAWG.api_url,
        min_interval_s: float = RAWG.min_interval_s,
        retries: int = RETRY.retries,
    ):
        self._session = requests.Session()
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.stats: dict[str, int] = {
            "search_fetch": 0,
            "details_fetch": 0,
            "screenshots_fetch": 0,
            "listing_fetch": 0,
            # HTTP request counters (attempts, including retries).
            "http_get": 0,
        }
        self.cache = cache if cache is not None else TTLCache(CACHE_TTL.search_s)
        self.ratelimiter = RateLimiter(min_interval_s=min_interval_s)
        self._http = ConfiguredHTTPJSONClient(
            HTTPJSONClient(self._session, stats=self.stats),
            HTTPRequestDefaults(
                ratelimiter=self.ratelimiter,
                retries=retries,
                counter_key="http_get",
                context_prefix="RAWG",
            ),
        )

    def _get(self, path: str, params: dict[str, Any], *, context: str, **kwargs: Any) -> Any:
        merged = dict(params)
        merged["key"] = self.api_key
        return self._http.get_json(f"{self.api_url}{path}", params=merged, context=context, **kwargs)

    # ----------------------------
    # Search / listings
    # ----------------------------
    @staticmethod
    def _summary_from_result(raw: dict[str, Any]) -> MetadataSummary | None:
        rawg_id = as_int(raw.get("id"))
        if rawg_id is None:
            return None
        return MetadataSummary(
            rawg_id=rawg_id,
            name=as_str(raw.get("name")),
            cover=as_str(raw.get("background_image")),
            rating=as_float(raw.get("rating")),
            platforms=names_of(raw.get("platforms"), nested="platform"),
            genres=names_of(raw.get("genres")),
            released=as_str(raw.get("released")),
            metacritic=as_int(raw.get("metacritic")),
        )

    def _listing(
        self,
        cache_key: str,
        params: dict[str, Any],
        *,
        ttl_s: float,
        counter: str,
        context: str,
    ) -> list[MetadataSummary]:
        found, cached = self.cache.lookup(cache_key)
        if found:
            logging.debug(f"Serving RAWG {context} from cache")
            return list(cached)
        data = self._get("/games", params, context=context)
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"RAWG: {context} returned an unexpected payload")
        results = []
        for raw in get_list_of_dicts(data.get("results")):
            summary = self._summary_from_result(raw)
            if summary is not None:
                results.append(summary)
        self.cache.set(cache_key, results, ttl_s)
        self.stats[counter] += 1
        return list(results)

    def search(self, query: str, limit: int = RAWG.search_limit) -> list[MetadataSummary]:
        return self._listing(
            f"search:{query}:{limit}",
            {"search": query, "page_size": limit},
            ttl_s=CACHE_TTL.search_s,
            counter="search_fetch",
            context=f"search term={query!r}",
        )

    def fetch_popular(
        self, page: int = 1, page_size: int = 40, genre: str | None = None
    ) -> list[MetadataSummary]:
        """
        Popular PC games (most added to collections first), optionally restricted to a genre.

        Some genre slugs only exist as RAWG tags (see RAWG.tag_genres).
        """
        genre_key = f":{genre}" if genre else ""
        cache_key = f"popular_pc:{page}:{page_size}{genre_key}"
        params: dict[str, Any] = {
            "platforms": RAWG.pc_platform_id,
            "ordering": "-added",
            "page": page,
            "page_size": page_size,
        }
        if genre:
            if genre in RAWG.tag_genres:
                params["tags"] = genre
            else:
                params["genres"] = genre
        return self._listing(
            cache_key,
            params,
            ttl_s=CACHE_TTL.listing_s,
            counter="listing_fetch",
            context=f"popular page={page}{genre_key}",
        )

    def fetch_by_date_range(
        self, start: str, end: str, page: int = 1, page_size: int = 40
    ) -> list[MetadataSummary]:
        """Best-reviewed games released between `start` and `end` (YYYY-MM-DD)."""
        cache_key = f"top_games:{start}:{end}:{page}:{page_size}"
        params = {
            "dates": f"{start},{end}",
            "ordering": "-metacritic",
            "page": page,
            "page_size": page_size,
        }
        return self._listing(
            cache_key,
            params,
            ttl_s=CACHE_TTL.listing_s,
            counter="listing_fetch",
            context=f"top games {start}..{end} page={page}",
        )

    # ----------------------------
    # Details
    # ----------------------------
    @staticmethod
    def record_from_payload(game: dict[str, Any]) -> MetadataRecord:
        stores = []
        for s in get_list_of_dicts(game.get("stores")):
            store = s.get("store") if isinstance(s.get("store"), dict) else {}
            stores.append(StoreLink(name=as_str(store.get("name")), url=as_str(s.get("url"))))
        return MetadataRecord(
            rawg_id=int(game["id"]),
            name=as_str(game.get("name")),
            description=as_str(game.get("description_raw")),
            cover=as_str(game.get("background_image")),
            rating=as_float(game.get("rating")),
            metacritic=as_int(game.get("metacritic")),
            platforms=names_of(game.get("platforms"), nested="platform"),
            genres=names_of(game.get("genres")),
            developers=names_of(game.get("developers")),
            publishers=names_of(game.get("publishers")),
            released=as_str(game.get("released")),
            website=as_str(game.get("website")),
            stores=stores,
        )

    def get_details(self, rawg_id: int) -> MetadataRecord:
        cache_key = f"details:{rawg_id}"
        found, cached = self.cache.lookup(cache_key)
        if found:
            logging.debug(f"Serving RAWG details from cache: {rawg_id}")
            return cached
        data = self._get(
            f"/games/{rawg_id}",
            {},
            context=f"get_details id={rawg_id}",
            status_handlers={404: _NOT_FOUND},
        )
        if data is _NOT_FOUND:
            raise NotFoundError(f"Game {rawg_id} not found in RAWG")
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"RAWG: get_details id={rawg_id} returned an unexpected payload")
        if as_int(data.get("id")) is None:
            raise NotFoundError(f"Game {rawg_id} not found in RAWG")
        record = self.record_from_payload(data)
        self.cache.set(cache_key, record, CACHE_TTL.details_s)
        self.stats["details_fetch"] += 1
        return record

    def get_screenshots(self, rawg_id: int) -> list[str]:
        """Screenshot URLs for a game; best-effort, failures yield []."""
        cache_key = f"screenshots:{rawg_id}"
        found, cached = self.cache.lookup(cache_key)
        if found:
            return list(cached)
        try:
            data = self._get(
                f"/games/{rawg_id}/screenshots",
                {"page_size": RAWG.screenshots_page_size},
                context=f"screenshots id={rawg_id}",
            )
        except UpstreamUnavailableError as e:
            logging.warning(f"RAWG screenshots unavailable for {rawg_id}: {e}")
            return []
        if not isinstance(data, dict):
            logging.warning(f"RAWG screenshots for {rawg_id} returned an unexpected payload")
            return []
        urls = [as_str(s.get("image")) for s in get_list_of_dicts(data.get("results"))]
        urls = [u for u in urls if u]
        self.cache.set(cache_key, urls, CACHE_TTL.screenshots_s)
        self.stats["screenshots_fetch"] += 1
        return urls

    def format_cache_stats(self) -> str:
        s = self.stats
        return (
            f"search fetch={s['search_fetch']} details fetch={s['details_fetch']} "
            f"screenshots fetch={s['screenshots_fetch']} listing fetch={s['listing_fetch']}, "
            f"{TTLCache.format_stats(self.cache.stats)}, "
            f"{HTTPJSONClient.format_timing(s, key='http_get')}"
        )
