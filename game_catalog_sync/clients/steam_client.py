from __future__ import annotations

import logging
import re
from typing import Any

import requests

from ..config import CACHE_TTL, MATCHING, PRICING, RETRY, STEAM
from ..errors import CatalogSyncError, UpstreamUnavailableError
from ..models import PriceOverview, PricingRecord
from ..utils.ttl_cache import TTLCache
from ..utils.utilities import RateLimiter, looks_dlc_like, normalize_game_name, pick_best_match
from .http_client import ConfiguredHTTPJSONClient, HTTPJSONClient, HTTPRequestDefaults
from .parse import as_int, as_str, get_list_of_dicts

_APP_ID_RE = re.compile(r"/app/(\d+)")


def extract_app_id(url: str) -> int | None:
    """
    Extract the Steam App ID from a store URL.

    Example: https://store.steampowered.com/app/1245620/ELDEN_RING/ -> 1245620
    """
    m = _APP_ID_RE.search(str(url or ""))
    return int(m.group(1)) if m else None


def normalize_price(value: object) -> float | None:
    """
    Convert a raw Steam price to major units.

    Steam reports cents (4000 -> 40.00), but some records already carry major units; only
    values above PRICING.minor_unit_threshold are divided by 100.
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value > PRICING.minor_unit_threshold:
        return round(value / 100.0, 2)
    return float(value)


class SteamClient:
    """
    Pricing provider client for the Steam storefront.

    appdetails is cached per (app id, region); storesearch is cached per term.
    """

    def __init__(
        self,
        cache: TTLCache | None = None,
        *,
        store_url: str = STEAM.store_url,
        min_interval_s: float = STEAM.storesearch_min_interval_s,
        retries: int = RETRY.retries,
    ):
        self._session = requests.Session()
        base_http = HTTPJSONClient(self._session, stats=None)
        self.store_url = store_url.rstrip("/")
        self.stats: dict[str, int] = {
            "by_query_fetch": 0,
            "by_query_negative_fetch": 0,
            "by_id_fetch": 0,
            "by_id_negative_fetch": 0,
            # HTTP request counters (attempts, including retries).
            "http_storesearch": 0,
            "http_appdetails": 0,
        }
        base_http.stats = self.stats
        self.cache = cache if cache is not None else TTLCache(CACHE_TTL.pricing_s)
        # storesearch and appdetails have different rate limits; appdetails is much stricter.
        self.storesearch_ratelimiter = RateLimiter(min_interval_s=min_interval_s)
        self.appdetails_ratelimiter = RateLimiter(
            min_interval_s=max(min_interval_s, STEAM.appdetails_min_interval_s)
            if min_interval_s > 0
            else 0.0
        )
        self._storesearch_http = ConfiguredHTTPJSONClient(
            base_http,
            HTTPRequestDefaults(
                ratelimiter=self.storesearch_ratelimiter,
                retries=retries,
                counter_key="http_storesearch",
                context_prefix="Steam storesearch",
            ),
        )
        self._appdetails_http = ConfiguredHTTPJSONClient(
            base_http,
            HTTPRequestDefaults(
                ratelimiter=self.appdetails_ratelimiter,
                retries=retries,
                base_sleep_s=max(2.0, RETRY.base_sleep_s),
                counter_key="http_appdetails",
                context_prefix="Steam appdetails",
            ),
        )

    extract_app_id = staticmethod(extract_app_id)
    normalize_price = staticmethod(normalize_price)

    @staticmethod
    def cover_url(app_id: int) -> str:
        return f"{STEAM.cdn_url}/{app_id}/header.jpg"

    # -------------------------------------------------
    # Search AppID by name
    # -------------------------------------------------
    def _storesearch(self, term: str) -> list[dict[str, Any]]:
        query_key = f"storesearch:l:english|cc:US|term:{term}"
        found, cached = self.cache.lookup(query_key)
        if found:
            return cached
        data = self._storesearch_http.get_json(
            f"{self.store_url}/api/storesearch",
            params={"term": term, "l": "english", "cc": "US"},
            context=f"term={term!r}",
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"Steam storesearch term={term!r} returned an unexpected payload")
        items = [it for it in get_list_of_dicts(data.get("items")) if as_int(it.get("id")) is not None]
        # Empty results are cached too (negative cache).
        self.cache.set(query_key, items, CACHE_TTL.storesearch_s)
        self.stats["by_query_fetch"] += 1
        if not items:
            self.stats["by_query_negative_fetch"] += 1
        return items

    def search_appid(self, title: str) -> int | None:
        """
        Find the Steam App ID for a title. Never raises: price lookup is best-effort.

        App-typed results are preferred over subs/bundles, then the fuzzy matcher ranks what is
        left, falling back to upstream order on ties.
        """
        term = str(title or "").strip()
        if not term:
            return None
        try:
            items = self._storesearch(term)
        except CatalogSyncError as e:
            logging.warning(f"Steam search failed for '{term}': {e}")
            return None
        if not items:
            logging.info(f"Not found on Steam: '{term}'. No results from API.")
            return None

        apps = [it for it in items if as_str(it.get("type")).lower() in {"app", "game", ""}]
        candidates = apps or items
        if not looks_dlc_like(term):
            non_dlc = [it for it in candidates if not looks_dlc_like(as_str(it.get("name")))]
            candidates = non_dlc or candidates

        # Exact normalized title matches win outright ("Diablo" must not become "Diablo IV").
        q_norm = normalize_game_name(term)
        exact = [it for it in candidates if normalize_game_name(as_str(it.get("name"))) == q_norm]
        if exact:
            return as_int(exact[0].get("id"))

        best, score, top_matches = pick_best_match(term, candidates, name_key="name")
        if best is None:
            return None
        if score < MATCHING.min_score:
            logging.info(
                f"Weak Steam match for '{term}': '{as_str(best.get('name'))}' (score: {score}%)"
            )
        elif score < 100 and top_matches:
            top_names = [f"'{name}' ({s}%)" for name, s in top_matches[: MATCHING.suggestions_limit]]
            logging.info(
                f"Close match for '{term}': Selected '{as_str(best.get('name'))}' (score: {score}%), "
                f"alternatives: {', '.join(top_names)}"
            )
        return as_int(best.get("id"))

    # -------------------------------------------------
    # Pricing
    # -------------------------------------------------
    @staticmethod
    def record_from_payload(data: dict[str, Any]) -> PricingRecord:
        overview = data.get("price_overview")
        price_overview = None
        if isinstance(overview, dict):
            initial = as_int(overview.get("initial"))
            final = as_int(overview.get("final"))
            if final is not None:
                price_overview = PriceOverview(
                    currency=as_str(overview.get("currency")) or "USD",
                    initial=initial if initial is not None else final,
                    final=final,
                    discount_percent=as_int(overview.get("discount_percent")) or 0,
                )
        return PricingRecord(
            name=as_str(data.get("name")),
            is_free=bool(data.get("is_free")),
            price_overview=price_overview,
        )

    def get_app_details(self, app_id: int, region: str = STEAM.default_region) -> PricingRecord | None:
        """
        Price/discount data for an app in a store region.

        Returns None when Steam reports the app as not found; raises UpstreamUnavailableError
        on transport or parse failure.
        """
        cache_key = f"appdetails:{app_id}:{region}"
        found, cached = self.cache.lookup(cache_key)
        if found:
            logging.debug(f"Serving Steam details from cache: {app_id} ({region})")
            return cached
        data = self._appdetails_http.get_json(
            f"{self.store_url}/api/appdetails",
            params={"appids": app_id, "cc": region, "l": "english"},
            context=f"appid={app_id} cc={region}",
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"Steam appdetails appid={app_id} returned an unexpected payload")
        entry = data.get(str(app_id))
        payload = entry.get("data") if isinstance(entry, dict) and entry.get("success") else None
        if not isinstance(payload, dict):
            logging.warning(f"Steam game not found for App ID: {app_id}")
            self.cache.set(cache_key, None, CACHE_TTL.pricing_s)
            self.stats["by_id_negative_fetch"] += 1
            return None
        record = self.record_from_payload(payload)
        self.cache.set(cache_key, record, CACHE_TTL.pricing_s)
        self.stats["by_id_fetch"] += 1
        return record

    def format_cache_stats(self) -> str:
        s = self.stats
        return (
            f"by_query fetch={s['by_query_fetch']} (neg fetch={s['by_query_negative_fetch']}), "
            f"by_id fetch={s['by_id_fetch']} (neg fetch={s['by_id_negative_fetch']}), "
            f"{TTLCache.format_stats(self.cache.stats)}, "
            f"{HTTPJSONClient.format_timing(s, key='http_storesearch')}, "
            f"{HTTPJSONClient.format_timing(s, key='http_appdetails')}"
        )
