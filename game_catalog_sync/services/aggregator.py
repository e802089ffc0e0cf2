from __future__ import annotations

import logging
import math

from ..clients.parse import parse_iso_date
from ..clients.rawg_client import RAWGClient
from ..clients.steam_client import SteamClient, extract_app_id, normalize_price
from ..config import PRICING, STEAM
from ..models import (
    FREE,
    NO_PRICE_OVERVIEW,
    NO_STORE_ID,
    NOT_FOUND,
    PRICED,
    UNAVAILABLE,
    CompleteGameData,
    MetadataRecord,
    PricingOutcome,
)


def score_from_rating(rating: float | None) -> int | None:
    """RAWG rates 0-5; the catalog scores 0-10, rounding halves up."""
    if not rating:
        return None
    return int(math.floor(rating * 2 + 0.5))


class GameAggregator:
    """
    Combine one RAWG metadata record with optional Steam pricing into a catalog-ready record.

    Only missing metadata is fatal: `NotFoundError` (and an unreachable RAWG) propagate. Every
    pricing step degrades to a PricingOutcome status instead of raising.
    """

    def __init__(
        self,
        rawg: RAWGClient,
        steam: SteamClient,
        *,
        region: str = STEAM.default_region,
        extra_regions: tuple[str, ...] = PRICING.extra_regions,
    ):
        self.rawg = rawg
        self.steam = steam
        self.region = region
        self.extra_regions = tuple(r for r in extra_regions if r != region)

    def aggregate(self, rawg_id: int, steam_app_id: int | None = None) -> CompleteGameData:
        record = self.rawg.get_details(rawg_id)
        data = self._base_record(record)
        store_id = self.resolve_store_id(record, steam_app_id)
        data.pricing = self._pricing(store_id, record.name)
        if not data.image and store_id:
            data.image = self.steam.cover_url(store_id)
        return data

    @staticmethod
    def _base_record(record: MetadataRecord) -> CompleteGameData:
        return CompleteGameData(
            title=record.name,
            rawg_id=record.rawg_id,
            description=record.description,
            image=record.cover,
            genres=list(record.genres),
            platforms=list(record.platforms),
            developer=record.developers[0] if record.developers else None,
            publisher=record.publishers[0] if record.publishers else None,
            score=score_from_rating(record.rating),
            released=parse_iso_date(record.released),
            metacritic=record.metacritic,
            screenshots=[],
        )

    def resolve_store_id(self, record: MetadataRecord, explicit: int | None = None) -> int | None:
        """
        Steam App ID for a metadata record, in priority order: explicit id, a Steam store link
        from RAWG, the official website when it is a Steam page, then a Steam name search.
        """
        if explicit:
            return int(explicit)
        for store in record.stores:
            if "steam" in store.name.lower() and store.url:
                app_id = extract_app_id(store.url)
                if app_id:
                    return app_id
        if "store.steampowered.com" in record.website:
            app_id = extract_app_id(record.website)
            if app_id:
                return app_id
        app_id = self.steam.search_appid(record.name)
        if app_id:
            logging.info(f"Found Steam App ID via search for '{record.name}': {app_id}")
        return app_id

    def _pricing(self, store_id: int | None, title: str) -> PricingOutcome:
        if not store_id:
            return PricingOutcome(status=NO_STORE_ID)
        try:
            details = self.steam.get_app_details(store_id, self.region)
        except Exception as e:
            logging.warning(f"Could not fetch Steam data for App ID {store_id} ('{title}'): {e}")
            return PricingOutcome(status=UNAVAILABLE, store_id=store_id, detail=str(e))
        if details is None:
            return PricingOutcome(status=NOT_FOUND, store_id=store_id)

        overview = details.price_overview
        if overview is None:
            if details.is_free:
                return PricingOutcome(
                    status=FREE,
                    store_id=store_id,
                    price=0.0,
                    discount=0,
                    original_price=0.0,
                    is_free=True,
                )
            logging.info(f"Steam App ID {store_id} ('{title}') has no price data")
            return PricingOutcome(status=NO_PRICE_OVERVIEW, store_id=store_id)

        price = normalize_price(overview.final)
        original = normalize_price(overview.initial)
        prices: dict[str, float] = {}
        original_prices: dict[str, float] = {}
        if price is not None:
            prices[overview.currency.lower()] = price
        if original is not None:
            original_prices[overview.currency.lower()] = original
        for region in self.extra_regions:
            self._regional_price(store_id, region, prices, original_prices)

        return PricingOutcome(
            status=PRICED,
            store_id=store_id,
            price=price,
            currency=overview.currency,
            discount=overview.discount_percent,
            on_sale=overview.discount_percent > 0,
            original_price=original,
            is_free=details.is_free,
            prices=prices,
            original_prices=original_prices,
        )

    def _regional_price(
        self,
        store_id: int,
        region: str,
        prices: dict[str, float],
        original_prices: dict[str, float],
    ) -> None:
        try:
            details = self.steam.get_app_details(store_id, region)
        except Exception as e:
            logging.warning(f"Steam price for App ID {store_id} in region '{region}' unavailable: {e}")
            return
        if details is None or details.price_overview is None:
            return
        overview = details.price_overview
        key = overview.currency.lower()
        price = normalize_price(overview.final)
        original = normalize_price(overview.initial)
        if price is not None:
            prices.setdefault(key, price)
        if original is not None:
            original_prices.setdefault(key, original)
