"""Transient records exchanged between the provider clients and the services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass(frozen=True)
class MetadataSummary:
    rawg_id: int
    name: str
    cover: str = ""
    rating: float | None = None
    platforms: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    released: str = ""
    metacritic: int | None = None


@dataclass(frozen=True)
class StoreLink:
    name: str
    url: str


@dataclass(frozen=True)
class MetadataRecord:
    rawg_id: int
    name: str
    description: str = ""
    cover: str = ""
    rating: float | None = None
    metacritic: int | None = None
    platforms: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    released: str = ""
    website: str = ""
    stores: list[StoreLink] = field(default_factory=list)


@dataclass(frozen=True)
class PriceOverview:
    currency: str
    initial: int
    final: int
    discount_percent: int = 0


@dataclass(frozen=True)
class PricingRecord:
    name: str
    is_free: bool = False
    price_overview: PriceOverview | None = None


# Pricing outcome statuses. Only PRICED and FREE carry values; the rest record why pricing
# is absent without failing the aggregation.
PRICED = "priced"
FREE = "free"
NO_STORE_ID = "no_store_id"
NOT_FOUND = "not_found"
NO_PRICE_OVERVIEW = "no_price_overview"
UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class PricingOutcome:
    status: str
    store_id: int | None = None
    price: float | None = None
    currency: str | None = None
    discount: int | None = None
    on_sale: bool = False
    original_price: float | None = None
    is_free: bool = False
    prices: dict[str, float] = field(default_factory=dict)
    original_prices: dict[str, float] = field(default_factory=dict)
    detail: str = ""

    @property
    def has_price(self) -> bool:
        return self.status in (PRICED, FREE)


@dataclass
class CompleteGameData:
    title: str
    rawg_id: int
    description: str = ""
    image: str = ""
    genres: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    developer: str | None = None
    publisher: str | None = None
    score: int | None = None
    released: date | None = None
    metacritic: int | None = None
    screenshots: list[str] = field(default_factory=list)
    pricing: PricingOutcome = field(default_factory=lambda: PricingOutcome(status=NO_STORE_ID))

    @property
    def steam_app_id(self) -> int | None:
        return self.pricing.store_id if self.pricing.has_price else None

    @property
    def price(self) -> float | None:
        return self.pricing.price

    @property
    def currency(self) -> str | None:
        return self.pricing.currency

    @property
    def discount(self) -> int | None:
        return self.pricing.discount

    @property
    def on_sale(self) -> bool:
        return self.pricing.on_sale

    @property
    def original_price(self) -> float | None:
        return self.pricing.original_price

    def to_catalog_fields(self) -> dict[str, Any]:
        """Column values for a new catalog row; unpriced games default to 0 USD."""
        return {
            "title": self.title,
            "description": self.description or "No description available.",
            "image": self.image or None,
            "genres": list(self.genres),
            "platforms": list(self.platforms),
            "developer": self.developer or "Unknown",
            "publisher": self.publisher or "Unknown",
            "score": self.score,
            "released": self.released,
            "metacritic": self.metacritic,
            "screenshots": list(self.screenshots),
            "rawg_id": self.rawg_id,
            "steam_app_id": self.steam_app_id,
            "price": self.price if self.price is not None else 0.0,
            "currency": self.currency or "USD",
            "discount": self.discount,
            "on_sale": self.on_sale,
            "original_price": self.original_price,
            "prices": dict(self.pricing.prices),
            "original_prices": dict(self.pricing.original_prices),
        }
