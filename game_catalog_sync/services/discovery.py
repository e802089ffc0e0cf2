from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from ..catalog.models import Game
from ..catalog.store import CatalogStore, SearchFilters
from ..clients.rawg_client import RAWGClient
from ..config import DISCOVERY
from ..models import MetadataSummary
from ..utils.utilities import compact_title
from .aggregator import GameAggregator

LOCAL = "local"
MIXED = "mixed"


@dataclass(frozen=True)
class UnifiedSearchResult:
    """
    Safe projection of one catalog game as returned by discovery search.

    Every result is a local row once discovery returns, so `is_external` stays False. Ownership
    is not computed on this path and `in_library` stays False too.
    """

    id: int
    title: str
    image: str | None = None
    price: float | None = None
    currency: str | None = None
    genres: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    developer: str | None = None
    publisher: str | None = None
    score: float | None = None
    metacritic: int | None = None
    rawg_id: int | None = None
    is_external: bool = False
    in_library: bool = False

    @classmethod
    def from_game(cls, game: Game) -> UnifiedSearchResult:
        return cls(
            id=game.id,
            title=game.title,
            image=game.image,
            price=game.price,
            currency=game.currency,
            genres=list(game.genres or []),
            platforms=list(game.platforms or []),
            developer=game.developer,
            publisher=game.publisher,
            score=game.score,
            metacritic=game.metacritic,
            rawg_id=game.rawg_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "image": self.image,
            "price": self.price,
            "currency": self.currency,
            "genres": list(self.genres),
            "platforms": list(self.platforms),
            "developer": self.developer,
            "publisher": self.publisher,
            "stats": {"score": self.score, "rating": self.metacritic},
            "rawgId": self.rawg_id,
            "isExternal": self.is_external,
            "inLibrary": self.in_library,
        }


@dataclass
class DiscoveryResponse:
    results: list[UnifiedSearchResult] = field(default_factory=list)
    source: str = LOCAL

    def to_dict(self) -> dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results], "source": self.source}


class DiscoveryService:
    """
    Search the local catalog and grow it on demand from RAWG.

    Remote hits that are not in the catalog yet (by rawg id or compacted title) are aggregated
    with pricing and persisted before the response is returned, so every result is a local row.
    Remote failures degrade to local-only results; a failing candidate is skipped.
    """

    def __init__(
        self,
        store: CatalogStore,
        rawg: RAWGClient,
        aggregator: GameAggregator,
        *,
        max_workers: int = DISCOVERY.max_import_workers,
        local_limit: int = DISCOVERY.local_limit,
        remote_limit: int = DISCOVERY.remote_limit,
        min_query_length: int = DISCOVERY.min_query_length,
    ):
        self.store = store
        self.rawg = rawg
        self.aggregator = aggregator
        self.max_workers = max(1, max_workers)
        self.local_limit = local_limit
        self.remote_limit = remote_limit
        self.min_query_length = min_query_length

    def search_and_sync(self, query: str, filters: SearchFilters | None = None) -> DiscoveryResponse:
        q = str(query or "").strip()
        if len(q) < self.min_query_length:
            return DiscoveryResponse(results=[], source=LOCAL)

        local = self.store.search_text(q, filters, limit=self.local_limit)

        try:
            remote = self.rawg.search(q, limit=self.remote_limit)
        except Exception as e:
            logging.warning(f"[DISCOVERY] Remote search failed for '{q}', serving local results: {e}")
            return DiscoveryResponse(results=[UnifiedSearchResult.from_game(g) for g in local], source=LOCAL)

        candidates = self.new_candidates(local, remote)
        imported = self._import_all(candidates)
        if filters is not None and not filters.is_empty():
            imported = [g for g in imported if filters.matches(g)]

        logging.info(
            f"[DISCOVERY] '{q}': local={len(local)} remote={len(remote)} "
            f"new={len(candidates)} imported={len(imported)}"
        )
        results = [UnifiedSearchResult.from_game(g) for g in [*local, *imported]]
        return DiscoveryResponse(results=results, source=MIXED)

    @staticmethod
    def new_candidates(local: list[Game], remote: list[MetadataSummary]) -> list[MetadataSummary]:
        """Remote hits whose rawg id and compacted title are unseen locally (and earlier in `remote`)."""
        seen_titles = {compact_title(g.title) for g in local}
        seen_ids = {g.rawg_id for g in local if g.rawg_id is not None}
        out = []
        for candidate in remote:
            key = compact_title(candidate.name)
            if not key or key in seen_titles or candidate.rawg_id in seen_ids:
                continue
            seen_titles.add(key)
            seen_ids.add(candidate.rawg_id)
            out.append(candidate)
        return out

    def _import_one(self, candidate: MetadataSummary) -> Game | None:
        # The local page is capped and filtered, so check the whole catalog before fetching details.
        if self.store.exists_by_rawg_id(candidate.rawg_id):
            return None
        if self.store.exists_by_title(candidate.name):
            return None
        data = self.aggregator.aggregate(candidate.rawg_id)
        game, created = self.store.insert_if_absent(data.to_catalog_fields())
        if created:
            logging.info(f"[DISCOVERY] Imported '{data.title}' (rawg id {candidate.rawg_id})")
        return game

    def _import_all(self, candidates: list[MetadataSummary]) -> list[Game]:
        """Import candidates in parallel; the result keeps the remote ranking order."""
        if not candidates:
            return []
        imported: list[Game | None] = [None] * len(candidates)
        workers = min(self.max_workers, len(candidates))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self._import_one, c): i for i, c in enumerate(candidates)}
            for future in as_completed(futures):
                i = futures[future]
                try:
                    imported[i] = future.result()
                except Exception as e:
                    c = candidates[i]
                    logging.error(f"[DISCOVERY] Failed to import '{c.name}' (rawg id {c.rawg_id}): {e}")
        return [g for g in imported if g is not None]
