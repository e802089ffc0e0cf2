from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import pandas as pd

from ..catalog.models import Game
from ..catalog.store import CatalogStore, title_key
from ..clients.rawg_client import RAWGClient
from ..config import IMPORT
from ..errors import CatalogSyncError
from ..models import FREE, PRICED, CompleteGameData, MetadataSummary
from .aggregator import GameAggregator

EXPORT_COLUMNS = [
    "id",
    "title",
    "rawg_id",
    "steam_app_id",
    "released",
    "genres",
    "platforms",
    "developer",
    "publisher",
    "score",
    "metacritic",
    "price",
    "currency",
    "discount",
    "on_sale",
    "original_price",
    "is_owned",
    "image",
]


@dataclass
class ImportReport:
    checked: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0
    games: list[dict[str, Any]] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"checked={self.checked} added={self.added} skipped={self.skipped} failed={self.failed}"
        )


def _accept_priced_or_free(data: CompleteGameData) -> bool:
    return data.pricing.status in (PRICED, FREE)


def _accept_positive_price(data: CompleteGameData) -> bool:
    return data.pricing.status == PRICED and (data.price or 0) > 0


class CatalogImporter:
    """
    Bulk-seed the catalog from RAWG listings.

    Runs are dry by default: accepted games are collected into the report without touching the
    database. With `commit=True` each accepted game is upserted by rawg id.
    """

    def __init__(
        self,
        store: CatalogStore,
        rawg: RAWGClient,
        aggregator: GameAggregator,
        *,
        screenshots_limit: int = IMPORT.screenshots_limit,
        max_page_failures: int = IMPORT.max_page_failures,
    ):
        self.store = store
        self.rawg = rawg
        self.aggregator = aggregator
        self.screenshots_limit = screenshots_limit
        self.max_page_failures = max_page_failures

    def import_game(self, rawg_id: int, steam_app_id: int | None = None) -> Game:
        """Aggregate one game and add it to the catalog; an existing title is returned as-is."""
        data = self.aggregator.aggregate(rawg_id, steam_app_id)
        data.screenshots = self.rawg.get_screenshots(rawg_id)[: self.screenshots_limit]
        return self.store.create_game(data.to_catalog_fields())

    def import_popular(
        self,
        target: int = IMPORT.popular_target,
        genres: Iterable[str] | None = None,
        *,
        page_size: int = IMPORT.page_size,
        max_pages: int = IMPORT.max_pages,
        commit: bool = False,
    ) -> ImportReport:
        """Popular PC games, up to `target` per genre slug (or overall when no genres are given)."""
        report = ImportReport()
        known_ids, known_titles = self.store.known_keys()
        processed: set[int] = set()
        for genre in list(genres or []) or [None]:
            label = genre or "all"
            logging.info(f"[IMPORT] Popular games, genre={label}, target={target}")

            def fetch(page: int, genre: str | None = genre) -> list[MetadataSummary]:
                return self.rawg.fetch_popular(page=page, page_size=page_size, genre=genre)

            self._walk(
                fetch,
                target=target,
                max_pages=max_pages,
                accept=_accept_priced_or_free,
                known_ids=known_ids,
                known_titles=known_titles,
                processed=processed,
                commit=commit,
                report=report,
                label=label,
            )
        logging.info(f"[IMPORT] Popular games done: {report.summary()}")
        return report

    def import_top(
        self,
        start: str,
        end: str,
        target: int = IMPORT.top_target,
        *,
        page_size: int = IMPORT.page_size,
        max_pages: int = IMPORT.max_pages,
        commit: bool = False,
    ) -> ImportReport:
        """Best-reviewed games released in [start, end]; only games with a positive price count."""
        report = ImportReport()
        known_ids, known_titles = self.store.known_keys()
        logging.info(f"[IMPORT] Top games {start}..{end}, target={target}")

        def fetch(page: int) -> list[MetadataSummary]:
            return self.rawg.fetch_by_date_range(start, end, page=page, page_size=page_size)

        self._walk(
            fetch,
            target=target,
            max_pages=max_pages,
            accept=_accept_positive_price,
            known_ids=known_ids,
            known_titles=known_titles,
            processed=set(),
            commit=commit,
            report=report,
            label=f"{start}..{end}",
        )
        logging.info(f"[IMPORT] Top games done: {report.summary()}")
        return report

    def _walk(
        self,
        fetch: Callable[[int], list[MetadataSummary]],
        *,
        target: int,
        max_pages: int,
        accept: Callable[[CompleteGameData], bool],
        known_ids: set[int],
        known_titles: set[str],
        processed: set[int],
        commit: bool,
        report: ImportReport,
        label: str,
    ) -> None:
        added = 0
        page = 1
        page_failures = 0
        while added < target and page <= max_pages and page_failures < self.max_page_failures:
            try:
                candidates = fetch(page)
            except CatalogSyncError as e:
                page_failures += 1
                logging.error(
                    f"[IMPORT] Listing page {page} failed for {label} "
                    f"({page_failures}/{self.max_page_failures}): {e}"
                )
                continue
            if not candidates:
                logging.warning(f"[IMPORT] No more games for {label} at page {page}")
                break

            for candidate in candidates:
                if added >= target:
                    break
                if (
                    candidate.rawg_id in known_ids
                    or candidate.rawg_id in processed
                    or title_key(candidate.name) in known_titles
                ):
                    report.skipped += 1
                    continue
                processed.add(candidate.rawg_id)
                report.checked += 1
                fields = self._process(candidate, accept=accept, commit=commit, report=report)
                if fields is None:
                    continue
                added += 1
                known_ids.add(candidate.rawg_id)
                known_titles.add(title_key(fields["title"]))
            page += 1

    def _process(
        self,
        candidate: MetadataSummary,
        *,
        accept: Callable[[CompleteGameData], bool],
        commit: bool,
        report: ImportReport,
    ) -> dict[str, Any] | None:
        try:
            data = self.aggregator.aggregate(candidate.rawg_id)
        except CatalogSyncError as e:
            report.failed += 1
            logging.error(f"[IMPORT] Could not aggregate '{candidate.name}' ({candidate.rawg_id}): {e}")
            return None
        if not accept(data):
            report.skipped += 1
            logging.info(
                f"[IMPORT] Skipping '{data.title}': pricing status {data.pricing.status}"
                f" price={data.price}"
            )
            return None

        data.screenshots = self.rawg.get_screenshots(candidate.rawg_id)[: self.screenshots_limit]
        fields = data.to_catalog_fields()
        if commit:
            try:
                self.store.upsert_by_rawg_id(fields)
            except CatalogSyncError as e:
                report.failed += 1
                logging.error(f"[IMPORT] Could not save '{data.title}': {e}")
                return None
        report.added += 1
        report.games.append(fields)
        logging.info(f"[IMPORT] {'Saved' if commit else 'Would add'} '{data.title}' price={data.price}")
        return fields


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if value is None:
        return ""
    return value


def catalog_frame(rows: Iterable[Game | dict[str, Any]]) -> pd.DataFrame:
    records = []
    for row in rows:
        get = row.get if isinstance(row, dict) else (lambda k, r=row: getattr(r, k, None))
        records.append({col: _cell(get(col)) for col in EXPORT_COLUMNS})
    return pd.DataFrame(records, columns=EXPORT_COLUMNS)


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def export_catalog(store: CatalogStore, path: str | Path) -> int:
    """Write every catalog game to a CSV file; returns the row count."""
    games = store.all_games()
    write_csv(catalog_frame(games), path)
    logging.info(f"Exported {len(games)} games to {path}")
    return len(games)
