from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import DuplicateGameError, NotFoundError
from ..utils.utilities import compact_title
from .db import init_db, make_engine, make_session_factory
from .models import Game

# title_key is derived from title on every write.
_WRITABLE_COLUMNS = {c.name for c in Game.__table__.columns} - {
    "id",
    "title_key",
    "created_at",
    "updated_at",
}

# Relevance weights for catalog search: title > genres > developer/publisher > platforms.
RELEVANCE_WEIGHTS = {
    "title": 10,
    "genres": 5,
    "developer": 3,
    "publisher": 3,
    "platforms": 1,
}

SORTABLE_FIELDS = {"released", "price", "title", "score", "metacritic", "created_at", "relevance"}


@dataclass(frozen=True)
class SearchFilters:
    """Optional case-insensitive substring filters shared by catalog and discovery search."""

    genre: str | None = None
    platform: str | None = None
    developer: str | None = None

    def is_empty(self) -> bool:
        return not (self.genre or self.platform or self.developer)

    def matches(self, game: Any) -> bool:
        if self.genre:
            needle = self.genre.lower()
            if not any(needle in str(g).lower() for g in (game.genres or [])):
                return False
        if self.developer:
            if not game.developer or self.developer.lower() not in game.developer.lower():
                return False
        if self.platform:
            needle = self.platform.lower()
            if not any(needle in str(p).lower() for p in (game.platforms or [])):
                return False
        return True


@dataclass
class CatalogPage:
    games: list[Game] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def title_key(title: str) -> str:
    """Catalog identity of a title: "ELDEN RING" and "Elden-Ring" are the same game."""
    title = str(title or "").strip()
    return compact_title(title) or title.lower()


def _writable(data: dict[str, Any]) -> dict[str, Any]:
    values = {k: v for k, v in data.items() if k in _WRITABLE_COLUMNS}
    if "title" in values:
        values["title"] = str(values["title"] or "").strip()
        if not values["title"]:
            raise ValueError("A catalog game needs a title")
        values["title_key"] = title_key(values["title"])
    return values


def _text_match(query: str, *, include_publisher: bool = False):
    """Case-insensitive substring match over the searchable text fields."""
    clauses = [
        Game.title.icontains(query, autoescape=True),
        cast(Game.genres, String).icontains(query, autoescape=True),
        Game.developer.icontains(query, autoescape=True),
        cast(Game.platforms, String).icontains(query, autoescape=True),
    ]
    if include_publisher:
        clauses.append(Game.publisher.icontains(query, autoescape=True))
    return or_(*clauses)


def _filter_clauses(filters: SearchFilters | None) -> list:
    if filters is None:
        return []
    clauses = []
    if filters.genre:
        clauses.append(cast(Game.genres, String).icontains(filters.genre, autoescape=True))
    if filters.developer:
        clauses.append(Game.developer.icontains(filters.developer, autoescape=True))
    if filters.platform:
        clauses.append(cast(Game.platforms, String).icontains(filters.platform, autoescape=True))
    return clauses


def _json_element(column, value: str):
    # Exact list membership: the serialized element including its quotes.
    return cast(column, String).contains(json.dumps(value, ensure_ascii=False), autoescape=True)


def relevance_score(game: Game, query: str) -> int:
    needle = query.lower()
    score = 0
    for field_name, weight in RELEVANCE_WEIGHTS.items():
        value = getattr(game, field_name)
        values = value if isinstance(value, list) else [value]
        if any(needle in str(v).lower() for v in values if v):
            score += weight
    return score


class CatalogStore:
    """
    The local persisted catalog. Titles are unique; that constraint is the only guard against
    two concurrent imports of the same game.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, *, create: bool = True) -> CatalogStore:
        engine = make_engine(database_url)
        if create:
            init_db(engine)
        return cls(make_session_factory(engine))

    def _session(self) -> Session:
        return self._session_factory()

    # ----------------------------
    # Writes
    # ----------------------------
    def create_game(self, data: dict[str, Any]) -> Game:
        """Insert a game unless one with the same title key exists, in which case return that one."""
        values = _writable({**data, "title": data.get("title")})
        key = values["title_key"]
        with self._session() as session:
            existing = session.scalars(select(Game).where(Game.title_key == key)).first()
            if existing is not None:
                return existing
            game = Game(**values)
            session.add(game)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.scalars(select(Game).where(Game.title_key == key)).first()
                if existing is None:
                    raise
                return existing
            return game

    def insert_if_absent(self, data: dict[str, Any]) -> tuple[Game | None, bool]:
        """
        Insert a new game; a title-key conflict means the catalog already has it, possibly
        because another import got there first.

        Returns (game, True) on insert and (None, False) when the title already exists.
        """
        values = _writable({**data, "title": data.get("title")})
        with self._session() as session:
            game = Game(**values)
            session.add(game)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logging.info(f"Catalog already has '{values['title']}'; treating it as imported")
                return None, False
            return game, True

    def upsert_by_rawg_id(self, data: dict[str, Any]) -> Game:
        rawg_id = data.get("rawg_id")
        if rawg_id is None:
            raise ValueError("upsert_by_rawg_id needs a rawg_id")
        values = _writable(data)
        with self._session() as session:
            game = session.scalars(select(Game).where(Game.rawg_id == rawg_id)).first()
            if game is None:
                game = Game(**values)
                session.add(game)
            else:
                for key, value in values.items():
                    setattr(game, key, value)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateGameError(
                    f"Another catalog game is already titled '{data.get('title')}'"
                ) from e
            return game

    def update_game(self, game_id: int, changes: dict[str, Any]) -> Game:
        with self._session() as session:
            game = session.get(Game, game_id)
            if game is None:
                raise NotFoundError(f"Game {game_id} not found in catalog")
            for key, value in _writable(changes).items():
                setattr(game, key, value)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateGameError(
                    f"Another catalog game is already titled '{changes.get('title')}'"
                ) from e
            return game

    def delete_game(self, game_id: int) -> Game:
        with self._session() as session:
            game = session.get(Game, game_id)
            if game is None:
                raise NotFoundError(f"Game {game_id} not found in catalog")
            session.delete(game)
            session.commit()
            return game

    # ----------------------------
    # Reads
    # ----------------------------
    def get_game(self, game_id: int) -> Game:
        with self._session() as session:
            game = session.get(Game, game_id)
            if game is None:
                raise NotFoundError(f"Game {game_id} not found in catalog")
            return game

    def find_by_title(self, title: str) -> Game | None:
        """The catalog game sharing this title's key, if any."""
        with self._session() as session:
            return session.scalars(select(Game).where(Game.title_key == title_key(title))).first()

    def exists_by_rawg_id(self, rawg_id: int) -> bool:
        with self._session() as session:
            return session.scalar(select(Game.id).where(Game.rawg_id == rawg_id).limit(1)) is not None

    def exists_by_title(self, title: str) -> bool:
        with self._session() as session:
            stmt = select(Game.id).where(Game.title_key == title_key(title)).limit(1)
            return session.scalar(stmt) is not None

    def known_keys(self) -> tuple[set[int], set[str]]:
        """(rawg ids, title keys) of everything in the catalog."""
        with self._session() as session:
            rows = session.execute(select(Game.rawg_id, Game.title_key)).all()
        rawg_ids = {r.rawg_id for r in rows if r.rawg_id is not None}
        titles = {r.title_key for r in rows}
        return rawg_ids, titles

    def count(self) -> int:
        with self._session() as session:
            return int(session.scalar(select(func.count()).select_from(Game)) or 0)

    def all_games(self) -> list[Game]:
        with self._session() as session:
            return list(session.scalars(select(Game).order_by(Game.id)))

    def search_text(
        self, query: str, filters: SearchFilters | None = None, *, limit: int = 20
    ) -> list[Game]:
        """
        Substring search used by discovery: title, genres, developer or platforms contain the
        query, narrowed by the filters. Owned games first, then by id.
        """
        stmt = select(Game).where(_text_match(query), *_filter_clauses(filters))
        stmt = stmt.order_by(Game.is_owned.desc(), Game.id.asc()).limit(limit)
        with self._session() as session:
            return list(session.scalars(stmt))

    def search(
        self,
        query: str = "",
        *,
        page: int = 1,
        limit: int = 10,
        genre: str | None = None,
        platform: str | None = None,
        developer: str | None = None,
        publisher: str | None = None,
        on_sale: bool | None = None,
        max_price: float | None = None,
        sort_by: str = "released",
        order: str = "desc",
    ) -> CatalogPage:
        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {sort_by!r}; expected one of {sorted(SORTABLE_FIELDS)}")
        page = max(1, int(page))
        limit = max(1, int(limit))

        conditions = []
        if query:
            conditions.append(_text_match(query, include_publisher=True))
        if genre:
            conditions.append(_json_element(Game.genres, genre))
        if platform:
            conditions.append(_json_element(Game.platforms, platform))
        if developer:
            conditions.append(Game.developer == developer)
        if publisher:
            conditions.append(Game.publisher == publisher)
        if on_sale:
            conditions.append(Game.on_sale.is_(True))
        if max_price is not None:
            conditions.append(Game.price <= max_price)

        with self._session() as session:
            total = int(
                session.scalar(select(func.count()).select_from(Game).where(*conditions)) or 0
            )
            stmt = select(Game).where(*conditions)
            if sort_by == "relevance":
                candidates = list(session.scalars(stmt.order_by(Game.id.asc())))
                if query:
                    # Best match first whatever `order` says; the stable sort keeps id order
                    # among equal scores.
                    candidates.sort(key=lambda g: -relevance_score(g, query))
                start = (page - 1) * limit
                games = candidates[start : start + limit]
            else:
                column = getattr(Game, sort_by)
                primary = column.asc() if order == "asc" else column.desc()
                stmt = stmt.order_by(primary, Game.id.asc()).offset((page - 1) * limit).limit(limit)
                games = list(session.scalars(stmt))
        return CatalogPage(games=games, total=total, page=page, limit=limit)

    def get_filters(self) -> dict[str, list[str]]:
        """Distinct genres and platforms, sorted, for populating filter choices."""
        genres: set[str] = set()
        platforms: set[str] = set()
        with self._session() as session:
            for row in session.execute(select(Game.genres, Game.platforms)):
                genres.update(_non_empty(row.genres))
                platforms.update(_non_empty(row.platforms))
        return {"genres": sorted(genres), "platforms": sorted(platforms)}


def _non_empty(values: Iterable[Any] | None) -> list[str]:
    return [str(v) for v in (values or []) if v]
