from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .db import Base


class Game(Base):
    """
    A game in the global catalog: RAWG metadata plus Steam pricing.

    A row without steam_app_id is free/unpriced, not "price unknown".
    """

    __tablename__ = "games"
    __table_args__ = (
        UniqueConstraint("title_key", name="uq_games_title_key"),
        Index("ix_games_rawg_id", "rawg_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(300), nullable=False)
    # Identity key: lowercased title with punctuation and spaces removed.
    title_key = Column(String(300), nullable=False)
    genres = Column(JSON, nullable=False, default=list)
    platforms = Column(JSON, nullable=False, default=list)
    developer = Column(String(200), nullable=True)
    publisher = Column(String(200), nullable=True)
    image = Column(String(500), nullable=True)
    score = Column(Float, nullable=True)

    # RAWG metadata
    rawg_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    released = Column(Date, nullable=True)
    metacritic = Column(Integer, nullable=True)
    screenshots = Column(JSON, nullable=False, default=list)

    # Steam pricing
    steam_app_id = Column(Integer, nullable=True)
    price = Column(Float, nullable=True)
    currency = Column(String(8), nullable=True)
    discount = Column(Integer, nullable=True)
    on_sale = Column(Boolean, nullable=False, default=False)
    original_price = Column(Float, nullable=True)
    prices = Column(JSON, nullable=False, default=dict)
    original_prices = Column(JSON, nullable=False, default=dict)

    is_owned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Game id={self.id} title={self.title!r} rawg_id={self.rawg_id}>"
