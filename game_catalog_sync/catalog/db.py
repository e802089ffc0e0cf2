from __future__ import annotations

import json

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def _json_serializer(value: object) -> str:
    # Keep non-ASCII titles/genres readable so substring search matches them.
    return json.dumps(value, ensure_ascii=False)


def make_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine_kwargs = {
        "connect_args": connect_args,
        "pool_pre_ping": True,
        "json_serializer": _json_serializer,
    }
    return create_engine(database_url, **engine_kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    # Rows are handed to other threads after the session closes, so keep loaded state.
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(bind=engine)
