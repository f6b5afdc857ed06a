from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'trafikkvakt.db')}")

Base = declarative_base()


def make_session_factory(database_url: str | None = None) -> sessionmaker:
    url = database_url or DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, future=True, connect_args=connect_args)
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def init_db(session_factory: sessionmaker) -> None:
    Base.metadata.create_all(session_factory.kw["bind"])
