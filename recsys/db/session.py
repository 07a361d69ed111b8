"""
Database Session
Engine and session factory construction for the metadata store.
"""

import os
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Default to a local SQLite file
DEFAULT_DATABASE_URL = "sqlite:///./data/recsys.db"


def get_database_url() -> str:
    """Database URL from the environment."""
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections are shared across request threads, and the parent
    directory of a SQLite file is created on demand.
    """
    url = make_url(database_url or get_database_url())

    if url.get_backend_name() == "sqlite":
        database = url.database
        if not database or database == ":memory:":
            # One shared connection, otherwise each connection sees its own empty database
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
