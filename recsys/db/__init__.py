"""
Database Layer
SQLAlchemy ORM models and the metadata store built on them.
"""

from .models import Base, ItemRecord, UserRecord, SeenItem
from .metadata_store import MetadataStore
from .session import create_db_engine, create_session_factory, get_database_url

__all__ = [
    "Base",
    "ItemRecord",
    "UserRecord",
    "SeenItem",
    "MetadataStore",
    "create_db_engine",
    "create_session_factory",
    "get_database_url",
]
