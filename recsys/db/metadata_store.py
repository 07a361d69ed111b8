"""
Metadata Store
Durable source of truth for items, users, popularity counters and seen items.

Both search indexes are disposable projections of this store and are rebuilt
from it whenever they drift.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..ml.errors import ItemNotFound, MetadataStoreError, UserNotFound
from ..models.catalog import Item, User
from .models import Base, ItemRecord, SeenItem, UserRecord
from .session import create_db_engine, create_session_factory

logger = logging.getLogger(__name__)


def _item_from_record(record: ItemRecord) -> Item:
    return Item(
        id=record.id,
        name=record.name,
        text=record.text,
        category=record.category,
        price=record.price,
        image_url=record.image_url,
        popularity=record.popularity or 0.0,
        embedding=record.embedding,
    )


class MetadataStore:
    """
    SQL-backed key/record store.

    Every public call runs in its own transaction. Reads of missing records
    return None; writes against unknown ids raise ItemNotFound / UserNotFound.
    Database failures surface as MetadataStoreError.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        create_schema: bool = True,
    ):
        """
        Initialize metadata store.

        Args:
            database_url: SQLAlchemy URL (default: DATABASE_URL env or local SQLite)
            engine: Pre-built engine (overrides database_url)
            create_schema: Create missing tables on startup
        """
        self.engine = engine or create_db_engine(database_url)
        self._session_factory = create_session_factory(self.engine)

        if create_schema:
            try:
                Base.metadata.create_all(self.engine)
            except SQLAlchemyError as e:
                raise MetadataStoreError(f"Failed to initialize schema: {e}") from e

        logger.info(f"Metadata store initialized ({self.engine.url.get_backend_name()})")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """One transaction: commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise MetadataStoreError(f"Metadata store operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========== Items ==========

    def get_item(self, item_id: int) -> Optional[Item]:
        """Fetch one item, or None."""
        with self._session() as session:
            record = session.get(ItemRecord, item_id)
            return _item_from_record(record) if record else None

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, Item]:
        """Fetch several items at once. Missing ids are omitted."""
        ids = list(set(item_ids))
        if not ids:
            return {}
        with self._session() as session:
            records = session.execute(
                select(ItemRecord).where(ItemRecord.id.in_(ids))
            ).scalars().all()
            return {r.id: _item_from_record(r) for r in records}

    def all_items(self) -> List[Item]:
        """Every item, ordered by id."""
        items: List[Item] = []
        for batch in self.iter_items():
            items.extend(batch)
        return items

    def iter_items(self, batch_size: int = 1000) -> Iterator[List[Item]]:
        """
        Stream items in id order, one batch per transaction.

        Args:
            batch_size: Items per batch

        Yields:
            Non-empty lists of items
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        last_id: Optional[int] = None
        while True:
            stmt = select(ItemRecord).order_by(ItemRecord.id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(ItemRecord.id > last_id)

            with self._session() as session:
                batch = [_item_from_record(r) for r in session.execute(stmt).scalars().all()]

            if not batch:
                return
            yield batch
            last_id = batch[-1].id
            if len(batch) < batch_size:
                return

    def item_ids(self) -> Set[int]:
        """Ids of every item."""
        with self._session() as session:
            return set(session.execute(select(ItemRecord.id)).scalars().all())

    def count_items(self) -> int:
        """Number of items."""
        with self._session() as session:
            return session.execute(select(func.count(ItemRecord.id))).scalar_one()

    def upsert_item(self, item: Item) -> None:
        """Insert or replace an item record."""
        with self._session() as session:
            record = session.get(ItemRecord, item.id)
            if record is None:
                record = ItemRecord(id=item.id)
                session.add(record)

            record.name = item.name
            record.text = item.text
            record.category = item.category
            record.price = item.price
            record.image_url = item.image_url
            record.popularity = item.popularity
            record.embedding = list(item.embedding)

        logger.debug(f"Upserted item {item.id}")

    # ========== Popularity ==========

    def get_popularity(self, item_id: int) -> Optional[float]:
        """Popularity of one item, or None if unknown."""
        with self._session() as session:
            return session.execute(
                select(ItemRecord.popularity).where(ItemRecord.id == item_id)
            ).scalar_one_or_none()

    def get_popularities(self, item_ids: Iterable[int]) -> Dict[int, float]:
        """Popularity of several items. Unknown ids are omitted."""
        ids = list(set(item_ids))
        if not ids:
            return {}
        with self._session() as session:
            rows = session.execute(
                select(ItemRecord.id, ItemRecord.popularity).where(ItemRecord.id.in_(ids))
            ).all()
            return {item_id: float(popularity or 0.0) for item_id, popularity in rows}

    def set_popularity(self, item_id: int, value: float) -> None:
        """
        Overwrite an item's popularity.

        Raises:
            ValueError: If value is negative
            ItemNotFound: If the item does not exist
        """
        if value < 0:
            raise ValueError(f"Popularity must be non-negative, got {value}")

        with self._session() as session:
            record = session.get(ItemRecord, item_id)
            if record is None:
                raise ItemNotFound(item_id)
            record.popularity = float(value)

        logger.debug(f"Set popularity of item {item_id} to {value}")

    def increment_popularity(self, item_id: int, delta: float = 1.0) -> float:
        """
        Adjust an item's popularity by delta, never going below zero.

        Returns:
            The new popularity
        """
        with self._session() as session:
            record = session.get(ItemRecord, item_id)
            if record is None:
                raise ItemNotFound(item_id)
            record.popularity = max(0.0, (record.popularity or 0.0) + delta)
            return record.popularity

    # ========== Users ==========

    def get_user(self, user_id: int) -> Optional[User]:
        """Fetch one user with their seen items, or None."""
        with self._session() as session:
            record = session.get(UserRecord, user_id)
            if record is None:
                return None
            return User(
                id=record.id,
                name=record.name or "",
                embedding=record.embedding,
                seen_items={s.item_id for s in record.seen},
            )

    def upsert_user(self, user: User) -> None:
        """
        Insert or replace a user record.

        Seen items are merged, never removed.
        """
        with self._session() as session:
            record = session.get(UserRecord, user.id)
            if record is None:
                record = UserRecord(id=user.id)
                session.add(record)
            record.name = user.name
            record.embedding = list(user.embedding)
            session.flush()

            self._insert_seen(session, user.id, user.seen_items)

        logger.debug(f"Upserted user {user.id}")

    def get_seen_items(self, user_id: int) -> Set[int]:
        """Items already shown to a user (empty for unknown users)."""
        with self._session() as session:
            return set(session.execute(
                select(SeenItem.item_id).where(SeenItem.user_id == user_id)
            ).scalars().all())

    def mark_seen(self, user_id: int, item_ids: Iterable[int]) -> int:
        """
        Record items as seen by a user. Idempotent.

        Returns:
            Number of newly recorded items

        Raises:
            UserNotFound: If the user does not exist
        """
        with self._session() as session:
            if session.get(UserRecord, user_id) is None:
                raise UserNotFound(user_id)
            added = self._insert_seen(session, user_id, item_ids)

        logger.debug(f"Marked {added} items seen for user {user_id}")
        return added

    def _insert_seen(self, session: Session, user_id: int, item_ids: Iterable[int]) -> int:
        wanted = {int(i) for i in item_ids}
        if not wanted:
            return 0
        existing = set(session.execute(
            select(SeenItem.item_id).where(
                SeenItem.user_id == user_id, SeenItem.item_id.in_(wanted)
            )
        ).scalars().all())
        new_ids = sorted(wanted - existing)
        session.add_all(SeenItem(user_id=user_id, item_id=i) for i in new_ids)
        return len(new_ids)

    # ========== Maintenance ==========

    def ping(self) -> bool:
        """Check that the store is reachable."""
        try:
            self.count_items()
            return True
        except MetadataStoreError as e:
            logger.warning(f"Metadata store ping failed: {e}")
            return False

    def flush(self) -> None:
        """
        Release pooled connections.

        Every write is committed when its call returns, so nothing else is buffered.
        """
        try:
            self.engine.dispose()
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Failed to flush metadata store: {e}") from e
        logger.info("Metadata store flushed")
