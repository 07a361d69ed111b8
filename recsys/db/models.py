"""
SQLAlchemy ORM Models
Database table definitions for the catalog source of truth.
"""

from sqlalchemy import (
    Column, String, Integer, Float, TIMESTAMP, ForeignKey, Text, JSON, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ItemRecord(Base):
    """
    Catalog item.

    Authoritative copy of every item; both search indexes are rebuilt from this table.
    """
    __tablename__ = 'items'

    id = Column(Integer, primary_key=True, autoincrement=False)

    # Core item info
    name = Column(Text, nullable=False)
    text = Column(Text, nullable=True,
                  comment='Free text for keyword search (defaults to name)')
    category = Column(String(50), nullable=False, index=True)

    # Display fields
    price = Column(Float, nullable=True)
    image_url = Column(Text, nullable=True)

    # Ranking signal
    popularity = Column(Float, nullable=False, default=0.0, server_default='0',
                        comment='Non-negative popularity counter')

    # L2-normalized embedding as a JSON float array
    embedding = Column(JSON, nullable=False)

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ItemRecord(id={self.id}, name={self.name[:30]})>"


class UserRecord(Base):
    """
    User model.

    Stores the preference embedding; seen items live in their own table.
    """
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, server_default='')
    embedding = Column(JSON, nullable=False)

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    seen = relationship("SeenItem", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserRecord(id={self.id}, name={self.name})>"


class SeenItem(Base):
    """
    Item already shown to a user.

    Rows are only ever inserted, so a user's seen set grows monotonically.
    """
    __tablename__ = 'seen_items'

    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    item_id = Column(Integer, primary_key=True)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    user = relationship("UserRecord", back_populates="seen")

    __table_args__ = (
        Index('idx_seen_items_item', 'item_id'),
    )

    def __repr__(self):
        return f"<SeenItem(user_id={self.user_id}, item_id={self.item_id})>"
