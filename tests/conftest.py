"""
Pytest configuration and shared fixtures
"""

import pytest
import sys
from pathlib import Path

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from recsys.db.metadata_store import MetadataStore
from recsys.ml.config import MLConfig, reset_config
from recsys.ml.embeddings import category_anchor, item_embedding, user_embedding
from recsys.models.catalog import Item, User

DIM = 64


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate tests from RECSYS_* environment variables and the cached config."""
    for var in (
        "RECSYS_EMBEDDING_DIM",
        "RECSYS_INDEX_CAPACITY",
        "RECSYS_HNSW_M",
        "RECSYS_HNSW_EF_CONSTRUCTION",
        "RECSYS_HNSW_EF_SEARCH",
        "RECSYS_INDEX_PATH",
        "RECSYS_RANKING_ALPHA",
        "RECSYS_RECALL_MARGIN",
        "RECSYS_RRF_K",
        "RECSYS_DRAIN_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(7)


@pytest.fixture
def ml_config(tmp_path):
    """Engine configuration writing its index under tmp_path."""
    config = MLConfig()
    config.index.index_path = tmp_path / "index" / "vectors.faiss"
    config.index.capacity = 10_000
    config.lifecycle.drain_timeout_seconds = 2.0
    config.lifecycle.rebuild_batch_size = 16
    return config


@pytest.fixture
def store(tmp_path):
    """Empty SQLite metadata store."""
    metadata_store = MetadataStore(f"sqlite:///{tmp_path / 'metadata.db'}")
    yield metadata_store
    metadata_store.flush()


@pytest.fixture
def make_item(rng):
    """Factory for catalog items with category-anchored embeddings."""

    def _make(item_id, category="Electronics", popularity=0.0, name=None, text=None, jitter=0.1):
        return Item(
            id=item_id,
            name=name or f"{category} item {item_id}",
            text=text,
            category=category,
            popularity=popularity,
            price=9.99,
            embedding=item_embedding(category, dim=DIM, jitter=jitter, rng=rng),
        )

    return _make


@pytest.fixture
def anchor_store(store):
    """
    Store with one item exactly on each of three category anchors and two users.

    Items: 1 Electronics, 2 Books, 3 Home (popularity 0).
    Users: 100 prefers Electronics, 101 prefers Books and Home.
    """
    store.upsert_item(Item(id=1, name="Wireless Headphones", category="Electronics",
                           embedding=category_anchor("Electronics", DIM)))
    store.upsert_item(Item(id=2, name="Mystery Novel", category="Books",
                           embedding=category_anchor("Books", DIM)))
    store.upsert_item(Item(id=3, name="Table Lamp", category="Home",
                           embedding=category_anchor("Home", DIM)))
    store.upsert_user(User(id=100, name="alice", embedding=category_anchor("Electronics", DIM)))
    store.upsert_user(User(id=101, name="bob",
                           embedding=user_embedding(["Books", "Home"], dim=DIM, jitter=0.0)))
    return store
