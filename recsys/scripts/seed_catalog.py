#!/usr/bin/env python3
"""
Catalog Seeding Script
Populates the metadata store with a synthetic catalog and users whose
embeddings are anchored on the item categories.

The indexes are not touched; they are rebuilt from the store on the next
API startup.

Usage:
    python -m recsys.scripts.seed_catalog --items-per-category 250 --users 50
"""

import argparse
import logging
import sys
from typing import Optional, Tuple

import numpy as np

from ..db.metadata_store import MetadataStore
from ..ml.config import get_ml_config
from ..ml.embeddings import CATEGORIES, item_embedding, user_embedding
from ..models.catalog import Item, User

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

PRODUCT_NOUNS = {
    "Electronics": ["headphones", "laptop", "charger", "speaker", "camera", "keyboard"],
    "Books": ["novel", "cookbook", "biography", "atlas", "poetry collection", "thriller"],
    "Home": ["lamp", "blanket", "kettle", "vase", "cushion", "bookshelf"],
    "Clothing": ["jacket", "sneakers", "scarf", "dress", "hoodie", "jeans"],
}

ADJECTIVES = ["wireless", "classic", "compact", "premium", "vintage", "organic", "modern", "cozy"]


def seed_catalog(
    store: MetadataStore,
    items_per_category: int = 250,
    num_users: int = 50,
    dim: Optional[int] = None,
    seed: Optional[int] = 42,
) -> Tuple[int, int]:
    """
    Write a synthetic catalog.

    Args:
        store: Metadata store to populate
        items_per_category: Items generated per category
        num_users: Users generated, each preferring one or two categories
        dim: Embedding dimension (default: config)
        seed: Random seed (None for nondeterministic)

    Returns:
        (items written, users written)
    """
    dim = dim or get_ml_config().index.dim
    rng = np.random.default_rng(seed)

    item_id = 0
    for category in CATEGORIES:
        nouns = PRODUCT_NOUNS[category]
        for i in range(items_per_category):
            name = f"{ADJECTIVES[rng.integers(len(ADJECTIVES))]} {nouns[i % len(nouns)]}".title()
            store.upsert_item(
                Item(
                    id=item_id,
                    name=name,
                    text=f"{name} {category}",
                    category=category,
                    price=round(float(rng.uniform(5, 300)), 2),
                    image_url=f"https://picsum.photos/seed/{item_id}/300/300",
                    popularity=round(float(rng.uniform(0, 1)), 4),
                    embedding=item_embedding(category, dim=dim, rng=rng),
                )
            )
            item_id += 1

    for user_id in range(num_users):
        size = int(rng.integers(1, 3))
        preferred = [str(c) for c in rng.choice(CATEGORIES, size=size, replace=False)]
        store.upsert_user(
            User(
                id=user_id,
                name=f"user_{user_id}",
                embedding=user_embedding(preferred, dim=dim, rng=rng),
            )
        )

    logger.info(f"Seeded {item_id} items and {num_users} users")
    return item_id, num_users


def main():
    """Main function to seed the catalog."""
    parser = argparse.ArgumentParser(description="Seed the metadata store with a synthetic catalog")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL or local SQLite)",
    )
    parser.add_argument(
        "--items-per-category",
        type=int,
        default=250,
        help="Items per category (default: 250)",
    )
    parser.add_argument("--users", type=int, default=50, help="Number of users (default: 50)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")

    args = parser.parse_args()

    if args.items_per_category < 0 or args.users < 0:
        logger.error("Counts must be non-negative")
        sys.exit(1)

    store = MetadataStore(args.database_url)
    try:
        items, users = seed_catalog(
            store,
            items_per_category=args.items_per_category,
            num_users=args.users,
            seed=args.seed,
        )
    finally:
        store.flush()

    print(f"Seeded {items} items and {users} users")


if __name__ == "__main__":
    main()
