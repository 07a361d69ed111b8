"""
Embedding Providers
Contract for the external embed() function plus a deterministic reference provider.

The engine never computes embeddings on the request path by itself; it consumes
whatever an EmbeddingProvider returns and validates normalization at the index
boundary.
"""

import hashlib
import logging
from typing import Dict, Iterable, Optional, Protocol, Sequence

import numpy as np

from .config import get_ml_config
from .retrieval.keyword_index import tokenize

logger = logging.getLogger(__name__)

# Categories owning one contiguous block of coordinates each
CATEGORIES = ("Electronics", "Books", "Home", "Clothing")


class EmbeddingProvider(Protocol):
    """Anything that maps text to a unit-length vector of a fixed dimension."""

    dimension: int

    def embed(self, text: str) -> np.ndarray:
        ...


def normalize(vector: np.ndarray) -> np.ndarray:
    """
    L2 normalize a vector.

    Raises:
        ValueError: If the vector has (near) zero norm
    """
    vector = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(vector))
    if norm < 1e-8:
        raise ValueError("Cannot normalize a zero vector")
    return (vector / norm).astype(np.float32)


def _block(category: str, dim: int) -> slice:
    """Coordinate block owned by a category. Unknown categories share the first block."""
    if dim < len(CATEGORIES):
        raise ValueError(f"Dimension {dim} too small for {len(CATEGORIES)} category blocks")
    width = dim // len(CATEGORIES)
    position = CATEGORIES.index(category) if category in CATEGORIES else 0
    return slice(position * width, (position + 1) * width)


def category_anchor(category: str, dim: Optional[int] = None) -> np.ndarray:
    """Unit vector spread evenly over the category's block. Anchors are mutually orthogonal."""
    dim = dim or get_ml_config().index.dim
    vector = np.zeros(dim, dtype=np.float32)
    vector[_block(category, dim)] = 1.0
    return normalize(vector)


def item_embedding(
    category: str,
    dim: Optional[int] = None,
    jitter: float = 0.1,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Anchor of the item's category plus uniform noise in [-jitter, jitter], normalized.

    Args:
        category: Item category
        dim: Embedding dimension (default: config)
        jitter: Noise amplitude, 0 for the bare anchor
        rng: Random generator (default: fresh unseeded generator)
    """
    dim = dim or get_ml_config().index.dim
    base = np.zeros(dim, dtype=np.float32)
    base[_block(category, dim)] = 1.0
    if jitter > 0:
        rng = rng or np.random.default_rng()
        base = base + rng.uniform(-jitter, jitter, size=dim).astype(np.float32)
    return normalize(base)


def user_embedding(
    categories: Iterable[str],
    dim: Optional[int] = None,
    jitter: float = 0.05,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Preference mixture: sum of the preferred categories' blocks plus noise, normalized."""
    dim = dim or get_ml_config().index.dim
    combined = np.zeros(dim, dtype=np.float32)
    for category in categories:
        combined[_block(category, dim)] += 1.0
    if jitter > 0:
        rng = rng or np.random.default_rng()
        combined = combined + rng.uniform(-jitter, jitter, size=dim).astype(np.float32)
    return normalize(combined)


class CategoryAnchorEmbedder:
    """
    Deterministic text embedder for catalogs organised by the fixed category set.

    Text naming one or more categories embeds to the normalized sum of their
    anchors. Any other text embeds to a hashed bag-of-words vector, so equal
    text always yields equal vectors.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension or get_ml_config().index.dim
        self._category_tokens: Dict[str, str] = {c.lower(): c for c in CATEGORIES}

    def embed(self, text: str) -> np.ndarray:
        """Embed text to a unit vector."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        tokens = tokenize(text)
        mentioned = [self._category_tokens[t] for t in tokens if t in self._category_tokens]
        if mentioned:
            return user_embedding(mentioned, dim=self.dimension, jitter=0.0)

        return self._hashed(tokens or [text])

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed several texts (shape: [len(texts), dimension])."""
        return np.vstack([self.embed(t) for t in texts])

    def _hashed(self, tokens: Sequence[str]) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in tokens:
            digest = hashlib.md5(token.encode("utf-8")).digest()
            slot = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[slot] += sign
        if not np.any(vector):
            # Every token cancelled out; fall back to hashing the whole text
            digest = hashlib.md5(" ".join(tokens).encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "little") % self.dimension] = 1.0
        return normalize(vector)
