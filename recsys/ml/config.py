"""
ML Configuration
Centralized configuration for the vector index, ranking, and index lifecycle.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class IndexConfig:
    """Vector index (HNSW) configuration."""

    # Embedding dimension, fixed per deployment
    dim: int = 64

    # Maximum number of vectors the index accepts
    capacity: int = 100_000

    # HNSW graph parameters
    M: int = 16  # Connections per node (higher = better recall, more memory)
    ef_construction: int = 200  # Search breadth while inserting
    ef_search: int = 64  # Search breadth per query, must be >= k

    # Persisted index file
    index_path: Path = field(default_factory=lambda: Path("models/cache/vector_index/index.faiss"))

    # Accepted deviation of ||v|| from 1.0 for vectors crossing the index boundary
    normalization_tolerance: float = 1e-3

    def __post_init__(self):
        self.index_path = Path(self.index_path)


@dataclass
class KeywordConfig:
    """Keyword index configuration."""

    # Minimum rapidfuzz ratio for a vocabulary term to count as a fuzzy match
    fuzzy_cutoff: float = 80.0

    # Maximum vocabulary expansions per unmatched query token
    fuzzy_max_expansions: int = 3

    # Tokens shorter than this are never fuzzily expanded
    fuzzy_min_token_length: int = 4


@dataclass
class RankingConfig:
    """Recall and re-ranking configuration."""

    # Final score = alpha * similarity + (1 - alpha) * popularity
    alpha: float = 0.7

    # Extra candidates fetched to absorb seen-item filtering
    recall_margin: int = 40

    # Reciprocal rank fusion smoothing constant
    rrf_k: int = 60

    # Default number of results per request
    default_k: int = 10

    def __post_init__(self):
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"Blend weight alpha must be in [0, 1], got {self.alpha}")
        if self.recall_margin < 0:
            raise ValueError(f"Recall margin must be >= 0, got {self.recall_margin}")
        if self.rrf_k < 0:
            raise ValueError(f"RRF constant must be >= 0, got {self.rrf_k}")


@dataclass
class LifecycleConfig:
    """Hydration and shutdown configuration."""

    # Items inserted per batch while rebuilding the vector index
    rebuild_batch_size: int = 1024

    # Maximum time to wait for in-flight requests before persisting
    drain_timeout_seconds: float = 10.0


@dataclass
class MLConfig:
    """Top-level ML configuration combining all sub-configs."""

    index: IndexConfig = field(default_factory=IndexConfig)
    keyword: KeywordConfig = field(default_factory=KeywordConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    @classmethod
    def from_env(cls) -> "MLConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Override with environment variables if present
        if dim := os.getenv("RECSYS_EMBEDDING_DIM"):
            config.index.dim = int(dim)

        if capacity := os.getenv("RECSYS_INDEX_CAPACITY"):
            config.index.capacity = int(capacity)

        if m := os.getenv("RECSYS_HNSW_M"):
            config.index.M = int(m)

        if ef_construction := os.getenv("RECSYS_HNSW_EF_CONSTRUCTION"):
            config.index.ef_construction = int(ef_construction)

        if ef_search := os.getenv("RECSYS_HNSW_EF_SEARCH"):
            config.index.ef_search = int(ef_search)

        if index_path := os.getenv("RECSYS_INDEX_PATH"):
            config.index.index_path = Path(index_path)

        if alpha := os.getenv("RECSYS_RANKING_ALPHA"):
            config.ranking.alpha = float(alpha)

        if margin := os.getenv("RECSYS_RECALL_MARGIN"):
            config.ranking.recall_margin = int(margin)

        if rrf_k := os.getenv("RECSYS_RRF_K"):
            config.ranking.rrf_k = int(rrf_k)

        if drain := os.getenv("RECSYS_DRAIN_TIMEOUT_SECONDS"):
            config.lifecycle.drain_timeout_seconds = float(drain)

        return config

    def validate(self) -> None:
        """Validate configuration consistency."""
        assert self.index.dim > 0, "Embedding dimension must be positive"
        assert self.index.capacity > 0, "Index capacity must be positive"
        assert self.index.M > 1, "HNSW M must be > 1"
        assert (
            self.index.ef_search >= self.ranking.default_k
        ), "Search breadth must be >= default result count"
        assert 0 <= self.ranking.alpha <= 1, "Blend weight alpha must be in [0, 1]"
        assert self.lifecycle.rebuild_batch_size > 0, "Rebuild batch size must be positive"


# Global configuration instance
_global_config: Optional[MLConfig] = None


def get_ml_config() -> MLConfig:
    """Get global ML configuration (singleton pattern)."""
    global _global_config
    if _global_config is None:
        _global_config = MLConfig.from_env()
        _global_config.validate()
    return _global_config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _global_config
    _global_config = None
