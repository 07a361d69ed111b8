"""
Vector Index
Approximate k-NN search over L2-normalized embeddings using a FAISS HNSW graph
with the inner-product metric.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Union

import faiss
import numpy as np

from ..config import IndexConfig, get_ml_config
from ..errors import (
    CapacityExceeded,
    CorruptIndex,
    DimensionMismatch,
    DuplicateItem,
    InvalidConfig,
    NotInitialized,
    NotNormalized,
    PersistenceFailure,
)
from ..utils.locking import ReadWriteLock
from .types import RankedCandidate

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class LoadStatus(Enum):
    """Outcome of VectorIndex.load()."""

    LOADED = "loaded"  # Persisted graph read from disk
    CREATED_NEW = "created_new"  # No file on disk, fresh empty index allocated


class VectorIndex:
    """
    Thread-safe wrapper around a FAISS HNSW index keyed by item id.

    - Labels are the caller's item ids (IndexIDMap over IndexHNSWFlat)
    - Similarity is the inner product, which equals cosine similarity for
      normalized vectors; every vector crossing the boundary is validated
    - Searches share a read lock; add/save/load/destroy take the write lock
    - The graph is append-only: there is no per-item removal
    """

    def __init__(self, config: Optional[IndexConfig] = None):
        """
        Create an uninitialized index.

        Args:
            config: Index configuration (HNSW parameters, normalization tolerance)
        """
        self.config = config or get_ml_config().index

        self._index: Optional[faiss.IndexIDMap] = None
        self._hnsw: Optional[faiss.IndexHNSWFlat] = None
        self._dim = 0
        self._capacity = 0
        self._M = self.config.M
        self._ef_construction = self.config.ef_construction
        self._ef_search = self.config.ef_search
        self._ids: Set[int] = set()

        self._lock = ReadWriteLock()

    # ========== Lifecycle ==========

    def init(
        self,
        dim: int,
        capacity: int,
        M: Optional[int] = None,
        ef_construction: Optional[int] = None,
    ) -> None:
        """
        Allocate a new, empty index, discarding any current contents.

        Args:
            dim: Embedding dimension
            capacity: Maximum number of vectors
            M: Connections per graph node (default: config)
            ef_construction: Insert-time search breadth (default: config)

        Raises:
            InvalidConfig: If dim or capacity is not positive
        """
        self._validate_config(dim, capacity)
        M = M or self.config.M
        ef_construction = ef_construction or self.config.ef_construction
        if M < 2:
            raise InvalidConfig(f"HNSW M must be >= 2, got {M}")

        with self._lock.write():
            self._allocate(dim, capacity, M, ef_construction)

        logger.info(
            f"Initialized HNSW index: dim={dim}, capacity={capacity}, "
            f"M={M}, ef_construction={ef_construction}"
        )

    def load(self, path: PathLike, dim: int, capacity: int) -> LoadStatus:
        """
        Load a persisted index, or allocate an empty one if no file exists.

        Args:
            path: Index file written by save()
            dim: Expected embedding dimension
            capacity: Capacity for the loaded index (raised to the persisted count if lower)

        Returns:
            LoadStatus.LOADED or LoadStatus.CREATED_NEW

        Raises:
            InvalidConfig: If dim or capacity is not positive
            CorruptIndex: If the file is unreadable or built for another dimension/metric
        """
        self._validate_config(dim, capacity)
        path = Path(path)

        if not path.exists():
            logger.info(f"No index file at {path}, creating new empty index")
            with self._lock.write():
                self._allocate(dim, capacity, self.config.M, self.config.ef_construction)
            return LoadStatus.CREATED_NEW

        logger.info(f"Loading vector index from {path}")

        try:
            index = faiss.read_index(str(path))
        except RuntimeError as e:
            raise CorruptIndex(f"Unreadable index file {path}: {e}") from e

        if not isinstance(index, faiss.IndexIDMap):
            raise CorruptIndex(f"Index file {path} holds {type(index).__name__}, expected IndexIDMap")

        hnsw = faiss.downcast_index(index.index)
        if not isinstance(hnsw, faiss.IndexHNSWFlat):
            raise CorruptIndex(f"Index file {path} is not an HNSW graph ({type(hnsw).__name__})")

        if index.d != dim:
            raise CorruptIndex(f"Index file {path} has dimension {index.d}, expected {dim}")

        if index.metric_type != faiss.METRIC_INNER_PRODUCT:
            raise CorruptIndex(f"Index file {path} does not use the inner-product metric")

        ids = faiss.vector_to_array(index.id_map).astype(np.int64)
        if len(ids) != index.ntotal:
            raise CorruptIndex(
                f"Index file {path} has {index.ntotal} vectors but {len(ids)} labels"
            )

        with self._lock.write():
            self._index = index
            self._hnsw = hnsw
            self._dim = dim
            self._capacity = max(capacity, int(index.ntotal))
            self._M = int(hnsw.hnsw.nb_neighbors(1))
            self._ef_construction = int(hnsw.hnsw.efConstruction)
            self._hnsw.hnsw.efSearch = self._ef_search
            self._ids = {int(i) for i in ids}

        logger.info(f"Loaded vector index: {len(self._ids)} vectors, dim={dim}")
        return LoadStatus.LOADED

    def save(self, path: PathLike) -> None:
        """
        Persist the full graph and vectors.

        The file is written next to the target and renamed into place, so a
        failed save never truncates the previous index.

        Raises:
            NotInitialized: If the index was never initialized
            PersistenceFailure: If writing fails
        """
        path = Path(path)
        tmp_path = path.with_name(path.name + ".tmp")

        with self._lock.write():
            self._require_initialized()
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                faiss.write_index(self._index, str(tmp_path))
                os.replace(tmp_path, path)
            except (RuntimeError, OSError) as e:
                if tmp_path.exists():
                    tmp_path.unlink()
                raise PersistenceFailure(f"Failed to save vector index to {path}: {e}") from e
            count = int(self._index.ntotal)

        logger.info(f"Saved vector index to {path} ({count} vectors)")

    def destroy(self) -> None:
        """Release the graph. Subsequent operations raise NotInitialized."""
        with self._lock.write():
            self._index = None
            self._hnsw = None
            self._ids = set()
            self._dim = 0
            self._capacity = 0

        logger.debug("Vector index destroyed")

    # ========== Mutation ==========

    def add_item(self, item_id: int, vector: Sequence[float]) -> None:
        """
        Insert one vector under label item_id.

        Raises:
            NotInitialized: If the index was never initialized
            DimensionMismatch: If len(vector) != dim
            NotNormalized: If the vector is not unit length
            DuplicateItem: If item_id is already indexed
            CapacityExceeded: If the index is full
        """
        self.add_items([item_id], [vector])

    def add_items(self, item_ids: Sequence[int], vectors: Iterable[Sequence[float]]) -> None:
        """
        Insert a batch of vectors under one lock acquisition.

        The batch is validated as a whole before anything is inserted.
        """
        item_ids = [int(i) for i in item_ids]
        if not item_ids:
            return

        with self._lock.write():
            self._require_initialized()

            matrix = np.vstack([self._prepare(v) for v in vectors])
            if matrix.shape[0] != len(item_ids):
                raise ValueError(
                    f"Mismatch between item_ids ({len(item_ids)}) and vectors ({matrix.shape[0]})"
                )

            seen: Set[int] = set()
            for item_id in item_ids:
                if item_id in self._ids or item_id in seen:
                    raise DuplicateItem(item_id)
                seen.add(item_id)

            if len(self._ids) + len(item_ids) > self._capacity:
                raise CapacityExceeded(
                    f"Adding {len(item_ids)} vectors exceeds capacity {self._capacity} "
                    f"(currently {len(self._ids)})"
                )

            self._index.add_with_ids(matrix, np.asarray(item_ids, dtype=np.int64))
            self._ids.update(item_ids)

        logger.debug(f"Added {len(item_ids)} vectors to index")

    def validate(self, vector: Sequence[float]) -> None:
        """
        Check that a vector would be accepted, without inserting it.

        Raises:
            NotInitialized, DimensionMismatch, NotNormalized
        """
        with self._lock.read():
            self._require_initialized()
            self._prepare(vector)

    def set_search_breadth(self, ef: int) -> None:
        """
        Set the per-query search breadth (efSearch).

        Must be >= k of subsequent queries for full recall; not validated here.
        """
        with self._lock.write():
            self._ef_search = int(ef)
            if self._hnsw is not None:
                self._hnsw.hnsw.efSearch = self._ef_search

    # ========== Queries ==========

    def search_knn(self, query: Sequence[float], k: int) -> List[RankedCandidate]:
        """
        Find the k most similar items.

        Args:
            query: Normalized query embedding
            k: Number of neighbors requested

        Returns:
            At most min(k, count()) candidates ordered by descending similarity

        Raises:
            NotInitialized: If the index was never initialized
            DimensionMismatch: If len(query) != dim
            NotNormalized: If the query is not unit length
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        with self._lock.read():
            self._require_initialized()
            query_matrix = self._prepare(query).reshape(1, -1)

            total = int(self._index.ntotal)
            if total == 0:
                return []

            effective_k = min(k, total)
            if effective_k > self._ef_search:
                logger.debug(
                    f"Requested k={effective_k} exceeds search breadth ef={self._ef_search}"
                )

            similarities, labels = self._index.search(query_matrix, effective_k)

        results = [
            RankedCandidate(item_id=int(label), score=float(sim))
            for sim, label in zip(similarities[0], labels[0])
            if label != -1
        ]

        # Best-first, regardless of how the native search ordered its heap
        results.sort(key=lambda c: c.score, reverse=True)
        return results

    def count(self) -> int:
        """Current number of indexed vectors."""
        with self._lock.read():
            self._require_initialized()
            return int(self._index.ntotal)

    def contains(self, item_id: int) -> bool:
        """Whether item_id is indexed."""
        with self._lock.read():
            self._require_initialized()
            return int(item_id) in self._ids

    def ids(self) -> Set[int]:
        """Snapshot of indexed item ids."""
        with self._lock.read():
            self._require_initialized()
            return set(self._ids)

    @property
    def is_initialized(self) -> bool:
        return self._index is not None

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def capacity(self) -> int:
        return self._capacity

    def stats(self) -> dict:
        """
        Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        with self._lock.read():
            if self._index is None:
                return {"status": "not_initialized"}

            return {
                "status": "initialized",
                "index_type": "HNSW",
                "metric": "inner_product",
                "num_vectors": int(self._index.ntotal),
                "dimension": self._dim,
                "capacity": self._capacity,
                "M": self._M,
                "ef_construction": self._ef_construction,
                "ef_search": self._ef_search,
            }

    # ========== Internals ==========

    def _allocate(self, dim: int, capacity: int, M: int, ef_construction: int) -> None:
        """Build a fresh graph. Caller holds the write lock."""
        hnsw = faiss.IndexHNSWFlat(dim, M, faiss.METRIC_INNER_PRODUCT)
        hnsw.hnsw.efConstruction = ef_construction
        hnsw.hnsw.efSearch = self._ef_search

        self._hnsw = hnsw
        self._index = faiss.IndexIDMap(hnsw)
        self._dim = dim
        self._capacity = capacity
        self._M = M
        self._ef_construction = ef_construction
        self._ids = set()

    def _require_initialized(self) -> None:
        if self._index is None:
            raise NotInitialized("Vector index not initialized. Call init() or load() first.")

    @staticmethod
    def _validate_config(dim: int, capacity: int) -> None:
        if dim <= 0:
            raise InvalidConfig(f"Embedding dimension must be positive, got {dim}")
        if capacity <= 0:
            raise InvalidConfig(f"Index capacity must be positive, got {capacity}")

    def _prepare(self, vector: Sequence[float]) -> np.ndarray:
        """
        Copy a vector into a contiguous float32 row and validate it.

        Raises:
            DimensionMismatch: If the length differs from the index dimension
            NotNormalized: If the vector has non-finite values or is not unit length
        """
        arr = np.array(vector, dtype=np.float32).reshape(-1)

        if arr.shape[0] != self._dim:
            raise DimensionMismatch(self._dim, arr.shape[0])

        if not np.all(np.isfinite(arr)):
            raise NotNormalized("Vector contains non-finite values")

        norm = float(np.linalg.norm(arr))
        if abs(norm - 1.0) > self.config.normalization_tolerance:
            raise NotNormalized(f"Vector norm is {norm:.6f}, expected 1.0")

        return np.ascontiguousarray(arr)
