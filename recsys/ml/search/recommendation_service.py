"""
Recommendation Service
Service-facing contract over the retrieval engine: recommend, search and the
explicit write side effects, all behind the lifecycle readiness gate.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..config import MLConfig, get_ml_config
from ..embeddings import CategoryAnchorEmbedder, EmbeddingProvider
from ..errors import CapacityExceeded, DimensionMismatch, DuplicateItem, UserNotFound
from ..lifecycle import Hydrator
from ..retrieval import FusionRanker, KeywordIndex, RankedResult, ScoringPipeline, VectorIndex

logger = logging.getLogger(__name__)


class RecommendationService:
    """
    Recommendation and search over one catalog.

    Every operation passes through the hydrator's readiness gate and raises
    NotReady unless startup reconciliation has completed and shutdown has not begun.
    """

    def __init__(
        self,
        store,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        hydrator: Hydrator,
        pipeline: ScoringPipeline,
        embedder: EmbeddingProvider,
        config: Optional[MLConfig] = None,
    ):
        self.config = config or get_ml_config()
        self.store = store
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.hydrator = hydrator
        self.pipeline = pipeline
        self.embedder = embedder
        self._add_lock = threading.Lock()

        if embedder.dimension != self.config.index.dim:
            raise DimensionMismatch(self.config.index.dim, embedder.dimension)

        logger.info("Recommendation service initialized")

    @classmethod
    def build(
        cls,
        store,
        config: Optional[MLConfig] = None,
        embedder: Optional[EmbeddingProvider] = None,
        index_path: Optional[Union[str, Path]] = None,
    ) -> "RecommendationService":
        """
        Wire indexes, pipeline and hydrator around a metadata store.

        The returned service is Cold; call start() before serving.
        """
        config = config or get_ml_config()

        vector_index = VectorIndex(config.index)
        keyword_index = KeywordIndex(config.keyword)
        hydrator = Hydrator(
            vector_index=vector_index,
            store=store,
            keyword_index=keyword_index,
            index_path=index_path,
            config=config,
        )
        pipeline = ScoringPipeline(
            vector_index=vector_index,
            popularity_source=store,
            keyword_index=keyword_index,
            fusion=FusionRanker(k=config.ranking.rrf_k),
            config=config.ranking,
        )

        return cls(
            store=store,
            vector_index=vector_index,
            keyword_index=keyword_index,
            hydrator=hydrator,
            pipeline=pipeline,
            embedder=embedder or CategoryAnchorEmbedder(config.index.dim),
            config=config,
        )

    # ========== Lifecycle ==========

    def start(self):
        """Hydrate indexes and open the readiness gate."""
        return self.hydrator.start()

    def stop(self) -> bool:
        """Drain, persist and flush. False if persistence failed."""
        return self.hydrator.stop()

    # ========== Reads ==========

    def recommend(self, user_id: int, k: Optional[int] = None) -> RankedResult:
        """
        Top-k items for a user, excluding items the user has already seen.

        Raises:
            NotReady: Outside the Ready state
            UserNotFound: If the user does not exist
        """
        k = self.config.ranking.default_k if k is None else k

        with self.hydrator.acquire():
            user = self.store.get_user(user_id)
            if user is None:
                raise UserNotFound(user_id)

            result = self.pipeline.run(user.embedding, k, exclude=user.seen_items)

        logger.info(
            f"Recommended {len(result.items)} items for user {user_id}",
            extra={"user_id": user_id, "k": k, "filtered": result.filtered_count},
        )
        return result

    def search(
        self,
        query_text: str,
        k: Optional[int] = None,
        user_id: Optional[int] = None,
        fuzzy: bool = True,
    ) -> RankedResult:
        """
        Hybrid text search: vector recall on the embedded query fused with keyword recall.

        Args:
            query_text: Free-text query
            k: Number of results
            user_id: Optional user whose seen items are excluded
            fuzzy: Allow fuzzy keyword matching

        Raises:
            NotReady: Outside the Ready state
            ValueError: If the query is empty
            UserNotFound: If user_id is given but unknown
        """
        k = self.config.ranking.default_k if k is None else k

        with self.hydrator.acquire():
            if not query_text or not query_text.strip():
                raise ValueError("Search query must not be empty")

            exclude = set()
            if user_id is not None:
                user = self.store.get_user(user_id)
                if user is None:
                    raise UserNotFound(user_id)
                exclude = user.seen_items

            query_vector = self.embedder.embed(query_text)
            result = self.pipeline.run(
                query_vector, k, exclude=exclude, query_text=query_text, fuzzy=fuzzy
            )

        logger.info(
            f"Search '{query_text}' returned {len(result.items)} items",
            extra={"query": query_text, "k": k, "mode": result.mode.value},
        )
        return result

    def get_items(self, item_ids: Iterable[int]) -> Dict:
        """Item records for display, keyed by id."""
        with self.hydrator.acquire():
            return self.store.get_items(item_ids)

    # ========== Writes ==========

    def mark_seen(self, user_id: int, item_ids: Iterable[int]) -> int:
        """Record items as shown to a user. Returns the number newly recorded."""
        with self.hydrator.acquire():
            return self.store.mark_seen(user_id, item_ids)

    def set_popularity(self, item_id: int, value: float) -> None:
        """Overwrite an item's popularity. Indexes are untouched."""
        with self.hydrator.acquire():
            self.store.set_popularity(item_id, value)

    def add_item(self, item) -> None:
        """
        Add a new item to the catalog and both indexes.

        The store is written first so that a failure before the indexes are
        updated is repaired by the next hydration.

        Adds are serialized, and every check that can reject the item runs
        before the store write.

        Raises:
            DuplicateItem: If the item is already indexed
            CapacityExceeded: If the vector index is full
            DimensionMismatch / NotNormalized: If the embedding is unusable
        """
        with self.hydrator.acquire(), self._add_lock:
            if self.vector_index.contains(item.id):
                raise DuplicateItem(item.id)
            if self.vector_index.count() >= self.vector_index.capacity:
                raise CapacityExceeded(
                    f"Vector index is full ({self.vector_index.capacity} items), cannot add item {item.id}"
                )
            self.vector_index.validate(item.embedding)

            self.store.upsert_item(item)
            self.vector_index.add_item(item.id, item.embedding)
            self.keyword_index.add_item(item.id, item.search_text, item.category)

        logger.info(f"Added item {item.id} to catalog", extra={"item_id": item.id})

    # ========== Status ==========

    def stats(self) -> dict:
        """Component status for health reporting."""
        return {
            "lifecycle": self.hydrator.stats(),
            "vector_index": self.vector_index.stats(),
            "keyword_index": {"num_documents": self.keyword_index.count()},
            "embedder": {
                "type": type(self.embedder).__name__,
                "dimension": self.embedder.dimension,
            },
        }
