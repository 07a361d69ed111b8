"""
Scoring Pipeline
Recall -> filter -> rank for a single request.

Ranking Formula:
final = alpha × similarity + (1 - alpha) × popularity

- similarity: inner product clamped to [0, 1] for vector recall, or the fused
  RRF score divided by its maximum possible value for hybrid recall
- popularity: raw popularity divided by the largest popularity among the
  candidates that survive filtering (0 when that largest value is 0)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set

from ..config import RankingConfig, get_ml_config
from .fusion import FusionRanker
from .keyword_index import KeywordIndex
from .types import RankedCandidate, RecallMode, candidate_ids
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)


class PopularitySource(Protocol):
    """Anything that can report popularity for a batch of item ids."""

    def get_popularities(self, item_ids: Iterable[int]) -> Dict[int, float]:
        ...


@dataclass
class ScoredItem:
    """One ranked item with the components of its final score."""

    item_id: int
    final_score: float
    similarity: float  # Normalized similarity component
    popularity: float  # Normalized popularity component

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "item_id": self.item_id,
            "final_score": float(self.final_score),
            "similarity": float(self.similarity),
            "popularity": float(self.popularity),
        }


@dataclass
class RankedResult:
    """
    Ranked items plus observability counters for one request.
    """

    items: List[ScoredItem] = field(default_factory=list)
    filtered_count: int = 0  # Candidates removed because already seen
    missing_count: int = 0  # Candidates with no metadata record
    recall_count: int = 0  # Candidates produced by the recall stage
    mode: RecallMode = RecallMode.VECTOR
    search_time_ms: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "items": [item.to_dict() for item in self.items],
            "filtered_count": self.filtered_count,
            "missing_count": self.missing_count,
            "recall_count": self.recall_count,
            "mode": self.mode.value,
            "search_time_ms": float(self.search_time_ms),
        }

    def item_ids(self) -> List[int]:
        """Get list of item IDs in rank order."""
        return [item.item_id for item in self.items]


class ScoringPipeline:
    """
    Orchestrates recall and re-ranking.

    Recall asks the vector index (and, for text queries, the keyword index) for
    k + margin candidates so that seen-item exclusion rarely under-fills the
    result. Two sources are merged with reciprocal rank fusion.
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        popularity_source: PopularitySource,
        keyword_index: Optional[KeywordIndex] = None,
        fusion: Optional[FusionRanker] = None,
        config: Optional[RankingConfig] = None,
    ):
        """
        Initialize scoring pipeline.

        Args:
            vector_index: ANN index for embedding recall
            popularity_source: Popularity lookup (normally the metadata store)
            keyword_index: Optional text index for hybrid recall
            fusion: Rank fusion (default: built from config.rrf_k)
            config: Ranking configuration
        """
        self.config = config or get_ml_config().ranking
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.popularity_source = popularity_source
        self.fusion = fusion or FusionRanker(k=self.config.rrf_k)

    def run(
        self,
        query_vector: Sequence[float],
        k: int,
        exclude: Optional[Iterable[int]] = None,
        query_text: Optional[str] = None,
        fuzzy: bool = True,
    ) -> RankedResult:
        """
        Produce the top-k items for one request.

        Args:
            query_vector: Normalized user or query embedding
            k: Number of results
            exclude: Item ids never to return (already seen)
            query_text: Free text; enables keyword recall and fusion
            fuzzy: Allow fuzzy keyword matching

        Returns:
            RankedResult ordered by descending final score, ties by lower id
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        start_time = time.time()
        recall_k = k + self.config.recall_margin

        # Recall
        candidates, similarities, mode = self._recall(query_vector, query_text, recall_k, fuzzy)

        # Filter
        excluded: Set[int] = set(exclude or ())
        survivors = [c for c in candidates if c.item_id not in excluded]
        filtered_count = len(candidates) - len(survivors)

        # Rank
        popularities = self.popularity_source.get_popularities(candidate_ids(survivors))
        present = [c for c in survivors if c.item_id in popularities]
        missing_count = len(survivors) - len(present)
        if missing_count:
            logger.warning(f"{missing_count} recalled items have no metadata record")

        max_popularity = max((popularities[c.item_id] for c in present), default=0.0)
        alpha = self.config.alpha

        scored = []
        for candidate in present:
            similarity = similarities[candidate.item_id]
            popularity = (
                popularities[candidate.item_id] / max_popularity if max_popularity > 0 else 0.0
            )
            scored.append(
                ScoredItem(
                    item_id=candidate.item_id,
                    final_score=alpha * similarity + (1 - alpha) * popularity,
                    similarity=similarity,
                    popularity=popularity,
                )
            )

        scored.sort(key=lambda s: (-s.final_score, s.item_id))

        search_time_ms = (time.time() - start_time) * 1000

        logger.debug(
            f"Scored {len(present)} of {len(candidates)} candidates "
            f"(filtered={filtered_count}, mode={mode.value}) in {search_time_ms:.2f}ms"
        )

        return RankedResult(
            items=scored[:k],
            filtered_count=filtered_count,
            missing_count=missing_count,
            recall_count=len(candidates),
            mode=mode,
            search_time_ms=search_time_ms,
        )

    def _recall(
        self,
        query_vector: Sequence[float],
        query_text: Optional[str],
        recall_k: int,
        fuzzy: bool,
    ):
        """Candidates, their normalized similarity by id, and the recall mode."""
        vector_hits = self.vector_index.search_knn(query_vector, recall_k)

        if not query_text or self.keyword_index is None:
            similarities = {c.item_id: min(max(c.score, 0.0), 1.0) for c in vector_hits}
            return vector_hits, similarities, RecallMode.VECTOR

        keyword_hits = self.keyword_index.search(query_text, recall_k, fuzzy=fuzzy)
        sources = [hits for hits in (vector_hits, keyword_hits) if hits]

        fused: List[RankedCandidate] = self.fusion.fuse(sources)
        ceiling = self.fusion.max_score(len(sources)) if sources else 1.0
        similarities = {c.item_id: c.score / ceiling for c in fused}

        return fused, similarities, RecallMode.HYBRID
