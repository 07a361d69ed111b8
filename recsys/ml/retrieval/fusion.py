"""
Fusion Ranker
Reciprocal Rank Fusion of ranked candidate lists from heterogeneous sources.

RRF score(item) = sum over lists containing item of 1 / (K + rank + 1),  rank 0-based
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ..config import get_ml_config
from .types import RankedCandidate

logger = logging.getLogger(__name__)


class FusionRanker:
    """
    Merges ranked lists without comparing their raw scores.

    Vector similarity and keyword relevance live on incomparable scales, so only
    each item's position in each list is used.
    """

    def __init__(self, k: Optional[int] = None):
        """
        Initialize fusion ranker.

        Args:
            k: Smoothing constant (default: ranking config, typically 60)
        """
        self.k = get_ml_config().ranking.rrf_k if k is None else k
        if self.k < 0:
            raise ValueError(f"RRF constant must be >= 0, got {self.k}")

    def contribution(self, rank: int) -> float:
        """Score contributed by a 0-based rank in one list."""
        return 1.0 / (self.k + rank + 1)

    def max_score(self, num_lists: int) -> float:
        """Fused score of an item ranked first in every list."""
        return num_lists * self.contribution(0)

    def fuse(self, ranked_lists: Sequence[Sequence[RankedCandidate]]) -> List[RankedCandidate]:
        """
        Merge ranked lists into one ordering.

        Args:
            ranked_lists: Candidate lists, each ordered best-first

        Returns:
            Candidates carrying fused scores, descending, ties broken by lower item id
        """
        scores: Dict[int, float] = defaultdict(float)

        for candidates in ranked_lists:
            seen_in_list = set()
            for rank, candidate in enumerate(candidates):
                # A list is a total order, so an id counts once per list
                if candidate.item_id in seen_in_list:
                    continue
                seen_in_list.add(candidate.item_id)
                scores[candidate.item_id] += self.contribution(rank)

        fused = [RankedCandidate(item_id=item_id, score=score) for item_id, score in scores.items()]
        fused.sort(key=lambda c: (-c.score, c.item_id))

        logger.debug(f"Fused {len(ranked_lists)} lists into {len(fused)} candidates")

        return fused
