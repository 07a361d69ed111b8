"""
Retrieval Types
Result containers shared by the indexes, the fusion ranker and the scoring pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List


@dataclass(frozen=True)
class RankedCandidate:
    """
    An item id with a source-specific relevance score.

    Lists of candidates are always ordered best-first (descending score).
    """

    item_id: int
    score: float

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {"item_id": self.item_id, "score": float(self.score)}


class RecallMode(str, Enum):
    """Which sources produced the candidate set."""

    VECTOR = "vector"
    HYBRID = "hybrid"


def candidate_ids(candidates: List[RankedCandidate]) -> List[int]:
    """Extract item ids in rank order."""
    return [c.item_id for c in candidates]
