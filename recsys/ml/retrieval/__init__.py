"""
Retrieval Module
HNSW vector search, keyword search, rank fusion and re-ranking.
"""

from .types import RankedCandidate, RecallMode, candidate_ids
from .vector_index import VectorIndex, LoadStatus
from .keyword_index import KeywordIndex, tokenize
from .fusion import FusionRanker
from .scoring import ScoringPipeline, ScoredItem, RankedResult, PopularitySource

__all__ = [
    "RankedCandidate",
    "RecallMode",
    "candidate_ids",
    "VectorIndex",
    "LoadStatus",
    "KeywordIndex",
    "tokenize",
    "FusionRanker",
    "ScoringPipeline",
    "ScoredItem",
    "RankedResult",
    "PopularitySource",
]
