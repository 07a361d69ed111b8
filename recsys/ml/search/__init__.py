"""
Search Service Module
Recommendation and search service over the retrieval engine.
"""

from .recommendation_service import RecommendationService

__all__ = [
    "RecommendationService",
]
