"""
Pydantic Models
Request/response models for API endpoints.
"""

from .search import SearchRequest, SearchResponse, ItemResult
from .recommend import RecommendRequest, RecommendResponse
from .feedback import (
    SeenFeedbackRequest,
    SeenFeedbackResponse,
    PopularityUpdateRequest,
    PopularityUpdateResponse,
    ItemCreateRequest,
    ItemCreateResponse,
)

__all__ = [
    "SearchRequest",
    "SearchResponse",
    "ItemResult",
    "RecommendRequest",
    "RecommendResponse",
    "SeenFeedbackRequest",
    "SeenFeedbackResponse",
    "PopularityUpdateRequest",
    "PopularityUpdateResponse",
    "ItemCreateRequest",
    "ItemCreateResponse",
]
