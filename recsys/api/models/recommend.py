"""
Recommendation Models
Pydantic models for recommendation endpoint.
"""

from typing import List
from pydantic import BaseModel, Field
from .search import ItemResult


class RecommendRequest(BaseModel):
    """
    Recommendation request model.

    Generates recommendations for a user from their preference embedding.
    """

    user_id: int = Field(..., ge=0, description="User ID")
    limit: int = Field(default=10, ge=1, le=100, description="Maximum number of results to return")

    # Record returned items as seen so later requests do not repeat them
    mark_seen: bool = Field(default=False, description="Mark returned items as seen")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": 1,
                "limit": 10,
                "mark_seen": False,
            }
        }


class RecommendResponse(BaseModel):
    """
    Recommendation response model.
    """

    results: List[ItemResult] = Field(..., description="List of recommended items")
    total: int = Field(..., description="Number of results returned")

    user_id: int = Field(..., description="User ID")

    # Observability counters
    filtered_count: int = Field(default=0, description="Candidates removed as already seen")
    recall_count: int = Field(default=0, description="Candidates produced by recall")
    marked_seen: int = Field(default=0, description="Items newly recorded as seen")

    # Performance metrics
    recommendation_time_ms: float = Field(..., description="Engine time in milliseconds")
    total_time_ms: float = Field(..., description="Total request time in milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "results": [
                    {
                        "item_id": 42,
                        "name": "Wireless Headphones",
                        "category": "Electronics",
                        "rank": 0,
                        "final_score": 0.87,
                        "similarity": 0.95,
                        "popularity": 0.7,
                    }
                ],
                "total": 1,
                "user_id": 1,
                "filtered_count": 3,
                "recall_count": 50,
                "recommendation_time_ms": 2.4,
                "total_time_ms": 3.9,
            }
        }
