"""
Search Models
Pydantic models for search endpoint and the shared result item.
"""

from typing import Optional, List
from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """
    Search request model.

    Free-text search fused across vector and keyword recall.
    """

    query: str = Field(..., min_length=1, max_length=500, description="Search query text")

    # User context (optional, excludes items the user has already seen)
    user_id: Optional[int] = Field(None, ge=0, description="User ID whose seen items are excluded")

    limit: int = Field(default=10, ge=1, le=100, description="Maximum number of results to return")

    # Search settings
    fuzzy: bool = Field(default=True, description="Allow fuzzy keyword matching")

    class Config:
        json_schema_extra = {
            "example": {
                "query": "wireless headphones",
                "user_id": 1,
                "limit": 10,
                "fuzzy": True,
            }
        }


class ItemResult(BaseModel):
    """
    Single ranked item.

    Contains display fields and the components of the final score.
    """

    item_id: int = Field(..., description="Item ID")

    # Item information
    name: Optional[str] = Field(None, description="Item name")
    category: Optional[str] = Field(None, description="Item category")
    price: Optional[float] = Field(None, description="Item price")
    image_url: Optional[str] = Field(None, description="Image URL")

    # Ranking information
    rank: int = Field(..., description="Position in results (0-indexed)")
    final_score: float = Field(..., description="Blended score")
    similarity: float = Field(..., description="Normalized similarity component")
    popularity: float = Field(..., description="Normalized popularity component")


class SearchResponse(BaseModel):
    """
    Search response model.
    """

    results: List[ItemResult] = Field(..., description="Ranked items")
    total: int = Field(..., description="Number of results returned")

    query: str = Field(..., description="Original search query")
    mode: str = Field(..., description="Recall mode (vector or hybrid)")

    # Observability counters
    filtered_count: int = Field(default=0, description="Candidates removed as already seen")
    recall_count: int = Field(default=0, description="Candidates produced by recall")

    # Performance metrics
    search_time_ms: float = Field(..., description="Engine time in milliseconds")
    total_time_ms: float = Field(..., description="Total request time in milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "results": [
                    {
                        "item_id": 42,
                        "name": "Wireless Headphones",
                        "category": "Electronics",
                        "price": 59.99,
                        "rank": 0,
                        "final_score": 0.87,
                        "similarity": 0.95,
                        "popularity": 0.7,
                    }
                ],
                "total": 1,
                "query": "wireless headphones",
                "mode": "hybrid",
                "filtered_count": 0,
                "recall_count": 50,
                "search_time_ms": 3.1,
                "total_time_ms": 4.8,
            }
        }
