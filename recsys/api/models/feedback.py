"""
Feedback Models
Pydantic models for seen-item feedback and catalog writes.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from ...models.catalog import Category


class SeenFeedbackRequest(BaseModel):
    """
    Seen-items request model.

    Records items as shown to a user; they are excluded from later recommendations.
    """

    user_id: int = Field(..., ge=0, description="User ID")
    item_ids: List[int] = Field(..., min_length=1, max_length=1000, description="Item IDs shown")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": 1,
                "item_ids": [42, 17],
            }
        }


class SeenFeedbackResponse(BaseModel):
    """
    Seen-items response model.
    """

    success: bool = Field(..., description="Whether the feedback was recorded")
    user_id: int = Field(..., description="User ID")
    recorded: int = Field(..., description="Items newly recorded as seen")


class PopularityUpdateRequest(BaseModel):
    """
    Popularity update request model.
    """

    popularity: float = Field(..., ge=0, description="New popularity value")


class PopularityUpdateResponse(BaseModel):
    """
    Popularity update response model.
    """

    item_id: int = Field(..., description="Item ID")
    popularity: float = Field(..., description="Stored popularity value")


class ItemCreateRequest(BaseModel):
    """
    Item creation request model.

    The embedding must be L2-normalized and match the deployment dimension.
    """

    id: int = Field(..., ge=0, description="Item ID")
    name: str = Field(..., min_length=1, description="Item name")
    category: Category = Field(..., description="Item category")
    embedding: List[float] = Field(..., min_length=1, description="Normalized embedding")
    popularity: float = Field(default=0.0, ge=0, description="Initial popularity")
    text: Optional[str] = Field(None, description="Text for keyword search (default: name)")
    price: Optional[float] = Field(None, ge=0, description="Item price")
    image_url: Optional[str] = Field(None, description="Image URL")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank names."""
        if not v.strip():
            raise ValueError("Item name must not be blank")
        return v.strip()


class ItemCreateResponse(BaseModel):
    """
    Item creation response model.
    """

    item_id: int = Field(..., description="Item ID")
    indexed: bool = Field(..., description="Whether the item was added to both indexes")
