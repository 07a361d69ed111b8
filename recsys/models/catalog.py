"""
Catalog domain models.
Items and users as owned by the metadata store; indexes hold derived projections keyed by id.
"""

from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    """Fixed set of item categories."""

    ELECTRONICS = "Electronics"
    BOOKS = "Books"
    HOME = "Home"
    CLOTHING = "Clothing"


class Item(BaseModel):
    """
    Catalog item.

    `text` feeds the keyword index and defaults to the item name.
    `price` and `image_url` are display fields, opaque to retrieval.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    id: int = Field(..., ge=0)
    name: str = Field(..., min_length=1)
    category: Category
    embedding: List[float] = Field(..., min_length=1)
    popularity: float = Field(default=0.0, ge=0.0)
    text: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0.0)
    image_url: Optional[str] = None

    @field_validator("embedding", mode="before")
    @classmethod
    def coerce_embedding(cls, v):
        """Accept numpy arrays and other sequences."""
        if hasattr(v, "tolist"):
            v = v.tolist()
        return [float(x) for x in v]

    @property
    def search_text(self) -> str:
        """Text indexed for keyword search."""
        return self.text or self.name


class User(BaseModel):
    """
    User with a preference embedding and the set of items already shown.

    `seen_items` only grows.
    """

    id: int = Field(..., ge=0)
    name: str = ""
    embedding: List[float] = Field(..., min_length=1)
    seen_items: Set[int] = Field(default_factory=set)

    @field_validator("embedding", mode="before")
    @classmethod
    def coerce_embedding(cls, v):
        """Accept numpy arrays and other sequences."""
        if hasattr(v, "tolist"):
            v = v.tolist()
        return [float(x) for x in v]
