"""
Data Models Package
Domain entities for the catalog.
"""

from .catalog import Category, Item, User

__all__ = [
    "Category",
    "Item",
    "User",
]
