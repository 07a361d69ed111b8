"""
API Routers
One router per endpoint group, all mounted by the app factory.
"""

from .admin import router as admin_router
from .feedback import router as feedback_router
from .health import router as health_router
from .recommend import router as recommend_router
from .search import router as search_router

__all__ = [
    "health_router",
    "search_router",
    "recommend_router",
    "feedback_router",
    "admin_router",
]
