"""
Dependency Injection
FastAPI dependencies for the engine, settings and request metadata.

Everything is read from app.state, which the app factory and lifespan populate,
so several apps (e.g. in tests) can coexist in one process.
"""

import logging
import uuid
from typing import Optional
from fastapi import Depends, Header, Request

from ..ml.search import RecommendationService
from .config import APISettings, get_settings
from .errors import APIError
from .services.metadata_service import MetadataService

logger = logging.getLogger(__name__)


def get_api_settings(request: Request) -> APISettings:
    """
    Settings the running app was built with.

    Use as FastAPI dependency:
        @app.post("/search")
        def search(settings: APISettings = Depends(get_api_settings)):
            ...
    """
    return getattr(request.app.state, "settings", None) or get_settings()


def get_recommendation_service(request: Request) -> RecommendationService:
    """
    Engine owned by the running app.

    Raises:
        APIError: If the lifespan never created one
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        logger.error("Request reached a handler before the engine was created")
        raise APIError("Recommendation service not configured")
    return service


def get_request_id(request: Request, x_request_id: Optional[str] = Header(None)) -> str:
    """ID for log correlation: client header, else the one the logging middleware assigned."""
    if x_request_id:
        return x_request_id
    return getattr(request.state, "request_id", None) or uuid.uuid4().hex


def get_metadata_service(
    service: RecommendationService = Depends(get_recommendation_service),
) -> MetadataService:
    return MetadataService(service)
