"""
Admin Endpoints
PUT /items/{item_id}/popularity - Overwrite an item's popularity
POST /items - Add an item to the catalog and both indexes
"""

import logging

from fastapi import APIRouter, Depends, status

from ...ml.search import RecommendationService
from ...models.catalog import Item
from ..config import APISettings
from ..dependencies import get_api_settings, get_recommendation_service, get_request_id
from ..errors import APIError
from ..models.feedback import (
    ItemCreateRequest,
    ItemCreateResponse,
    PopularityUpdateRequest,
    PopularityUpdateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["admin"])


def _require_admin(settings: APISettings) -> None:
    if not settings.enable_admin:
        raise APIError("Admin endpoints are disabled", status_code=status.HTTP_403_FORBIDDEN)


@router.put(
    "/items/{item_id}/popularity",
    response_model=PopularityUpdateResponse,
    status_code=status.HTTP_200_OK,
)
def set_popularity(
    item_id: int,
    request: PopularityUpdateRequest,
    service: RecommendationService = Depends(get_recommendation_service),
    settings: APISettings = Depends(get_api_settings),
    request_id: str = Depends(get_request_id),
) -> PopularityUpdateResponse:
    """
    Overwrite an item's popularity.

    Takes effect on the next ranking; the indexes are not touched.
    """
    _require_admin(settings)

    service.set_popularity(item_id, request.popularity)

    logger.info(
        f"Set popularity of item {item_id} to {request.popularity}",
        extra={"request_id": request_id},
    )

    return PopularityUpdateResponse(item_id=item_id, popularity=request.popularity)


@router.post("/items", response_model=ItemCreateResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    request: ItemCreateRequest,
    service: RecommendationService = Depends(get_recommendation_service),
    settings: APISettings = Depends(get_api_settings),
    request_id: str = Depends(get_request_id),
) -> ItemCreateResponse:
    """
    Add a new item.

    The item is written to the metadata store first, then to the vector and
    keyword indexes. Existing ids are rejected with 409.
    """
    _require_admin(settings)

    item = Item(**request.model_dump())
    service.add_item(item)

    logger.info(f"Created item {item.id}", extra={"request_id": request_id})

    return ItemCreateResponse(item_id=item.id, indexed=True)
