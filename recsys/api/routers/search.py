"""
Search Endpoint
POST /search - Hybrid text search.
"""

import logging
import time

from fastapi import APIRouter, Depends, status

from ...ml.search import RecommendationService
from ..config import APISettings
from ..dependencies import (
    get_api_settings,
    get_metadata_service,
    get_recommendation_service,
    get_request_id,
)
from ..errors import APIError
from ..models.search import SearchRequest, SearchResponse
from ..services.metadata_service import MetadataService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse, status_code=status.HTTP_200_OK)
def search(
    request: SearchRequest,
    service: RecommendationService = Depends(get_recommendation_service),
    metadata_service: MetadataService = Depends(get_metadata_service),
    settings: APISettings = Depends(get_api_settings),
    request_id: str = Depends(get_request_id),
) -> SearchResponse:
    """
    Search items by free text.

    The query is embedded for vector recall and tokenized for keyword recall;
    the two candidate lists are merged with reciprocal rank fusion before
    popularity blending.

    Args:
        request: Search request with query and optional user_id
        service: Recommendation service
        metadata_service: Metadata service
        settings: API settings
        request_id: Request ID for tracing

    Returns:
        Search response with ranked results
    """
    if not settings.enable_text_search:
        raise APIError("Text search is disabled", status_code=status.HTTP_403_FORBIDDEN)

    start_time = time.time()

    logger.info(
        f"Search request: query='{request.query}', user_id={request.user_id}",
        extra={"request_id": request_id},
    )

    result = service.search(
        request.query, k=request.limit, user_id=request.user_id, fuzzy=request.fuzzy
    )
    results = metadata_service.enrich_results(result)

    total_time_ms = (time.time() - start_time) * 1000

    logger.info(
        f"Search completed: {len(results)} results in {total_time_ms:.2f}ms",
        extra={"request_id": request_id},
    )

    return SearchResponse(
        results=results,
        total=len(results),
        query=request.query,
        mode=result.mode.value,
        filtered_count=result.filtered_count,
        recall_count=result.recall_count,
        search_time_ms=result.search_time_ms,
        total_time_ms=total_time_ms,
    )
