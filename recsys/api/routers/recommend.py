"""
Recommend Endpoint
POST /recommend - Personalized item recommendations.
"""

import logging
import time

from fastapi import APIRouter, Depends, status

from ...ml.search import RecommendationService
from ..dependencies import get_metadata_service, get_recommendation_service, get_request_id
from ..models.recommend import RecommendRequest, RecommendResponse
from ..services.metadata_service import MetadataService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["recommend"])


@router.post("/recommend", response_model=RecommendResponse, status_code=status.HTTP_200_OK)
def recommend(
    request: RecommendRequest,
    service: RecommendationService = Depends(get_recommendation_service),
    metadata_service: MetadataService = Depends(get_metadata_service),
    request_id: str = Depends(get_request_id),
) -> RecommendResponse:
    """
    Generate recommendations for a user.

    Workflow:
    1. Recall k + margin candidates near the user's embedding
    2. Drop items the user has already seen
    3. Blend similarity with popularity and keep the top k
    4. Optionally mark the returned items as seen
    5. Enrich results with item metadata

    Args:
        request: Recommendation request with user_id and limit
        service: Recommendation service
        metadata_service: Metadata service
        request_id: Request ID for tracing

    Returns:
        Recommendation response with results and metadata
    """
    start_time = time.time()

    logger.info(
        f"Recommend request: user_id={request.user_id}, limit={request.limit}",
        extra={"request_id": request_id},
    )

    result = service.recommend(request.user_id, k=request.limit)

    marked = 0
    if request.mark_seen and result.items:
        marked = service.mark_seen(request.user_id, result.item_ids())

    results = metadata_service.enrich_results(result)

    total_time_ms = (time.time() - start_time) * 1000

    logger.info(
        f"Recommend completed: {len(results)} results in {total_time_ms:.2f}ms",
        extra={"request_id": request_id, "filtered_count": result.filtered_count},
    )

    return RecommendResponse(
        results=results,
        total=len(results),
        user_id=request.user_id,
        filtered_count=result.filtered_count,
        recall_count=result.recall_count,
        marked_seen=marked,
        recommendation_time_ms=result.search_time_ms,
        total_time_ms=total_time_ms,
    )
