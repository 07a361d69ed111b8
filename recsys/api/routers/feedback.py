"""
Feedback Endpoint
POST /feedback/seen - Record items shown to a user.
"""

import logging

from fastapi import APIRouter, Depends, status

from ...ml.search import RecommendationService
from ..dependencies import get_recommendation_service, get_request_id
from ..models.feedback import SeenFeedbackRequest, SeenFeedbackResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["feedback"])


@router.post("/feedback/seen", response_model=SeenFeedbackResponse, status_code=status.HTTP_200_OK)
def record_seen(
    request: SeenFeedbackRequest,
    service: RecommendationService = Depends(get_recommendation_service),
    request_id: str = Depends(get_request_id),
) -> SeenFeedbackResponse:
    """
    Record items as seen by a user.

    Seen items are excluded from that user's later recommendations. Recording
    the same item twice is a no-op.

    Args:
        request: User ID and the item IDs that were shown
        service: Recommendation service
        request_id: Request ID for tracing

    Returns:
        Number of newly recorded items
    """
    recorded = service.mark_seen(request.user_id, request.item_ids)

    logger.info(
        f"Recorded {recorded} seen items for user {request.user_id}",
        extra={"request_id": request_id},
    )

    return SeenFeedbackResponse(success=True, user_id=request.user_id, recorded=recorded)
