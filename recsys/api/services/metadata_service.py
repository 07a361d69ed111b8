"""
Metadata Service
Enriches ranked results with item display fields from the metadata store.
"""

import logging
from typing import List

from ...ml.retrieval import RankedResult
from ...ml.search import RecommendationService
from ..models.search import ItemResult

logger = logging.getLogger(__name__)


class MetadataService:
    """
    Service for turning ranked ids into display-ready results.

    Handles batch fetching of item details.
    """

    def __init__(self, service: RecommendationService):
        """
        Initialize metadata service.

        Args:
            service: Recommendation service (gives gated access to the store)
        """
        self.service = service

    def enrich_results(self, result: RankedResult) -> List[ItemResult]:
        """
        Enrich ranked items with item metadata.

        Args:
            result: Ranked result from the engine

        Returns:
            List of ItemResult objects in rank order
        """
        if not result.items:
            return []

        items = self.service.get_items(result.item_ids())

        enriched_results = []
        for rank, scored in enumerate(result.items):
            item = items.get(scored.item_id)
            if item is None:
                # Deleted between ranking and enrichment; keep the ranking, drop the display fields
                logger.warning(f"Item {scored.item_id} not found in metadata store")

            enriched_results.append(
                ItemResult(
                    item_id=scored.item_id,
                    name=item.name if item else None,
                    category=item.category if item else None,
                    price=item.price if item else None,
                    image_url=item.image_url if item else None,
                    rank=rank,
                    final_score=scored.final_score,
                    similarity=scored.similarity,
                    popularity=scored.popularity,
                )
            )

        logger.debug(f"Enriched {len(enriched_results)} item results")

        return enriched_results
