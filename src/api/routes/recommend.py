"""Recommendation endpoint for the ShopSense API.

Ranks catalog products for a customer from the submitted catalog and
purchase history of all customers.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine, track
from src.api.schemas import ERROR_RESPONSES, ProductBody, ProductId, TransactionBody
from src.engine.service import ShopSenseEngine

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)


class RecommendationRequest(BaseModel):
    customer_id: ProductId
    products: List[ProductBody]
    transactions: List[TransactionBody] = Field(default_factory=list)
    top_n: Optional[int] = Field(default=None, ge=0, le=1000)
    explain: bool = Field(default=False, description="Include per-source scores")
    timeout: Optional[float] = Field(default=None, gt=0)


class Recommendation(BaseModel):
    product_id: ProductId
    score: float


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests.

    Attributes:
        customer_id: The customer the recommendations are for.
        recommendations: Products ordered by fused score, best first.
        scores: Per-source breakdown, present only with ``explain``.
    """

    customer_id: ProductId
    recommendations: List[Recommendation]
    scores: Optional[Dict[str, Any]] = None


def _keyed(scores: Dict[Any, Any]) -> Dict[str, Any]:
    return {str(k): v for k, v in scores.items()}


@router.post("", response_model=RecommendationResponse, responses=ERROR_RESPONSES)
def recommend_products(
    request: RecommendationRequest,
    engine: ShopSenseEngine = Depends(get_engine),
) -> RecommendationResponse:
    """Get product recommendations for a customer.

    Example:
        POST /recommend {"customer_id": "A", "products": [...],
        "transactions": [...], "top_n": 5, "explain": true}
    """
    logger.info(
        f"Recommendations requested for customer {request.customer_id}, "
        f"catalog={len(request.products)}, transactions={len(request.transactions)}"
    )
    with track("recommend"):
        result = engine.recommend_products(
            request.customer_id,
            [p.to_product() for p in request.products],
            [t.to_transaction() for t in request.transactions],
            top_n=request.top_n,
            timeout=request.timeout,
            return_scores=request.explain,
        )

    scores = None
    if request.explain:
        result, breakdown = result
        scores = {
            key: _keyed(value) if isinstance(value, dict) else value
            for key, value in breakdown.items()
        }

    return RecommendationResponse(
        customer_id=request.customer_id,
        recommendations=[Recommendation(**c.to_dict()) for c in result],
        scores=scores,
    )
