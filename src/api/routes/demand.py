"""Demand prediction endpoint."""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine, track
from src.api.schemas import ERROR_RESPONSES, HistoryPoint, ProductBody
from src.engine.service import ShopSenseEngine

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/demand",
    tags=["demand"],
)


class DemandRequest(BaseModel):
    product: ProductBody
    history: List[HistoryPoint]
    external_factors: Dict[str, float] = Field(
        default_factory=dict, description="season, weather and trend indicators"
    )
    timeout: Optional[float] = Field(default=None, gt=0)


class FactorContribution(BaseModel):
    feature: str
    contribution: float


class DemandResponse(BaseModel):
    product_id: str
    predicted_demand: int
    confidence: int
    factors: List[FactorContribution]


@router.post("", response_model=DemandResponse, responses=ERROR_RESPONSES)
def predict_demand(
    request: DemandRequest,
    engine: ShopSenseEngine = Depends(get_engine),
) -> DemandResponse:
    """Estimate demand for a product with a ranked factor breakdown."""
    product = request.product.to_product()
    with track("demand"):
        prediction = engine.predict_demand(
            product,
            [p.to_point() for p in request.history],
            request.external_factors,
            timeout=request.timeout,
        )

    body = prediction.to_dict()
    return DemandResponse(
        product_id=str(product.product_id),
        predicted_demand=body["predicted_demand"],
        confidence=body["confidence"],
        factors=[FactorContribution(**f) for f in body["factors"]],
    )
