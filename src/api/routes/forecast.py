"""Sales forecasting endpoint."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine, track
from src.api.schemas import ERROR_RESPONSES, HistoryPoint
from src.config import DEFAULT_HORIZON_DAYS
from src.engine.service import ShopSenseEngine

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/forecast",
    tags=["forecasting"],
)


class ForecastRequest(BaseModel):
    history: List[HistoryPoint] = Field(..., description="Daily sales, any order")
    horizon_days: int = Field(default=DEFAULT_HORIZON_DAYS, ge=1, le=365)
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds")


class ForecastDay(BaseModel):
    date: str
    predicted_sales: int
    confidence: int


class ForecastResponse(BaseModel):
    forecasts: List[ForecastDay]
    model_version: Optional[int] = None


@router.post("", response_model=ForecastResponse, responses=ERROR_RESPONSES)
def forecast_sales(
    request: ForecastRequest,
    engine: ShopSenseEngine = Depends(get_engine),
) -> ForecastResponse:
    """Forecast daily sales for the days following the submitted history.

    Example:
        POST /forecast {"history": [...], "horizon_days": 7}
        Returns 7 consecutive daily forecasts with confidence scores.
    """
    logger.info(
        f"Forecast requested: {len(request.history)} days of history, "
        f"horizon={request.horizon_days}"
    )
    with track("forecast"):
        results = engine.forecast_sales(
            [p.to_point() for p in request.history],
            request.horizon_days,
            timeout=request.timeout,
        )

    snapshot = engine.registry.get(engine.forecaster.model_name)
    return ForecastResponse(
        forecasts=[ForecastDay(**r.to_dict()) for r in results],
        model_version=snapshot.version if snapshot else None,
    )
