"""Background training endpoints.

Training never runs on the request path: these endpoints submit a job to
the engine's training pool and return its id for polling or cancellation.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine
from src.api.schemas import ERROR_RESPONSES, HistoryPoint, ProductBody
from src.engine.service import ShopSenseEngine
from src.engine.training import TrainingJob

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/train",
    tags=["training"],
)


class SalesTrainingRequest(BaseModel):
    history: List[HistoryPoint]
    timeout: Optional[float] = Field(default=None, gt=0)


class DemandTrainingRequest(BaseModel):
    product: ProductBody
    history: List[HistoryPoint]
    external_factors: Dict[str, float] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)


def _find_job(engine: ShopSenseEngine, job_id: str) -> TrainingJob:
    job = engine.scheduler.get(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Training job {job_id} not found",
        )
    return job


@router.post("/sales", status_code=status.HTTP_202_ACCEPTED, responses=ERROR_RESPONSES)
def train_sales(
    request: SalesTrainingRequest,
    engine: ShopSenseEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Start retraining the sales forecaster in the background."""
    job = engine.train_sales_forecaster(
        [p.to_point() for p in request.history],
        background=True,
        timeout=request.timeout,
    )
    return job.describe()


@router.post("/demand", status_code=status.HTTP_202_ACCEPTED, responses=ERROR_RESPONSES)
def train_demand(
    request: DemandTrainingRequest,
    engine: ShopSenseEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Start retraining the demand model in the background."""
    job = engine.train_demand_model(
        request.product.to_product(),
        [p.to_point() for p in request.history],
        request.external_factors,
        background=True,
        timeout=request.timeout,
    )
    return job.describe()


@router.get("/{job_id}")
def get_job(job_id: str, engine: ShopSenseEngine = Depends(get_engine)) -> Dict[str, Any]:
    return _find_job(engine, job_id).describe()


@router.delete("/{job_id}")
def cancel_job(job_id: str, engine: ShopSenseEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Cancel a pending or running job. Finished jobs are left as they are."""
    job = _find_job(engine, job_id)
    cancelled = job.cancel()
    info = job.describe()
    info["cancel_requested"] = cancelled
    return info
