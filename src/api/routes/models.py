"""Model snapshot persistence endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_engine
from src.engine.service import ShopSenseEngine

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/models",
    tags=["models"],
)


@router.post("/reload")
def reload_models(
    model_dir: Optional[str] = None,
    engine: ShopSenseEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Reload saved snapshots from disk into the running engine.

    Useful when a model has been trained offline with ``scripts/train_model.py``
    and needs to be served without restarting the server.
    """
    logger.info("Reloading model snapshots...")
    try:
        loaded = engine.load_models(model_dir)
    except FileNotFoundError as e:
        logger.error(f"Failed to reload models: {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    return {
        "status": "Models reloaded successfully",
        "models": {s.name: s.version for s in loaded},
    }


@router.post("/save")
def save_models(
    model_dir: Optional[str] = None,
    engine: ShopSenseEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Write every published snapshot to disk."""
    paths = engine.save_models(model_dir)
    return {"status": "Models saved", "files": [str(p) for p in paths]}
