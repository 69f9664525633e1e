"""FastAPI application main module.

This module defines the FastAPI application instance, wires the route
modules, and maps engine errors onto HTTP responses. It also provides the
health, status and metrics endpoints and serves as the entry point for the
API server.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import __version__
from src.api.dependencies import get_engine
from src.api.logging_config import RequestLoggingMiddleware, setup_logging
from src.api.metrics import metrics_service
from src.api.routes import demand, forecast, models, recommend, training
from src.api.schemas import ErrorResponse
from src.config import EngineConfig
from src.engine.service import ShopSenseEngine
from src.exceptions import ShopSenseError

setup_logging(EngineConfig.from_env().log_level)

# Configure module logger
logger = logging.getLogger(__name__)

_started_at = datetime.now(timezone.utc)

# Create FastAPI application instance
app = FastAPI(
    title="ShopSense API",
    description="Sales forecasting, demand prediction and product recommendations",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(forecast.router)
app.include_router(recommend.router)
app.include_router(demand.router)
app.include_router(training.router)
app.include_router(models.router)


def _error_body(error: str, message: str, details: Any = None) -> Dict[str, Any]:
    return ErrorResponse(error=error, message=message, details=details or {}).model_dump()


@app.exception_handler(ShopSenseError)
async def shopsense_error_handler(request: Request, exc: ShopSenseError) -> JSONResponse:
    """Render engine errors with their own status code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={"path": str(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(type(exc).__name__, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=_error_body(
            "InvalidInputError",
            "Request body failed validation",
            {"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTPException", str(exc.detail)),
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Returns:
        Dictionary with status key set to "ok".

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def get_status(engine: ShopSenseEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Published model snapshots and background training jobs."""
    info = engine.status()
    info["version"] = __version__
    info["started_at"] = _started_at.isoformat()
    return info


@app.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Call counts and latency per engine operation."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
