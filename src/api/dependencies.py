"""Shared state for the API routes.

The engine is created lazily on first use and cached at module level so all
requests share one snapshot registry and one training pool. Tests replace it
through ``app.dependency_overrides[get_engine]`` or ``set_engine``.
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from src.api.metrics import metrics_service
from src.config import EngineConfig
from src.engine.artifacts import check_snapshots_exist
from src.engine.service import ShopSenseEngine

# Configure module logger
logger = logging.getLogger(__name__)

# Cache for the shared engine
_engine: Optional[ShopSenseEngine] = None


def get_engine() -> ShopSenseEngine:
    """Return the shared engine, building it from the environment if needed.

    Saved snapshots in the configured model directory are loaded on creation.
    """
    global _engine

    if _engine is not None:
        return _engine

    config = EngineConfig.from_env()
    engine = ShopSenseEngine(config)
    if check_snapshots_exist(config.model_dir):
        engine.load_models()
    else:
        logger.info(f"No saved snapshots in {config.model_dir}, starting untrained")

    _engine = engine
    return _engine


def set_engine(engine: Optional[ShopSenseEngine]) -> None:
    """Replace the shared engine; ``None`` forces a rebuild on next use."""
    global _engine

    previous, _engine = _engine, engine
    if previous is not None and previous is not engine:
        previous.shutdown()


@contextmanager
def track(operation: str) -> Iterator[None]:
    """Record latency of a successful call, or an error, for ``operation``."""
    start_time = time.time()
    try:
        yield
    except Exception:
        metrics_service.record_error(operation)
        raise
    metrics_service.record_inference(operation, (time.time() - start_time) * 1000)
