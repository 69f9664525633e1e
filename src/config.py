"""Engine configuration.

Defaults live as module-level constants so individual components can be
used without building a full config object. ``EngineConfig`` gathers them
for the service layer and can be overridden from ``SHOPSENSE_*``
environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional, Tuple

from src.exceptions import InvalidInputError

# Configure module logger
logger = logging.getLogger(__name__)

# Forecasting
DEFAULT_WINDOW_LENGTH = 30
DEFAULT_ACCURACY_BASELINE = 85.0
DEFAULT_HORIZON_DAYS = 30
DEFAULT_REGRESSOR = "ridge"
DEFAULT_HOLIDAYS: Tuple[str, ...] = (
    "2024-01-01",
    "2024-12-25",
    "2025-01-01",
    "2025-12-25",
    "2026-01-01",
    "2026-12-25",
)

# Recommendations
DEFAULT_COLLAB_WEIGHT = 0.6
DEFAULT_CONTENT_WEIGHT = 0.4
DEFAULT_TOP_N = 10
DEFAULT_CONTENT_TOP_K = 10
DEFAULT_PRICE_EDGES: Tuple[float, ...] = (10.0, 25.0, 50.0, 100.0, 250.0)
DEFAULT_RANK = 10
DEFAULT_ALS_ITERATIONS = 15
DEFAULT_REGULARIZATION = 0.1
DEFAULT_RANDOM_STATE = 42

# Demand
DEFAULT_MIN_DEMAND_HISTORY = 7

# Runtime
DEFAULT_MODEL_DIR = "models"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TRAINING_WORKERS = 1
DEFAULT_MAX_RETAINED_JOBS = 100

ENV_PREFIX = "SHOPSENSE_"


def _parse_tuple(raw: str, cast) -> tuple:
    return tuple(cast(part.strip()) for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class EngineConfig:
    """All tunables of the engine in one immutable object."""

    window_length: int = DEFAULT_WINDOW_LENGTH
    accuracy_baseline: float = DEFAULT_ACCURACY_BASELINE
    holidays: Tuple[str, ...] = DEFAULT_HOLIDAYS
    regressor: str = DEFAULT_REGRESSOR
    auto_train: bool = True
    collab_weight: float = DEFAULT_COLLAB_WEIGHT
    content_weight: float = DEFAULT_CONTENT_WEIGHT
    top_n: int = DEFAULT_TOP_N
    content_top_k: int = DEFAULT_CONTENT_TOP_K
    price_edges: Tuple[float, ...] = DEFAULT_PRICE_EDGES
    recency_half_life_days: Optional[float] = None
    rank: int = DEFAULT_RANK
    als_iterations: int = DEFAULT_ALS_ITERATIONS
    regularization: float = DEFAULT_REGULARIZATION
    random_state: int = DEFAULT_RANDOM_STATE
    min_demand_history: int = DEFAULT_MIN_DEMAND_HISTORY
    model_dir: str = DEFAULT_MODEL_DIR
    log_level: str = DEFAULT_LOG_LEVEL
    training_workers: int = DEFAULT_TRAINING_WORKERS
    max_retained_jobs: int = DEFAULT_MAX_RETAINED_JOBS

    def __post_init__(self) -> None:
        if self.window_length < 1:
            raise InvalidInputError("window_length must be positive")
        if self.collab_weight < 0 or self.content_weight < 0:
            raise InvalidInputError("Fusion weights must be non-negative")
        if self.top_n < 0 or self.content_top_k < 0:
            raise InvalidInputError("top_n and content_top_k must be non-negative")
        if self.rank < 1:
            raise InvalidInputError("rank must be at least 1")
        if list(self.price_edges) != sorted(self.price_edges):
            raise InvalidInputError("price_edges must be sorted ascending")
        if self.max_retained_jobs < 0:
            raise InvalidInputError("max_retained_jobs must be non-negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from ``SHOPSENSE_<FIELD>`` environment variables.

        Args:
            environ: Mapping to read from (default: ``os.environ``).

        Returns:
            EngineConfig with every variable that is set applied on top of
            the defaults.

        Raises:
            InvalidInputError: If a variable cannot be parsed.
        """
        environ = os.environ if environ is None else environ
        overrides = {}

        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            if key not in environ:
                continue
            raw = environ[key]
            try:
                if f.name == "holidays":
                    value = _parse_tuple(raw, str)
                elif f.name == "price_edges":
                    value = _parse_tuple(raw, float)
                elif f.name == "auto_train":
                    value = raw.strip().lower() in ("1", "true", "yes", "on")
                elif f.name == "recency_half_life_days":
                    value = float(raw) if raw.strip() else None
                elif f.name in ("regressor", "model_dir", "log_level"):
                    value = raw
                elif f.name in (
                    "accuracy_baseline",
                    "collab_weight",
                    "content_weight",
                    "regularization",
                ):
                    value = float(raw)
                else:
                    value = int(raw)
            except ValueError as e:
                raise InvalidInputError(
                    f"Invalid value for {key}: {raw!r}",
                    details={"variable": key, "error": str(e)},
                ) from e
            overrides[f.name] = value
            logger.debug(f"Config override from environment: {key}={raw}")

        return cls(**overrides)
