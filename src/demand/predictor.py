"""Per-product demand prediction.

Maps a product, its demand history and external indicators (season,
weather, trend) onto a fixed feature vector, feeds it to a trained
regressor and explains the estimate with a ranked factor breakdown.
"""

import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from src.config import DEFAULT_ACCURACY_BASELINE, DEFAULT_MIN_DEMAND_HISTORY
from src.engine.deadline import Deadline
from src.engine.registry import DEMAND_MODEL, ModelRegistry, ModelSnapshot
from src.exceptions import (
    InsufficientDataError,
    InvalidInputError,
    ModelUnavailableError,
    ShopSenseError,
)
from src.forecasting.features import ScalerParams, apply_standardization, standardize
from src.forecasting.forecaster import calculate_confidence
from src.forecasting.regressors import RegressorFactory, regressor_factory
from src.schemas import DemandFeatures, DemandPrediction, Product, TimeSeriesPoint

# Configure module logger
logger = logging.getLogger(__name__)

EXTERNAL_FACTORS = ("season", "weather", "trend")
DEMAND_FEATURE_NAMES: Tuple[str, ...] = (
    "historical_avg_demand",
    "recent_avg_demand",
    "seasonality_index",
    "price",
    "on_promotion",
    "season_factor",
    "weather_factor",
    "trend_factor",
)
RECENT_DAYS = 7

# Heuristic importance per feature for the factor breakdown.
FACTOR_IMPORTANCE: Dict[str, float] = {
    "historical_avg_demand": 0.35,
    "recent_avg_demand": 0.25,
    "seasonality_index": 0.15,
    "price": -0.05,
    "on_promotion": 0.1,
    "season_factor": 0.05,
    "weather_factor": 0.03,
    "trend_factor": 0.07,
}


def seasonality_index(history: Sequence[TimeSeriesPoint]) -> float:
    """Mean demand in the month after the history ends, relative to overall mean."""
    if not history:
        return 1.0
    overall = float(np.mean([p.sales for p in history]))
    target_month = (history[-1].date + timedelta(days=1)).month
    in_month = [p.sales for p in history if p.month == target_month]
    if overall == 0 or not in_month:
        return 1.0
    return float(np.mean(in_month)) / overall


def parse_external_factors(
    external_factors: Optional[Mapping[str, Any]] = None,
) -> Tuple[List[float], List[str]]:
    """Values ordered as ``EXTERNAL_FACTORS`` and the warnings raised reading them.

    Missing or non-numeric factors become 0 and unknown ones are ignored.
    """
    external_factors = dict(external_factors or {})
    values: List[float] = []
    warnings: List[str] = []

    for name in EXTERNAL_FACTORS:
        raw = external_factors.pop(name, None)
        if raw is None:
            warnings.append(f"external factor '{name}' missing, defaulted to 0")
            values.append(0.0)
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError):
            warnings.append(f"external factor '{name}' is not numeric, defaulted to 0")
            value = 0.0
        values.append(value if np.isfinite(value) else 0.0)

    for name in sorted(external_factors):
        warnings.append(f"unknown external factor '{name}' ignored")

    return values, warnings


def _log_warnings(product: Product, warnings: Sequence[str]) -> None:
    for message in warnings:
        logger.warning(f"Product {product.product_id}: {message}")


def _build_features(
    product: Product,
    history: Sequence[TimeSeriesPoint],
    factor_values: Sequence[float],
    warnings: Sequence[str],
) -> DemandFeatures:
    sales = [p.sales for p in history]
    values = [
        float(np.mean(sales)) if sales else 0.0,
        float(np.mean(sales[-RECENT_DAYS:])) if sales else 0.0,
        seasonality_index(history),
        float(product.price),
        1.0 if product.on_promotion else 0.0,
        *factor_values,
    ]
    return DemandFeatures(
        values=np.asarray(values, dtype=float),
        names=DEMAND_FEATURE_NAMES,
        warnings=tuple(warnings),
    )


def extract_features(
    product: Product,
    history: Sequence[TimeSeriesPoint],
    external_factors: Optional[Mapping[str, Any]] = None,
) -> DemandFeatures:
    """Deterministic feature vector, ordered as ``DEMAND_FEATURE_NAMES``.

    Missing external factors become 0 and unknown ones are ignored; both are
    logged and recorded in ``DemandFeatures.warnings``.
    """
    factor_values, warnings = parse_external_factors(external_factors)
    _log_warnings(product, warnings)
    return _build_features(
        product, sorted(history, key=lambda p: p.date), factor_values, warnings
    )


def analyze_factors(
    features: DemandFeatures,
    importance: Mapping[str, float] = FACTOR_IMPORTANCE,
) -> List[Tuple[str, float]]:
    """Rank features by ``abs(value * importance)``, largest first.

    A readable breakdown of what drives the estimate, not a causal attribution.
    """
    contributions = [
        (name, float(value) * importance.get(name, 0.0))
        for name, value in zip(features.names, features.values)
    ]
    return sorted(contributions, key=lambda item: (-abs(item[1]), item[0]))


class DemandPredictor:
    """Trains and serves the demand regressor.

    Args:
        registry: Where the demand snapshot is published and read from.
        factory: Builds a fresh unfitted regressor for every training run.
        min_history: Shortest history prefix used as a training row.
        accuracy_baseline: Scale of the confidence score.
        auto_train: Train on first use when no snapshot is published.
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        factory: Optional[RegressorFactory] = None,
        min_history: int = DEFAULT_MIN_DEMAND_HISTORY,
        accuracy_baseline: float = DEFAULT_ACCURACY_BASELINE,
        auto_train: bool = True,
        model_name: str = DEMAND_MODEL,
    ):
        self.registry = registry if registry is not None else ModelRegistry()
        self.factory = factory if factory is not None else regressor_factory()
        self.min_history = min_history
        self.accuracy_baseline = accuracy_baseline
        self.auto_train = auto_train
        self.model_name = model_name

    def build_training_set(
        self,
        product: Product,
        history: Sequence[TimeSeriesPoint],
        external_factors: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """One row per history prefix: features of ``history[:t]`` -> ``history[t]``."""
        deadline = Deadline.coerce(deadline)
        points = sorted(history, key=lambda p: p.date)
        if len(points) <= self.min_history:
            raise InsufficientDataError(self.min_history, len(points), what="demand history")

        # Factors are the same for every prefix; read and warn about them once.
        factor_values, warnings = parse_external_factors(external_factors)
        _log_warnings(product, warnings)

        rows, targets = [], []
        for t in range(self.min_history, len(points)):
            deadline.check("train_demand")
            features = _build_features(product, points[:t], factor_values, warnings)
            rows.append(features.values)
            targets.append(points[t].sales)
        return np.vstack(rows), np.asarray(targets, dtype=float)

    def _check_snapshot(self, snapshot: ModelSnapshot) -> None:
        trained_names = tuple(snapshot.metadata.get("feature_names") or ())
        if trained_names != DEMAND_FEATURE_NAMES:
            raise ModelUnavailableError(
                self.model_name,
                f"snapshot v{snapshot.version} was trained on features {list(trained_names)}, "
                f"predictor uses {list(DEMAND_FEATURE_NAMES)}",
            )

    def train(
        self,
        product: Product,
        history: Sequence[TimeSeriesPoint],
        external_factors: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> ModelSnapshot:
        """Fit a fresh demand regressor and publish it with its scaler params.

        Raises:
            InsufficientDataError: If the history is too short.
            ModelUnavailableError: If the regressor fails to fit.
        """
        deadline = Deadline.coerce(deadline)
        start_time = time.time()

        X, y = self.build_training_set(product, history, external_factors, deadline)
        X_scaled, params = standardize(X)

        regressor = self.factory()
        try:
            regressor.fit(np.asarray(X_scaled), y)
        except ShopSenseError:
            raise
        except Exception as e:
            logger.error(f"Demand regressor failed to fit: {e}", exc_info=True)
            raise ModelUnavailableError(self.model_name, f"training failed: {e}") from e

        deadline.check("train_demand")
        snapshot = self.registry.publish(
            self.model_name,
            regressor,
            metadata={"scaler": params, "feature_names": DEMAND_FEATURE_NAMES},
            deadline=deadline,
        )
        logger.info(
            "Demand model trained",
            extra={
                "samples": len(y),
                "version": snapshot.version,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return snapshot

    def predict(
        self,
        features: DemandFeatures,
        history: Sequence[TimeSeriesPoint] = (),
        deadline: Optional[Deadline] = None,
        product: Optional[Product] = None,
        external_factors: Optional[Mapping[str, Any]] = None,
    ) -> DemandPrediction:
        """Estimate demand for one feature vector.

        Trains synchronously from ``history`` when no snapshot exists; callers
        with a latency budget should train out of band instead.

        Raises:
            InvalidInputError: If the feature vector has the wrong shape.
            InsufficientDataError: If training is needed and history is short.
            ModelUnavailableError: If no model exists and none can be trained,
                or the published snapshot does not fit the feature layout.
        """
        deadline = Deadline.coerce(deadline)
        if tuple(features.names) != DEMAND_FEATURE_NAMES:
            raise InvalidInputError(
                "Demand features do not match the expected layout",
                details={"expected": list(DEMAND_FEATURE_NAMES), "got": list(features.names)},
            )

        snapshot = self.registry.get(self.model_name)
        if snapshot is None:
            if not self.auto_train:
                raise ModelUnavailableError(self.model_name, "no trained model published")
            if product is None:
                raise ModelUnavailableError(
                    self.model_name, "no trained model and no product to train on"
                )
            logger.info("No demand model published, training on the request history")
            snapshot = self.train(product, history, external_factors, deadline)

        self._check_snapshot(snapshot)
        params: ScalerParams = snapshot.metadata.get("scaler")
        X = apply_standardization(features.values.reshape(1, -1), params)
        deadline.check("predict_demand")

        try:
            prediction = snapshot.regressor.predict(np.asarray(X))
        except Exception as e:
            logger.error(f"Demand regressor failed to predict: {e}", exc_info=True)
            raise ModelUnavailableError(self.model_name, f"prediction failed: {e}") from e
        raw = float(np.asarray(prediction, dtype=float).ravel()[0])
        predicted = int(round(max(0.0, raw))) if np.isfinite(raw) else 0

        return DemandPrediction(
            predicted_demand=predicted,
            confidence=calculate_confidence(
                [p.sales for p in history], self.accuracy_baseline
            ),
            factors=analyze_factors(features),
        )

    def predict_for(
        self,
        product: Product,
        history: Sequence[TimeSeriesPoint],
        external_factors: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> DemandPrediction:
        """Extract features and predict in one call."""
        features = extract_features(product, history, external_factors)
        return self.predict(
            features,
            history=history,
            deadline=deadline,
            product=product,
            external_factors=external_factors,
        )
