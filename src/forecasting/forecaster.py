"""Autoregressive multi-day sales forecaster.

Trains a pluggable regressor on sliding windows of daily features and rolls
it forward one day at a time, feeding each prediction back in as the next
day's sales.
"""

import logging
import time
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from src.config import DEFAULT_ACCURACY_BASELINE, DEFAULT_WINDOW_LENGTH
from src.engine.deadline import Deadline
from src.engine.registry import SALES_MODEL, ModelRegistry, ModelSnapshot
from src.exceptions import (
    InsufficientDataError,
    InvalidInputError,
    ModelUnavailableError,
    ShopSenseError,
)
from src.forecasting.calendar import HolidayCalendar
from src.forecasting.features import (
    SALES_COLUMN,
    StandardizedBatch,
    inverse_standardize,
    standardize_window,
)
from src.forecasting.regressors import RegressorFactory, regressor_factory
from src.schemas import ForecastResult, TimeSeriesPoint

# Configure module logger
logger = logging.getLogger(__name__)


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population std over mean; 0 for an empty or zero-mean series."""
    if len(values) == 0:
        return 0.0
    array = np.asarray(values, dtype=float)
    mean = array.mean()
    if mean == 0:
        return 0.0
    return float(array.std() / mean)


def calculate_confidence(
    sales: Sequence[float],
    accuracy_baseline: float = DEFAULT_ACCURACY_BASELINE,
) -> int:
    """Confidence score in [0, 100] from the variability of recent sales.

    ``clamp(round((1 - cv) * accuracy_baseline), 0, 100)``
    """
    raw = (1.0 - coefficient_of_variation(sales)) * accuracy_baseline
    return int(min(100, max(0, round(raw))))


class SequenceForecaster:
    """Windowed trainer and autoregressive forecaster.

    Args:
        registry: Where trained snapshots are published and read from.
        factory: Builds a fresh unfitted regressor for every training run.
        window_length: Days of history per input window.
        calendar: Holiday lookup for synthesized days.
        accuracy_baseline: Scale of the confidence score.
        auto_train: Train on first use when no snapshot is published.
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        factory: Optional[RegressorFactory] = None,
        window_length: int = DEFAULT_WINDOW_LENGTH,
        calendar: Optional[HolidayCalendar] = None,
        accuracy_baseline: float = DEFAULT_ACCURACY_BASELINE,
        auto_train: bool = True,
        model_name: str = SALES_MODEL,
    ):
        if window_length < 1:
            raise InvalidInputError("window_length must be positive")
        self.registry = registry if registry is not None else ModelRegistry()
        self.factory = factory if factory is not None else regressor_factory()
        self.window_length = window_length
        self.calendar = calendar if calendar is not None else HolidayCalendar()
        self.accuracy_baseline = accuracy_baseline
        self.auto_train = auto_train
        self.model_name = model_name

    def _require_history(self, history: Sequence[TimeSeriesPoint]) -> List[TimeSeriesPoint]:
        points = sorted(history, key=lambda p: p.date)
        if len(points) <= self.window_length:
            raise InsufficientDataError(self.window_length, len(points))
        return points

    def build_training_set(
        self,
        history: Sequence[TimeSeriesPoint],
        deadline: Optional[Deadline] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Supervised pairs: standardized window -> standardized next-day sales.

        Each window is scaled by its own statistics, and its target by the
        sales column of those statistics, matching how forecasting scales
        the rolling window.
        """
        deadline = Deadline.coerce(deadline)
        points = self._require_history(history)
        L = self.window_length

        rows, targets = [], []
        for i in range(L, len(points)):
            deadline.check("train")
            row, params = standardize_window(points[i - L : i])
            sales_params = params.column(SALES_COLUMN)
            target = (points[i].sales - sales_params.mean[0]) / sales_params.std[0]
            rows.append(np.asarray(row))
            targets.append(target)

        return np.vstack(rows), np.asarray(targets, dtype=float)

    def train(
        self,
        history: Sequence[TimeSeriesPoint],
        deadline: Optional[Deadline] = None,
    ) -> ModelSnapshot:
        """Fit a fresh regressor on ``history`` and publish it.

        Raises:
            InsufficientDataError: If ``len(history) <= window_length``.
            ModelUnavailableError: If the regressor fails to fit.
            EngineTimeoutError: If the deadline passes before publication.
            CancelledError: If the run is cancelled before publication.
        """
        deadline = Deadline.coerce(deadline)
        start_time = time.time()

        X, y = self.build_training_set(history, deadline)
        logger.info(
            "Training sales forecaster",
            extra={"samples": len(y), "window_length": self.window_length},
        )

        regressor = self.factory()
        try:
            regressor.fit(X, y)
        except ShopSenseError:
            raise
        except Exception as e:
            logger.error(f"Sales regressor failed to fit: {e}", exc_info=True)
            raise ModelUnavailableError(self.model_name, f"training failed: {e}") from e

        deadline.check("train")
        snapshot = self.registry.publish(
            self.model_name,
            regressor,
            metadata={"window_length": self.window_length, "samples": len(y)},
            deadline=deadline,
        )

        logger.info(
            "Sales forecaster trained",
            extra={
                "version": snapshot.version,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return snapshot

    def current_snapshot(
        self,
        history: Sequence[TimeSeriesPoint],
        deadline: Optional[Deadline] = None,
    ) -> ModelSnapshot:
        """The published snapshot, or a freshly trained one when allowed.

        Raises:
            ModelUnavailableError: If the published snapshot was trained with a
                different window length, or nothing is published and
                ``auto_train`` is off.
        """
        snapshot = self.registry.get(self.model_name)
        if snapshot is not None:
            trained_length = snapshot.metadata.get("window_length")
            if trained_length != self.window_length:
                raise ModelUnavailableError(
                    self.model_name,
                    f"snapshot v{snapshot.version} was trained with window_length "
                    f"{trained_length}, forecaster uses {self.window_length}",
                )
            return snapshot
        if not self.auto_train:
            raise ModelUnavailableError(self.model_name, "no trained model published")
        logger.info("No sales model published, training on the request history")
        return self.train(history, deadline)

    def forecast(
        self,
        history: Sequence[TimeSeriesPoint],
        horizon_days: int,
        deadline: Optional[Deadline] = None,
    ) -> List[ForecastResult]:
        """Forecast ``horizon_days`` consecutive days after the history.

        Raises:
            InsufficientDataError: If ``len(history) <= window_length``.
            InvalidInputError: If ``horizon_days`` is not positive.
            ModelUnavailableError: If no model exists and none can be trained.
            EngineTimeoutError: If the deadline passes.
        """
        deadline = Deadline.coerce(deadline)
        if horizon_days < 1:
            raise InvalidInputError(
                f"horizon_days must be at least 1, got {horizon_days}"
            )
        points = self._require_history(history)
        snapshot = self.current_snapshot(points, deadline)
        regressor = snapshot.regressor

        window = list(points[-self.window_length :])
        results: List[ForecastResult] = []

        for _ in range(horizon_days):
            deadline.check("forecast")

            row, params = standardize_window(window)
            try:
                X = np.asarray(row).reshape(1, -1)
                prediction = np.asarray(regressor.predict(X), dtype=float)
            except Exception as e:
                logger.error(f"Sales regressor failed to predict: {e}", exc_info=True)
                raise ModelUnavailableError(
                    self.model_name, f"prediction failed: {e}"
                ) from e
            # The prediction is in the scale of this window's sales column.
            scaled = StandardizedBatch(prediction.ravel()[:1], params)
            sales = float(inverse_standardize(scaled, params.column(SALES_COLUMN))[0])
            predicted_sales = max(0, int(round(sales))) if np.isfinite(sales) else 0

            # The rounded value is fed back, so the window matches the output.
            next_date = window[-1].date + timedelta(days=1)
            next_point = TimeSeriesPoint(
                date=next_date,
                sales=predicted_sales,
                is_holiday=self.calendar.is_holiday(next_date),
                has_promotion=False,
            )
            window = window[1:] + [next_point]

            confidence = calculate_confidence(
                [p.sales for p in window], self.accuracy_baseline
            )
            results.append(
                ForecastResult(
                    date=next_date,
                    predicted_sales=predicted_sales,
                    confidence=confidence,
                )
            )

        logger.info(
            "Forecast generated",
            extra={
                "horizon_days": horizon_days,
                "model_version": snapshot.version,
            },
        )
        return results
