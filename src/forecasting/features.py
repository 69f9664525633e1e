"""Feature pipeline for the sales forecaster.

Turns days of history into fixed-shape feature vectors and standardizes
batches of them. Standardization never stores state: every call returns the
``ScalerParams`` it used, and the inverse transform must be given those same
params back. Each call stamps its params and its output with a fresh batch
id, so params from another batch are rejected even when the widths agree.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from src.exceptions import InvalidInputError, ScalingError
from src.schemas import TimeSeriesPoint

# Configure module logger
logger = logging.getLogger(__name__)

FEATURE_NAMES = ("day_of_week", "month", "is_holiday", "has_promotion", "sales")
SALES_COLUMN = FEATURE_NAMES.index("sales")
CONSTANT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class ScalerParams:
    """Per-column mean and std of one standardized batch.

    ``batch_id`` identifies the ``standardize`` call that produced the params.
    Hand-built params have none and are checked by width only.
    """

    mean: np.ndarray
    std: np.ndarray
    batch_id: Optional[str] = None

    def __post_init__(self) -> None:
        mean = np.array(self.mean, dtype=float, ndmin=1)
        std = np.array(self.std, dtype=float, ndmin=1)
        if mean.shape != std.shape or mean.ndim != 1:
            raise ScalingError(
                "Scaler mean and std must be 1-D vectors of equal length",
                details={"mean_shape": mean.shape, "std_shape": std.shape},
            )
        if np.any(std == 0):
            raise ScalingError("Scaler std contains zeros")
        mean.setflags(write=False)
        std.setflags(write=False)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "std", std)

    @property
    def width(self) -> int:
        return len(self.mean)

    def column(self, index: int) -> "ScalerParams":
        """Params restricted to a single column."""
        if not 0 <= index < self.width:
            raise ScalingError(
                f"Column {index} out of range for params of width {self.width}"
            )
        return ScalerParams(
            mean=self.mean[index : index + 1],
            std=self.std[index : index + 1],
            batch_id=self.batch_id,
        )


class StandardizedBatch(np.ndarray):
    """Standardized values tagged with the batch id of their params.

    Views and slices keep the tag; ``np.asarray`` drops it.
    """

    def __new__(cls, values, params: ScalerParams):
        obj = np.asarray(values, dtype=float).view(cls)
        obj.batch_id = params.batch_id
        return obj

    def __array_finalize__(self, obj) -> None:
        self.batch_id = getattr(obj, "batch_id", None)


def _batch_id(values) -> Optional[str]:
    return getattr(values, "batch_id", None)


def _as_matrix(vectors) -> np.ndarray:
    matrix = np.asarray(vectors, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise InvalidInputError(
            f"Expected a non-empty 2-D batch, got shape {matrix.shape}"
        )
    if not np.all(np.isfinite(matrix)):
        raise InvalidInputError("Batch contains non-finite values")
    return matrix


def _check_params(
    values: np.ndarray, params: Optional[ScalerParams], batch_id: Optional[str] = None
) -> None:
    if params is None:
        raise ScalingError("Scaler params are required")
    if not isinstance(params, ScalerParams):
        raise ScalingError(f"Expected ScalerParams, got {type(params).__name__}")
    width = values.shape[-1] if values.ndim else 1
    if width != params.width:
        raise ScalingError(
            f"Scaler params of width {params.width} do not match values of width {width}",
            details={"params_width": params.width, "values_width": width},
        )
    if batch_id is not None and params.batch_id is not None and batch_id != params.batch_id:
        raise ScalingError(
            "Scaler params come from a different standardization batch",
            details={"params_batch": params.batch_id, "values_batch": batch_id},
        )


def standardize(
    vectors, guard_constant: bool = True
) -> Tuple[np.ndarray, ScalerParams]:
    """Standardize a batch column-wise.

    Args:
        vectors: 2-D batch, one row per sample.
        guard_constant: If True, a zero-variance column gets std 1 and comes
            out as a zero-centred constant. If False it is an error.

    Returns:
        ``((X - mean) / std, params)``. The matrix is a ``StandardizedBatch``
        carrying the same batch id as the params.

    Raises:
        InvalidInputError: If the batch is empty, not 2-D or non-finite.
        ScalingError: If a column is constant and ``guard_constant`` is False.
    """
    matrix = _as_matrix(vectors)
    mean = matrix.mean(axis=0)
    std = matrix.std(axis=0)

    # Rounding leaves tiny nonzero std on constant columns.
    constant = std <= CONSTANT_TOLERANCE * np.maximum(1.0, np.abs(mean))
    if np.any(constant):
        if not guard_constant:
            raise ScalingError(
                "Cannot standardize constant columns",
                details={"columns": np.flatnonzero(constant).tolist()},
            )
        std = np.where(constant, 1.0, std)
        logger.debug(f"Guarded {int(constant.sum())} constant column(s) with std=1")

    params = ScalerParams(mean=mean, std=std, batch_id=uuid.uuid4().hex)
    return StandardizedBatch((matrix - params.mean) / params.std, params), params


def apply_standardization(vectors, params: ScalerParams) -> np.ndarray:
    """Standardize a new batch with params computed earlier.

    Raises:
        ScalingError: If params are missing or mismatched, or the batch is
            already standardized.
    """
    batch_id = _batch_id(vectors)
    matrix = np.atleast_2d(np.asarray(vectors, dtype=float))
    _check_params(matrix, params, batch_id)
    if batch_id is not None:
        raise ScalingError("Batch is already standardized")
    return StandardizedBatch((matrix - params.mean) / params.std, params)


def inverse_standardize(values, params: ScalerParams) -> np.ndarray:
    """Map standardized values back: ``values * std + mean``.

    Raises:
        ScalingError: If params are missing, their width does not match, or
            ``values`` were standardized by a different batch.
    """
    array = np.asarray(values, dtype=float)
    _check_params(array, params, _batch_id(values))
    return array * params.std + params.mean


def day_features(point: TimeSeriesPoint) -> np.ndarray:
    """Feature vector of one day, ordered as ``FEATURE_NAMES``."""
    return np.array(
        [
            point.day_of_week,
            point.month,
            1.0 if point.is_holiday else 0.0,
            1.0 if point.has_promotion else 0.0,
            point.sales,
        ],
        dtype=float,
    )


def window_matrix(points: Sequence[TimeSeriesPoint]) -> np.ndarray:
    """Stack the day features of a window into an ``(L, n_features)`` matrix."""
    if not points:
        raise InvalidInputError("Cannot build features from an empty window")
    return np.vstack([day_features(p) for p in points])


def standardize_window(
    points: Sequence[TimeSeriesPoint],
) -> Tuple[np.ndarray, ScalerParams]:
    """Standardize a window against its own statistics.

    Returns:
        The flattened standardized window (one regressor input row) and the
        params that produced it.
    """
    scaled, params = standardize(window_matrix(points))
    return scaled.ravel(), params
