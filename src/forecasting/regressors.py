"""Trainable regressor capability.

The forecaster and the demand predictor only need ``fit(X, y)`` and
``predict(X)``, so any scikit-learn estimator (or a test stub with the same
two methods) can be plugged in.
"""

from typing import Callable, Dict, Protocol, runtime_checkable

import numpy as np
from sklearn.dummy import DummyRegressor
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.linear_model import LinearRegression, Ridge

from src.config import DEFAULT_RANDOM_STATE, DEFAULT_REGRESSOR
from src.exceptions import InvalidInputError


@runtime_checkable
class Regressor(Protocol):
    def fit(self, X: np.ndarray, y: np.ndarray) -> "Regressor":
        ...

    def predict(self, X: np.ndarray) -> np.ndarray:
        ...


RegressorFactory = Callable[[], Regressor]

REGRESSORS: Dict[str, RegressorFactory] = {
    "ridge": lambda: Ridge(alpha=1.0),
    "linear": LinearRegression,
    "gbr": lambda: GradientBoostingRegressor(random_state=DEFAULT_RANDOM_STATE),
    "mean": lambda: DummyRegressor(strategy="mean"),
}


def default_regressor() -> Regressor:
    """Ridge regression, the linear baseline."""
    return REGRESSORS["ridge"]()


def build_regressor(name: str = DEFAULT_REGRESSOR) -> Regressor:
    """Create a fresh, unfitted regressor by name.

    Raises:
        InvalidInputError: If the name is unknown.
    """
    try:
        factory = REGRESSORS[name]
    except KeyError as e:
        raise InvalidInputError(
            f"Unknown regressor '{name}'",
            details={"available": sorted(REGRESSORS)},
        ) from e
    return factory()


def regressor_factory(name: str = DEFAULT_REGRESSOR) -> RegressorFactory:
    """Factory bound to a name; validated eagerly."""
    build_regressor(name)
    return lambda: build_regressor(name)
