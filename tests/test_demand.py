"""Tests for the demand predictor."""

from datetime import date, timedelta

import numpy as np
import pytest
from sklearn.dummy import DummyRegressor

from src.engine.registry import DEMAND_MODEL, ModelRegistry
from src.exceptions import InsufficientDataError, InvalidInputError, ModelUnavailableError
from src.demand.predictor import (
    DEMAND_FEATURE_NAMES,
    EXTERNAL_FACTORS,
    DemandPredictor,
    analyze_factors,
    extract_features,
    seasonality_index,
)
from src.forecasting.forecaster import calculate_confidence
from src.forecasting.features import ScalerParams
from src.schemas import DemandFeatures, Product, TimeSeriesPoint


def make_history(sales, start=date(2024, 3, 1)):
    return [
        TimeSeriesPoint(date=start + timedelta(days=i), sales=s) for i, s in enumerate(sales)
    ]


@pytest.fixture
def product():
    return Product(product_id="sku-1", name="Kettle", category="home", price=20.0, on_promotion=True)


@pytest.fixture
def history():
    """Ten days of rising demand."""
    return make_history(range(1, 11))


@pytest.fixture
def predictor():
    """Predictor with a deterministic mean-label regressor."""
    return DemandPredictor(
        registry=ModelRegistry(), factory=lambda: DummyRegressor(strategy="mean")
    )


# ===== Feature Extraction Tests =====


def test_feature_vector_layout(product, history):
    """Test feature values in their fixed order."""
    features = extract_features(product, history, {"season": 1.2, "weather": 0.5, "trend": 1.1})

    assert features.names == DEMAND_FEATURE_NAMES
    assert features.as_dict() == {
        "historical_avg_demand": 5.5,
        "recent_avg_demand": 7.0,
        "seasonality_index": 1.0,
        "price": 20.0,
        "on_promotion": 1.0,
        "season_factor": 1.2,
        "weather_factor": 0.5,
        "trend_factor": 1.1,
    }
    assert features.warnings == ()


def test_extraction_is_deterministic(product, history):
    """Test that identical inputs give identical vectors."""
    first = extract_features(product, history, {"season": 1.0})
    second = extract_features(product, list(reversed(history)), {"season": 1.0})

    np.testing.assert_array_equal(first.values, second.values)


def test_missing_and_unknown_factors_warn(product, history, caplog):
    """Test that missing factors default to 0 and unknown ones are ignored."""
    features = extract_features(product, history, {"season": 1.0, "humidity": 0.3})

    assert features.as_dict()["weather_factor"] == 0.0
    assert features.as_dict()["trend_factor"] == 0.0
    assert len(features.warnings) == 3
    assert any("humidity" in w for w in features.warnings)
    assert any(r.levelname == "WARNING" for r in caplog.records)


def test_non_numeric_factor_defaults_to_zero(product, history):
    """Test that a non-numeric factor is treated as missing."""
    features = extract_features(product, history, {"season": "high", "weather": 1, "trend": 1})

    assert features.as_dict()["season_factor"] == 0.0
    assert len(features.warnings) == 1


def test_features_are_read_only(product, history):
    """Test that the feature vector cannot be mutated."""
    features = extract_features(product, history)

    with pytest.raises(ValueError):
        features.values[0] = 99.0


def test_seasonality_index():
    """Test next-month demand relative to the overall mean."""
    # Feb: 10/day, Mar: 30/day; history ends Feb 29 so the next month is March
    history = make_history([30] * 31, start=date(2023, 3, 1)) + make_history(
        [10] * 29, start=date(2024, 2, 1)
    )

    overall = (30 * 31 + 10 * 29) / 60
    assert seasonality_index(history) == pytest.approx(30 / overall)
    assert seasonality_index([]) == 1.0


def test_analyze_factors_ranking(product, history):
    """Test factors sorted by absolute contribution."""
    features = extract_features(product, history, {"season": 1, "weather": 1, "trend": 1})

    factors = analyze_factors(features)
    magnitudes = [abs(c) for _, c in factors]

    assert len(factors) == len(DEMAND_FEATURE_NAMES)
    assert magnitudes == sorted(magnitudes, reverse=True)
    assert dict(factors)["price"] < 0


# ===== Training and Prediction Tests =====


def test_predict_trains_on_first_use(predictor, product, history):
    """Test auto-training and a mean-label prediction."""
    prediction = predictor.predict_for(product, history, {"season": 1, "weather": 1, "trend": 1})

    # Targets are days 8, 9 and 10 of history
    assert prediction.predicted_demand == 9
    assert prediction.confidence == calculate_confidence(list(range(1, 11)))
    assert 0 <= prediction.confidence <= 100
    assert predictor.registry.get(DEMAND_MODEL).version == 1


def test_snapshot_keeps_scaler_params(predictor, product, history):
    """Test that training stores the params used to standardize features."""
    snapshot = predictor.train(product, history)

    params = snapshot.metadata["scaler"]
    assert isinstance(params, ScalerParams)
    assert params.width == len(DEMAND_FEATURE_NAMES)


def test_short_history_raises(predictor, product):
    """Test InsufficientDataError for histories of min_history points or fewer."""
    with pytest.raises(InsufficientDataError):
        predictor.train(product, make_history([5] * 7))


def test_wrong_feature_layout_rejected(predictor, product, history):
    """Test that a vector with other feature names is invalid input."""
    features = DemandFeatures(values=np.array([1.0, 2.0]), names=("a", "b"))

    with pytest.raises(InvalidInputError):
        predictor.predict(features, history, product=product)


def test_no_model_without_auto_train(product, history):
    """Test ModelUnavailableError when auto-training is off."""
    predictor = DemandPredictor(registry=ModelRegistry(), auto_train=False)

    with pytest.raises(ModelUnavailableError):
        predictor.predict_for(product, history)


def test_prediction_is_non_negative(product, history):
    """Test that negative regressor output is clamped to zero."""

    class Negative(DummyRegressor):
        def predict(self, X):
            return np.full(len(X), -5.0)

    predictor = DemandPredictor(
        registry=ModelRegistry(), factory=lambda: Negative(strategy="mean")
    )

    assert predictor.predict_for(product, history).predicted_demand == 0


def test_training_warns_once_per_missing_factor(predictor, product, history, caplog):
    """Test that missing factors are reported once per run, not once per row."""
    caplog.set_level("WARNING", logger="src.demand.predictor")

    predictor.train(product, history)

    warnings = [r for r in caplog.records if r.levelname == "WARNING"]
    assert len(warnings) == len(EXTERNAL_FACTORS)


def test_snapshot_with_other_feature_layout_rejected(product, history):
    """Test ModelUnavailableError for a snapshot trained on other features."""
    registry = ModelRegistry()
    old = DemandPredictor(registry=registry, factory=lambda: DummyRegressor(strategy="mean"))
    snapshot = old.train(product, history)
    registry.publish(
        DEMAND_MODEL,
        snapshot.regressor,
        metadata={"scaler": snapshot.metadata["scaler"], "feature_names": ("price",)},
    )
    predictor = DemandPredictor(registry=registry, auto_train=False)

    with pytest.raises(ModelUnavailableError) as exc_info:
        predictor.predict_for(product, history)
    assert "v2" in exc_info.value.details["reason"]


def test_regressor_failure_is_model_unavailable(product, history):
    """Test that a failing regressor surfaces as ModelUnavailableError."""

    class Broken(DummyRegressor):
        def predict(self, X):
            raise ValueError("X has 3 features, but Broken is expecting 8")

    predictor = DemandPredictor(
        registry=ModelRegistry(), factory=lambda: Broken(strategy="mean")
    )

    with pytest.raises(ModelUnavailableError):
        predictor.predict_for(product, history)
