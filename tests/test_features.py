"""Tests for the forecasting feature pipeline and standardization."""

from datetime import date, timedelta

import numpy as np
import pytest

from src.exceptions import InvalidInputError, ScalingError
from src.forecasting.features import (
    FEATURE_NAMES,
    SALES_COLUMN,
    ScalerParams,
    StandardizedBatch,
    apply_standardization,
    day_features,
    inverse_standardize,
    standardize,
    standardize_window,
    window_matrix,
)
from src.schemas import TimeSeriesPoint


@pytest.fixture
def window():
    """Seven days of history starting on a Monday."""
    start = date(2024, 3, 4)
    return [
        TimeSeriesPoint(date=start + timedelta(days=i), sales=10 + i, has_promotion=i == 2)
        for i in range(7)
    ]


# ===== Standardization Tests =====


def test_standardize_round_trip():
    """Test that inverse_standardize undoes standardize."""
    rng = np.random.default_rng(0)
    batch = rng.normal(loc=50, scale=12, size=(20, 4))

    scaled, params = standardize(batch)
    restored = inverse_standardize(scaled, params)

    np.testing.assert_allclose(restored, batch, rtol=1e-9, atol=1e-9)


def test_standardized_columns_have_zero_mean_unit_std():
    """Test column statistics after standardization."""
    batch = np.array([[1.0, 10.0], [2.0, 20.0], [3.0, 60.0]])

    scaled, _ = standardize(batch)

    np.testing.assert_allclose(scaled.mean(axis=0), [0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(scaled.std(axis=0), [1.0, 1.0], atol=1e-12)


def test_constant_column_is_guarded():
    """Test that a zero-variance column gets std 1 and no NaNs."""
    batch = np.array([[5.0, 1.0], [5.0, 2.0], [5.0, 3.0]])

    scaled, params = standardize(batch)

    assert params.std[0] == 1.0
    assert np.all(np.isfinite(scaled))
    np.testing.assert_allclose(scaled[:, 0], 0.0)


def test_constant_column_without_guard_raises():
    """Test that constant columns are an error when guarding is off."""
    batch = np.array([[5.0, 1.0], [5.0, 2.0]])

    with pytest.raises(ScalingError):
        standardize(batch, guard_constant=False)


def test_standardize_rejects_empty_batch():
    """Test that an empty batch is invalid input."""
    with pytest.raises(InvalidInputError):
        standardize(np.zeros((0, 3)))


def test_inverse_standardize_requires_params():
    """Test that missing params raise ScalingError."""
    with pytest.raises(ScalingError):
        inverse_standardize([1.0, 2.0], None)


def test_inverse_standardize_width_mismatch():
    """Test that params of the wrong width raise ScalingError."""
    _, params = standardize(np.array([[1.0, 2.0], [3.0, 5.0]]))

    with pytest.raises(ScalingError):
        inverse_standardize(np.zeros((2, 3)), params)


def test_inverse_standardize_rejects_params_from_another_batch():
    """Test that same-width params from a different batch are refused."""
    scaled, _ = standardize([[1.0, 10.0], [3.0, 30.0]])
    _, other_params = standardize([[100.0, 5.0], [300.0, 7.0]])

    with pytest.raises(ScalingError):
        inverse_standardize(scaled, other_params)


def test_column_params_keep_their_batch(window):
    """Test that single-column params still belong to their batch."""
    row, params = standardize_window(window)
    _, other = standardize_window(window)
    sales = StandardizedBatch(row[SALES_COLUMN :: len(FEATURE_NAMES)].reshape(-1, 1), params)

    np.testing.assert_allclose(
        inverse_standardize(sales, params.column(SALES_COLUMN)),
        [[p.sales] for p in window],
    )
    with pytest.raises(ScalingError):
        inverse_standardize(sales, other.column(SALES_COLUMN))


def test_apply_standardization_tags_output():
    """Test that re-applied params tag their output and refuse other batches."""
    batch = np.array([[1.0, 4.0], [2.0, 8.0], [4.0, 3.0]])
    _, params = standardize(batch)
    _, other_params = standardize(batch * 2)

    scaled = apply_standardization(batch, params)

    np.testing.assert_allclose(inverse_standardize(scaled, params), batch)
    with pytest.raises(ScalingError):
        inverse_standardize(scaled, other_params)
    with pytest.raises(ScalingError):
        apply_standardization(scaled, params)


def test_hand_built_params_checked_by_width_only():
    """Test that untagged values and params still round-trip."""
    params = ScalerParams(mean=[10.0], std=[2.0])

    np.testing.assert_allclose(inverse_standardize([[1.0], [-1.0]], params), [[12.0], [8.0]])


def test_apply_standardization_matches_fit():
    """Test that re-applying params reproduces the fitted output."""
    batch = np.array([[1.0, 4.0], [2.0, 8.0], [4.0, 3.0]])
    scaled, params = standardize(batch)

    np.testing.assert_allclose(apply_standardization(batch, params), scaled)


def test_scaler_params_reject_zero_std():
    """Test that params with a zero std cannot be built."""
    with pytest.raises(ScalingError):
        ScalerParams(mean=[0.0, 1.0], std=[1.0, 0.0])


def test_scaler_params_column():
    """Test single-column params extraction."""
    params = ScalerParams(mean=[1.0, 2.0, 3.0], std=[4.0, 5.0, 6.0])

    column = params.column(1)

    assert column.width == 1
    assert column.mean[0] == 2.0
    assert column.std[0] == 5.0
    with pytest.raises(ScalingError):
        params.column(3)


# ===== Window Feature Tests =====


def test_day_features_order(window):
    """Test that day features follow FEATURE_NAMES."""
    features = day_features(window[2])

    assert len(features) == len(FEATURE_NAMES)
    assert features[0] == 2  # Wednesday
    assert features[1] == 3
    assert features[2] == 0.0
    assert features[3] == 1.0
    assert features[SALES_COLUMN] == 12.0


def test_window_matrix_shape(window):
    """Test window matrix dimensions."""
    assert window_matrix(window).shape == (7, len(FEATURE_NAMES))


def test_window_matrix_rejects_empty():
    """Test that an empty window cannot be featurized."""
    with pytest.raises(InvalidInputError):
        window_matrix([])


def test_standardize_window_flattens(window):
    """Test that a standardized window is one flat regressor row."""
    row, params = standardize_window(window)

    assert row.shape == (7 * len(FEATURE_NAMES),)
    assert params.width == len(FEATURE_NAMES)
    assert params.mean[SALES_COLUMN] == pytest.approx(13.0)
