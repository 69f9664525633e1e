"""Tests for error handling in the ShopSense API.

Engine errors must reach clients as ``{"error", "message", "details"}``
bodies with the status code of the error type.
"""

import logging
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sklearn.dummy import DummyRegressor

from src.api.dependencies import get_engine
from src.api.main import app
from src.config import EngineConfig
from src.engine.service import ShopSenseEngine
from src.exceptions import (
    EngineTimeoutError,
    InsufficientDataError,
    InvalidInputError,
    ModelUnavailableError,
    ScalingError,
    ShopSenseError,
)

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)


def history(days):
    start = date(2024, 1, 10)
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "sales": 50 + i % 3}
        for i in range(days)
    ]


@pytest.fixture
def client(tmp_path):
    """Client whose engine never auto-trains."""
    engine = ShopSenseEngine(
        EngineConfig(model_dir=str(tmp_path), auto_train=False),
        factory=lambda: DummyRegressor(strategy="mean"),
    )
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.shutdown()


# ===== Exception Type Tests =====


@pytest.mark.parametrize(
    "error,status_code",
    [
        (InsufficientDataError(30, 3), 422),
        (ScalingError("bad params"), 500),
        (ModelUnavailableError("sales_forecast", "not trained"), 503),
        (EngineTimeoutError("forecast", 0.5), 504),
        (InvalidInputError("bad input"), 400),
    ],
)
def test_error_status_codes(error, status_code):
    """Test the status code carried by each error type."""
    assert isinstance(error, ShopSenseError)
    assert error.status_code == status_code
    assert str(error) == error.message


def test_timeout_error_is_builtin_timeout():
    """Test that callers can catch engine timeouts as TimeoutError."""
    with pytest.raises(TimeoutError):
        raise EngineTimeoutError("recommend", 1.0)


# ===== API Error Tests =====


def test_insufficient_history_returns_422(client):
    """Test that a short history maps to 422 with details."""
    response = client.post("/forecast", json={"history": history(10), "horizon_days": 3})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "InsufficientDataError"
    assert data["details"] == {"required": 30, "actual": 10}


def test_untrained_model_returns_503(client):
    """Test that a missing model maps to 503 when auto-training is off."""
    response = client.post("/forecast", json={"history": history(40), "horizon_days": 3})

    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "ModelUnavailableError"
    assert "sales_forecast" in data["message"]


def test_negative_sales_rejected(client):
    """Test that request validation errors map to 400."""
    records = history(40)
    records[5]["sales"] = -1

    response = client.post("/forecast", json={"history": records, "horizon_days": 3})

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "InvalidInputError"
    assert data["details"]["errors"]


def test_invalid_horizon_rejected(client):
    """Test that a zero horizon is rejected before reaching the engine."""
    response = client.post("/forecast", json={"history": history(40), "horizon_days": 0})

    assert response.status_code == 400


def test_timeout_returns_504(client):
    """Test that an exceeded deadline maps to 504."""
    response = client.post(
        "/recommend",
        json={
            "customer_id": "A",
            "products": [{"product_id": 1}],
            "transactions": [{"customer_id": "A", "product_id": 1}],
            "timeout": 1e-9,
        },
    )

    assert response.status_code == 504
    assert response.json()["error"] == "EngineTimeoutError"


def test_reload_without_snapshots_returns_404(client):
    """Test reloading from an empty model directory."""
    response = client.post("/models/reload")

    assert response.status_code == 404
    assert "No model snapshots" in response.json()["message"]
