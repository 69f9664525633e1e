"""Tests for the snapshot registry, background training and the engine façade."""

import threading
import time
from concurrent.futures import CancelledError
from datetime import date, timedelta

import pytest
from sklearn.dummy import DummyRegressor

from src.config import EngineConfig
from src.engine.artifacts import check_snapshots_exist, load_snapshots, save_snapshots
from src.engine.deadline import Deadline
from src.engine.registry import DEMAND_MODEL, SALES_MODEL, ModelRegistry
from src.engine.service import ShopSenseEngine
from src.engine.training import TrainingJob, TrainingScheduler
from src.exceptions import EngineTimeoutError, InsufficientDataError, ModelUnavailableError
from src.schemas import ForecastResult, TimeSeriesPoint


def history_records(days=45, level=100):
    start = date(2024, 4, 1)
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "sales": level + (i % 7)}
        for i in range(days)
    ]


@pytest.fixture
def engine():
    """Engine with deterministic mean-label regressors."""
    engine = ShopSenseEngine(
        EngineConfig(model_dir="unused"),
        factory=lambda: DummyRegressor(strategy="mean"),
    )
    yield engine
    engine.shutdown()


# ===== Registry Tests =====


def test_publish_increments_versions():
    """Test versioned publication per model name."""
    registry = ModelRegistry()

    registry.publish(SALES_MODEL, "r1")
    registry.publish(SALES_MODEL, "r2")
    registry.publish(DEMAND_MODEL, "r3")

    assert registry.versions() == {SALES_MODEL: 2, DEMAND_MODEL: 1}
    assert registry.get(SALES_MODEL).regressor == "r2"


def test_readers_keep_their_snapshot():
    """Test that a held snapshot is unaffected by later publications."""
    registry = ModelRegistry()
    held = registry.publish(SALES_MODEL, "old", metadata={"samples": 1})

    registry.publish(SALES_MODEL, "new", metadata={"samples": 2})

    assert held.regressor == "old"
    assert held.metadata["samples"] == 1
    with pytest.raises(TypeError):
        held.metadata["samples"] = 3


def test_cancelled_run_is_not_published():
    """Test that publish refuses a cancelled deadline."""
    registry = ModelRegistry()
    event = threading.Event()
    event.set()

    with pytest.raises(CancelledError):
        registry.publish(SALES_MODEL, "r", deadline=Deadline(cancel_event=event))
    assert registry.get(SALES_MODEL) is None


# ===== Deadline Tests =====


def test_deadline_without_timeout_never_expires():
    """Test the unbounded deadline."""
    deadline = Deadline()

    deadline.check("anything")
    assert deadline.remaining() is None
    assert not deadline.expired


def test_deadline_expires():
    """Test timeout detection."""
    deadline = Deadline(timeout=0.01)
    time.sleep(0.02)

    with pytest.raises(EngineTimeoutError) as exc_info:
        deadline.check("forecast")
    assert exc_info.value.details["operation"] == "forecast"


# ===== Training Scheduler Tests =====


def test_background_job_completes():
    """Test that a submitted job publishes and reports completion."""
    registry = ModelRegistry()
    scheduler = TrainingScheduler()
    try:
        job = scheduler.submit(SALES_MODEL, lambda d: registry.publish(SALES_MODEL, "r", deadline=d))
        snapshot = job.result(timeout=5)
    finally:
        scheduler.shutdown()

    assert snapshot.version == 1
    assert job.status == "completed"
    assert scheduler.get(job.job_id) is job
    assert job.describe()["snapshot"]["version"] == 1


def test_cancelled_job_never_publishes():
    """Test that cancelling a running job leaves the registry untouched."""
    registry = ModelRegistry()
    started = threading.Event()
    release = threading.Event()

    def train(deadline):
        started.set()
        release.wait(5)
        return registry.publish(SALES_MODEL, "r", deadline=deadline)

    scheduler = TrainingScheduler()
    try:
        job = scheduler.submit(SALES_MODEL, train)
        assert started.wait(5)
        assert job.cancel()
        release.set()
        with pytest.raises(CancelledError):
            job.result(timeout=5)
    finally:
        scheduler.shutdown()

    assert job.status == "cancelled"
    assert registry.get(SALES_MODEL) is None


def test_failed_job_reports_error():
    """Test that training errors are kept on the job."""

    def train(deadline):
        raise InsufficientDataError(30, 3)

    scheduler = TrainingScheduler()
    try:
        job = scheduler.submit(SALES_MODEL, train)
        with pytest.raises(InsufficientDataError):
            job.result(timeout=5)
    finally:
        scheduler.shutdown()

    assert job.status == "failed"
    assert "Insufficient" in job.describe()["error"]


def test_job_result_timeout():
    """Test that waiting too long on a job raises EngineTimeoutError."""
    release = threading.Event()
    scheduler = TrainingScheduler()
    try:
        job = scheduler.submit(SALES_MODEL, lambda d: release.wait(5))
        with pytest.raises(EngineTimeoutError):
            job.result(timeout=0.01)
    finally:
        release.set()
        scheduler.shutdown()


def test_finished_jobs_are_bounded():
    """Test that only the newest finished jobs are kept."""
    registry = ModelRegistry()
    scheduler = TrainingScheduler(max_retained_jobs=2)
    try:
        jobs = []
        for _ in range(5):
            job = scheduler.submit(
                SALES_MODEL, lambda d: registry.publish(SALES_MODEL, "r", deadline=d)
            )
            job.result(timeout=5)
            jobs.append(job)
    finally:
        scheduler.shutdown()

    # Two finished jobs survive the last submit, plus the last job itself.
    assert [j.job_id for j in scheduler.jobs()] == [j.job_id for j in jobs[2:]]
    assert scheduler.get(jobs[0].job_id) is None
    assert registry.get(SALES_MODEL).version == 5


def test_unfinished_jobs_are_never_forgotten():
    """Test that running jobs stay tracked whatever the cap."""
    release = threading.Event()
    scheduler = TrainingScheduler(max_workers=2, max_retained_jobs=0)
    try:
        first = scheduler.submit(SALES_MODEL, lambda d: release.wait(5))
        second = scheduler.submit(SALES_MODEL, lambda d: release.wait(5))

        assert scheduler.get(first.job_id) is first
        assert scheduler.get(second.job_id) is second
    finally:
        release.set()
        scheduler.shutdown()


# ===== Artifact Tests =====


def test_snapshots_round_trip_through_disk(tmp_path, engine):
    """Test saving and restoring published snapshots."""
    engine.train_sales_forecaster(history_records(), background=False)

    paths = save_snapshots(engine.registry, str(tmp_path))
    assert len(paths) == 1
    assert check_snapshots_exist(str(tmp_path))

    registry = ModelRegistry()
    loaded = load_snapshots(registry, str(tmp_path))

    assert [s.name for s in loaded] == [SALES_MODEL]
    assert registry.get(SALES_MODEL).version == 1
    assert registry.get(SALES_MODEL).metadata["window_length"] == 30


def test_loading_missing_snapshots(tmp_path):
    """Test FileNotFoundError for an empty model directory."""
    assert not check_snapshots_exist(str(tmp_path))
    with pytest.raises(FileNotFoundError):
        load_snapshots(ModelRegistry(), str(tmp_path))


def test_reloaded_snapshot_with_other_window_length(tmp_path):
    """Test that a model saved with 14-day windows is refused by a 30-day engine."""
    trainer = ShopSenseEngine(
        EngineConfig(window_length=14, model_dir=str(tmp_path)),
        factory=lambda: DummyRegressor(strategy="mean"),
    )
    try:
        trainer.train_sales_forecaster(history_records(), background=False)
        trainer.save_models()
    finally:
        trainer.shutdown()

    server = ShopSenseEngine(EngineConfig(model_dir=str(tmp_path)))
    try:
        server.load_models()
        with pytest.raises(ModelUnavailableError) as exc_info:
            server.forecast_sales(history_records(), horizon_days=3)
    finally:
        server.shutdown()

    assert exc_info.value.status_code == 503


# ===== Engine Tests =====


def test_forecast_sales_accepts_records(engine):
    """Test forecasting from plain dict records."""
    results = engine.forecast_sales(history_records(), horizon_days=7)

    assert len(results) == 7
    assert all(isinstance(r, ForecastResult) for r in results)


def test_forecast_timeout(engine):
    """Test that a tiny timeout surfaces as EngineTimeoutError."""
    engine.train_sales_forecaster(history_records(), background=False)

    with pytest.raises(EngineTimeoutError):
        engine.forecast_sales(history_records(), horizon_days=365, timeout=1e-9)


def test_background_sales_training(engine):
    """Test that background training publishes a new version."""
    job = engine.train_sales_forecaster(history_records())

    assert isinstance(job, TrainingJob)
    assert job.result(timeout=10).version == 1
    assert engine.status()["models"][SALES_MODEL]["version"] == 1


def test_recommend_products_with_dict_inputs(engine):
    """Test recommendations from dict products and a customer record."""
    products = [
        {"id": 1, "category": "books", "price": 10, "tags": "fiction,new"},
        {"id": 2, "category": "books", "price": 12, "tags": "fiction"},
        {"id": 3, "category": "garden", "price": 60, "tags": "outdoor"},
    ]
    transactions = [
        {"customer_id": "A", "product_id": 1, "quantity": 1},
        {"customer_id": "B", "product_id": 2, "quantity": 1},
    ]

    results = engine.recommend_products({"customer_id": "A"}, products, transactions, top_n=2)

    assert 1 <= len(results) <= 2
    assert 1 not in [r.product_id for r in results]


def test_predict_demand_and_background_training(engine):
    """Test demand prediction and demand retraining."""
    product = {"product_id": "sku-1", "price": 5.0}
    records = history_records(days=20)

    prediction = engine.predict_demand(product, records, {"season": 1.0})
    job = engine.train_demand_model(product, records, {"season": 1.0})

    assert prediction.predicted_demand >= 0
    assert job.result(timeout=10).version == 2
