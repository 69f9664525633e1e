"""Public entry points of the ShopSense engine.

``ShopSenseEngine`` wires the forecaster, recommender and demand predictor
to one snapshot registry and one background training pool. Every call is a
pure function of its inputs plus the snapshots published at call time.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from src.config import EngineConfig
from src.engine.artifacts import load_snapshots, save_snapshots
from src.engine.deadline import Deadline
from src.engine.registry import DEMAND_MODEL, SALES_MODEL, ModelRegistry, ModelSnapshot
from src.engine.training import TrainingJob, TrainingScheduler
from src.demand.predictor import DemandPredictor
from src.forecasting.calendar import HolidayCalendar
from src.forecasting.forecaster import SequenceForecaster
from src.forecasting.regressors import RegressorFactory, regressor_factory
from src.recommender.collaborative import CollaborativeFilter
from src.recommender.content import ContentBasedFilter
from src.recommender.hybrid import FusionWeights, HybridRecommender
from src.schemas import (
    DemandPrediction,
    ForecastResult,
    Product,
    RecommendationCandidate,
    lookup,
    to_history,
)

# Configure module logger
logger = logging.getLogger(__name__)


def _customer_id(customer: Any) -> Any:
    if isinstance(customer, (str, int)):
        return customer
    return lookup(customer, "customer_id", "customerId", "id", "_id")


class ShopSenseEngine:
    """Forecasting, recommendation and demand prediction behind one façade.

    Args:
        config: Engine settings (default: ``EngineConfig()``).
        registry: Snapshot registry to share with other engines.
        factory: Regressor factory overriding ``config.regressor``.
        calendar: Holiday calendar overriding ``config.holidays``.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[ModelRegistry] = None,
        factory: Optional[RegressorFactory] = None,
        calendar: Optional[HolidayCalendar] = None,
    ):
        self.config = config or EngineConfig()
        self.registry = registry if registry is not None else ModelRegistry()
        factory = factory or regressor_factory(self.config.regressor)

        self.forecaster = SequenceForecaster(
            registry=self.registry,
            factory=factory,
            window_length=self.config.window_length,
            calendar=calendar or HolidayCalendar(self.config.holidays),
            accuracy_baseline=self.config.accuracy_baseline,
            auto_train=self.config.auto_train,
        )
        self.recommender = HybridRecommender(
            collaborative=CollaborativeFilter(
                rank=self.config.rank,
                n_iter=self.config.als_iterations,
                regularization=self.config.regularization,
                random_state=self.config.random_state,
            ),
            content=ContentBasedFilter(
                top_k=self.config.content_top_k,
                price_edges=self.config.price_edges,
                recency_half_life_days=self.config.recency_half_life_days,
            ),
            weights=FusionWeights(self.config.collab_weight, self.config.content_weight),
        )
        self.demand = DemandPredictor(
            registry=self.registry,
            factory=factory,
            min_history=self.config.min_demand_history,
            accuracy_baseline=self.config.accuracy_baseline,
            auto_train=self.config.auto_train,
        )
        self.scheduler = TrainingScheduler(
            max_workers=self.config.training_workers,
            max_retained_jobs=self.config.max_retained_jobs,
        )

    def forecast_sales(
        self,
        history: Sequence[Any],
        horizon_days: int,
        timeout: Optional[float] = None,
    ) -> List[ForecastResult]:
        """Forecast daily sales for ``horizon_days`` days after ``history``."""
        start_time = time.time()
        results = self.forecaster.forecast(
            to_history(history), horizon_days, Deadline(timeout)
        )
        logger.debug(
            f"forecast_sales finished in {round((time.time() - start_time) * 1000, 2)} ms"
        )
        return results

    def recommend_products(
        self,
        customer: Any,
        products: Sequence[Any],
        transactions: Sequence[Any],
        top_n: Optional[int] = None,
        timeout: Optional[float] = None,
        return_scores: bool = False,
    ) -> Union[List[RecommendationCandidate], Tuple[List[RecommendationCandidate], Dict]]:
        """Rank catalog products for ``customer``."""
        return self.recommender.recommend(
            _customer_id(customer),
            [Product.from_dict(p) for p in products],
            list(transactions),
            top_n=self.config.top_n if top_n is None else top_n,
            deadline=Deadline(timeout),
            return_scores=return_scores,
        )

    def predict_demand(
        self,
        product: Any,
        history: Sequence[Any],
        external_factors: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> DemandPrediction:
        """Estimate next-period demand for ``product``."""
        return self.demand.predict_for(
            Product.from_dict(product),
            to_history(history),
            external_factors,
            Deadline(timeout),
        )

    def train_sales_forecaster(
        self,
        history: Sequence[Any],
        background: bool = True,
        timeout: Optional[float] = None,
    ) -> Union[TrainingJob, ModelSnapshot]:
        """Train and publish a new sales model, by default off the request path."""
        points = to_history(history)
        if not background:
            return self.forecaster.train(points, Deadline(timeout))
        return self.scheduler.submit(
            SALES_MODEL, lambda deadline: self.forecaster.train(points, deadline), timeout
        )

    def train_demand_model(
        self,
        product: Any,
        history: Sequence[Any],
        external_factors: Optional[Mapping[str, Any]] = None,
        background: bool = True,
        timeout: Optional[float] = None,
    ) -> Union[TrainingJob, ModelSnapshot]:
        """Train and publish a new demand model, by default off the request path."""
        parsed = Product.from_dict(product)
        points = to_history(history)
        if not background:
            return self.demand.train(parsed, points, external_factors, Deadline(timeout))
        return self.scheduler.submit(
            DEMAND_MODEL,
            lambda deadline: self.demand.train(parsed, points, external_factors, deadline),
            timeout,
        )

    def load_models(self, model_dir: Optional[str] = None) -> List[ModelSnapshot]:
        """Restore saved snapshots into the registry.

        Raises:
            FileNotFoundError: If no snapshots exist in the directory.
        """
        return load_snapshots(self.registry, model_dir or self.config.model_dir)

    def save_models(self, model_dir: Optional[str] = None) -> List[Path]:
        return save_snapshots(self.registry, model_dir or self.config.model_dir)

    def status(self) -> Dict[str, Any]:
        return {
            "models": {
                name: snapshot.describe()
                for name, snapshot in self.registry.snapshots().items()
            },
            "training_jobs": [job.describe() for job in self.scheduler.jobs()],
        }

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=False)
