"""Hybrid recommendation module.

Combines collaborative filtering and content-based filtering with fixed
per-source weights. Scores are not renormalised: a product found by only one
source keeps just that source's weighted score.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from src.config import (
    DEFAULT_COLLAB_WEIGHT,
    DEFAULT_CONTENT_WEIGHT,
    DEFAULT_TOP_N,
)
from src.engine.deadline import Deadline
from src.exceptions import InvalidInputError
from src.recommender.collaborative import CollaborativeFilter
from src.recommender.content import ContentBasedFilter
from src.recommender.matrix import InteractionMatrix, build_interaction_matrix
from src.schemas import Product, RecommendationCandidate, id_sort_key, rank_candidates

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FusionWeights:
    collab: float = DEFAULT_COLLAB_WEIGHT
    content: float = DEFAULT_CONTENT_WEIGHT

    def __post_init__(self) -> None:
        if self.collab < 0 or self.content < 0:
            raise InvalidInputError(
                "Fusion weights must be non-negative",
                details={"collab": self.collab, "content": self.content},
            )


def fuse(
    collab: Sequence[RecommendationCandidate],
    content: Sequence[RecommendationCandidate],
    weights: FusionWeights = FusionWeights(),
    top_n: int = DEFAULT_TOP_N,
) -> List[RecommendationCandidate]:
    """Merge two candidate lists into one weighted ranking.

    Only-collab products score ``weights.collab * s``, only-content products
    ``weights.content * s``, products in both the sum of the two.

    Returns:
        At most ``top_n`` candidates, no duplicate products, sorted by fused
        score descending with ties broken by product id ascending.
    """
    if top_n < 0:
        raise InvalidInputError(f"top_n must be non-negative, got {top_n}")

    products: Dict[Any, Product] = {}
    fused: Dict[Any, float] = {}

    for source, weight in ((collab, weights.collab), (content, weights.content)):
        seen = set()
        for candidate in source:
            pid = candidate.product_id
            # A source listing a product twice contributes once.
            if pid in seen:
                continue
            seen.add(pid)
            products.setdefault(pid, candidate.product)
            fused[pid] = fused.get(pid, 0.0) + weight * candidate.score

    ranked = rank_candidates(
        [RecommendationCandidate(product=products[pid], score=s) for pid, s in fused.items()]
    )
    return ranked[:top_n]


def popular_fallback(
    matrix: InteractionMatrix,
    products: Sequence[Product],
    exclude: set,
    top_n: int,
) -> List[RecommendationCandidate]:
    """Most purchased catalog products, then the rest of the catalog by id.

    Used for customers neither recommender has any signal for.
    """
    popularity = matrix.popularity()
    unique: Dict[Any, Product] = {}
    for product in products:
        if product.product_id not in exclude:
            unique.setdefault(product.product_id, product)

    ordered = sorted(
        unique.values(),
        key=lambda p: (-popularity.get(p.product_id, 0.0), id_sort_key(p.product_id)),
    )
    return [RecommendationCandidate(product=p, score=0.0) for p in ordered[:top_n]]


class HybridRecommender:
    """Combines CF and content-based recommendations."""

    def __init__(
        self,
        collaborative: Optional[CollaborativeFilter] = None,
        content: Optional[ContentBasedFilter] = None,
        weights: FusionWeights = FusionWeights(),
    ):
        self.collaborative = collaborative or CollaborativeFilter()
        self.content = content or ContentBasedFilter()
        self.weights = weights

        logger.info(
            f"Initialized HybridRecommender: "
            f"CF weight={self.weights.collab:.2f}, "
            f"Content weight={self.weights.content:.2f}"
        )

    def recommend(
        self,
        customer_id: Any,
        products: Sequence[Product],
        transactions: Sequence[Any],
        top_n: int = DEFAULT_TOP_N,
        deadline: Optional[Deadline] = None,
        return_scores: bool = False,
    ) -> Union[List[RecommendationCandidate], Tuple[List[RecommendationCandidate], Dict]]:
        """Get recommendations for a customer.

        Args:
            customer_id: Target customer.
            products: Catalog to recommend from.
            transactions: Purchase history of all customers.
            top_n: Maximum number of recommendations.
            deadline: Optional time budget.
            return_scores: If True, also return a per-source score breakdown.

        Returns:
            Ranked candidates, or ``(candidates, breakdown)``.
        """
        deadline = Deadline.coerce(deadline)
        start_time = time.time()
        logger.info(f"Generating hybrid recommendations for customer {customer_id}, top_n={top_n}")

        catalog: Dict[Any, Product] = {}
        for product in products:
            catalog.setdefault(product.product_id, product)

        matrix = build_interaction_matrix(transactions)
        purchased = matrix.purchased(customer_id)
        deadline.check("recommend")

        collab_list: List[RecommendationCandidate] = []
        if customer_id in matrix and matrix.nnz > 0:
            collab_list = self.collaborative.recommend(customer_id, matrix, catalog, deadline)
        deadline.check("recommend")

        content_list = self.content.recommend(
            customer_id, list(catalog.values()), transactions, exclude=purchased
        )
        deadline.check("recommend")

        method = "hybrid"
        if collab_list or content_list:
            recommendations = fuse(collab_list, content_list, self.weights, top_n)
        else:
            logger.info(f"No signal for customer {customer_id}, using popularity fallback")
            method = "cold_start"
            recommendations = popular_fallback(matrix, list(catalog.values()), purchased, top_n)

        logger.info(
            "Recommendations generated",
            extra={
                "customer_id": str(customer_id),
                "method": method,
                "num_recommendations": len(recommendations),
                "total_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )

        if return_scores:
            collab_scores = {c.product_id: c.score for c in collab_list}
            content_scores = {c.product_id: c.score for c in content_list}
            breakdown = {
                "method": method,
                "collab_scores": {
                    r.product_id: collab_scores.get(r.product_id) for r in recommendations
                },
                "content_scores": {
                    r.product_id: content_scores.get(r.product_id) for r in recommendations
                },
                "hybrid_scores": {r.product_id: r.score for r in recommendations},
                "collab_weight": self.weights.collab,
                "content_weight": self.weights.content,
                "skipped_transactions": list(matrix.warnings),
            }
            return recommendations, breakdown

        return recommendations
