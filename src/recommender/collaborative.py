"""Collaborative filtering via matrix factorization.

Learns latent customer and product factors with alternating least squares
fitted on the observed purchases only (implicit-feedback style: products a
customer never bought are not treated as zero ratings). Products are then
scored for a customer by the dot product of their latent vectors.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from scipy.sparse import csr_matrix

from src.config import (
    DEFAULT_ALS_ITERATIONS,
    DEFAULT_RANDOM_STATE,
    DEFAULT_RANK,
    DEFAULT_REGULARIZATION,
)
from src.engine.deadline import Deadline
from src.exceptions import InvalidInputError
from src.recommender.matrix import InteractionMatrix
from src.schemas import Product, RecommendationCandidate, rank_candidates

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatentFactors:
    """Factor matrices plus the id-to-row mappings they were built with."""

    customer_factors: np.ndarray
    product_factors: np.ndarray
    customer_index: Dict[Any, int]
    product_index: Dict[Any, int]

    @property
    def rank(self) -> int:
        return self.customer_factors.shape[1]

    def customer_vector(self, customer_id: Any) -> Optional[np.ndarray]:
        idx = self.customer_index.get(customer_id)
        return None if idx is None else self.customer_factors[idx]

    def reconstruct(self) -> np.ndarray:
        return self.customer_factors @ self.product_factors.T


def _solve_rows(
    observed: csr_matrix,
    fixed: np.ndarray,
    regularization: float,
) -> np.ndarray:
    """Least-squares update of every row against the fixed factor matrix.

    Only the observed entries of each row contribute to its normal equations.
    """
    n_rows = observed.shape[0]
    rank = fixed.shape[1]
    ridge = regularization * np.eye(rank)
    solved = np.zeros((n_rows, rank))

    for row in range(n_rows):
        start, end = observed.indptr[row], observed.indptr[row + 1]
        if start == end:
            continue
        cols = observed.indices[start:end]
        values = observed.data[start:end]
        sub = fixed[cols]
        solved[row] = np.linalg.solve(sub.T @ sub + ridge, sub.T @ values)

    return solved


def factorize(
    matrix: InteractionMatrix,
    rank: int = DEFAULT_RANK,
    n_iter: int = DEFAULT_ALS_ITERATIONS,
    regularization: float = DEFAULT_REGULARIZATION,
    random_state: int = DEFAULT_RANDOM_STATE,
    deadline: Optional[Deadline] = None,
) -> LatentFactors:
    """Factorize the interaction matrix into customer and product factors.

    Args:
        matrix: Customer-product purchase quantities.
        rank: Number of latent features.
        n_iter: Number of alternating sweeps.
        regularization: L2 penalty on the factors. Must be positive so the
            normal equations stay solvable for sparsely observed rows.
        random_state: Random seed for reproducibility.
        deadline: Optional time budget, checked once per sweep.

    Returns:
        LatentFactors approximating the observed entries.

    Raises:
        InvalidInputError: If the matrix is empty or parameters are invalid.
        EngineTimeoutError: If the deadline passes.
    """
    if rank < 1:
        raise InvalidInputError(f"rank must be at least 1, got {rank}")
    if regularization <= 0:
        raise InvalidInputError("regularization must be positive")
    if matrix.nnz == 0:
        raise InvalidInputError("Cannot factorize an empty interaction matrix")

    deadline = Deadline.coerce(deadline)
    start_time = time.time()

    by_customer, customer_index, product_index = matrix.to_csr()
    by_product = by_customer.T.tocsr()

    rng = np.random.RandomState(random_state)
    customer_factors = rng.normal(scale=0.1, size=(by_customer.shape[0], rank))
    product_factors = rng.normal(scale=0.1, size=(by_customer.shape[1], rank))

    logger.info(
        f"Factorizing {by_customer.shape[0]}x{by_customer.shape[1]} matrix "
        f"with rank={rank}, iterations={n_iter}"
    )

    for _ in range(n_iter):
        deadline.check("factorize")
        customer_factors = _solve_rows(by_customer, product_factors, regularization)
        product_factors = _solve_rows(by_product, customer_factors, regularization)

    factors = LatentFactors(
        customer_factors=customer_factors,
        product_factors=product_factors,
        customer_index=customer_index,
        product_index=product_index,
    )

    observed = by_customer.tocoo()
    predicted = np.einsum(
        "ij,ij->i",
        customer_factors[observed.row],
        product_factors[observed.col],
    )
    rmse = float(np.sqrt(np.mean((predicted - observed.data) ** 2)))
    logger.info(
        "Factorization completed",
        extra={
            "observed_rmse": round(rmse, 4),
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return factors


def score(
    customer_id: Any,
    factors: LatentFactors,
    matrix: InteractionMatrix,
    catalog: Optional[Mapping[Any, Product]] = None,
) -> List[RecommendationCandidate]:
    """Score every product the customer has not purchased.

    Args:
        customer_id: Target customer.
        factors: Output of ``factorize``.
        matrix: Interaction matrix, used to exclude purchased products.
        catalog: If given, only these products are scored and their catalog
            records are attached to the candidates.

    Returns:
        Candidates sorted by score descending, ties by product id ascending.
        Empty for customers unknown to the factorization.
    """
    user_vector = factors.customer_vector(customer_id)
    if user_vector is None:
        logger.debug(f"Customer {customer_id} not in factorization, no CF scores")
        return []

    purchased = matrix.purchased(customer_id)
    scores = factors.product_factors @ user_vector

    candidates = []
    for product_id, idx in factors.product_index.items():
        if product_id in purchased:
            continue
        if catalog is not None:
            if product_id not in catalog:
                continue
            product = catalog[product_id]
        else:
            product = Product(product_id=product_id)
        candidates.append(RecommendationCandidate(product=product, score=float(scores[idx])))

    return rank_candidates(candidates)


class CollaborativeFilter:
    """Factorization settings bundled with the score step."""

    def __init__(
        self,
        rank: int = DEFAULT_RANK,
        n_iter: int = DEFAULT_ALS_ITERATIONS,
        regularization: float = DEFAULT_REGULARIZATION,
        random_state: int = DEFAULT_RANDOM_STATE,
    ):
        self.rank = rank
        self.n_iter = n_iter
        self.regularization = regularization
        self.random_state = random_state

    def factorize(
        self, matrix: InteractionMatrix, deadline: Optional[Deadline] = None
    ) -> LatentFactors:
        return factorize(
            matrix,
            rank=self.rank,
            n_iter=self.n_iter,
            regularization=self.regularization,
            random_state=self.random_state,
            deadline=deadline,
        )

    def recommend(
        self,
        customer_id: Any,
        matrix: InteractionMatrix,
        catalog: Optional[Mapping[Any, Product]] = None,
        deadline: Optional[Deadline] = None,
    ) -> List[RecommendationCandidate]:
        if customer_id not in matrix:
            return []
        factors = self.factorize(matrix, deadline)
        return score(customer_id, factors, matrix, catalog)
