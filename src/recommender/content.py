"""Content-based filtering.

Encodes products as attribute vectors (category, price bucket, tags),
builds a customer preference vector from the products they bought, and
ranks the catalog by cosine similarity to that preference.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics.pairwise import cosine_similarity

from src.config import DEFAULT_CONTENT_TOP_K, DEFAULT_PRICE_EDGES
from src.exceptions import InvalidInputError
from src.recommender.matrix import CUSTOMER_FIELDS, PRODUCT_FIELDS
from src.schemas import Product, RecommendationCandidate, lookup, rank_candidates

# Configure module logger
logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("timestamp", "date", "created_at", "createdAt")


class ProductFeatureSpace:
    """Vocabulary of product attributes and the encoder built on it.

    Args:
        categories: Known categories (one-hot).
        tags: Known tags (multi-hot).
        price_edges: Ascending bucket boundaries; ``len(edges) + 1`` buckets.
    """

    def __init__(
        self,
        categories: Iterable[str],
        tags: Iterable[str],
        price_edges: Sequence[float] = DEFAULT_PRICE_EDGES,
    ):
        self.categories = sorted(set(categories))
        self.tags = sorted(set(tags))
        self.price_edges = tuple(float(e) for e in price_edges)
        if list(self.price_edges) != sorted(self.price_edges):
            raise InvalidInputError("price_edges must be sorted ascending")

        self._category_idx = {c: i for i, c in enumerate(self.categories)}
        offset = len(self.categories)
        self._bucket_offset = offset
        offset += len(self.price_edges) + 1
        self._tag_idx = {t: offset + i for i, t in enumerate(self.tags)}
        self.dimension = offset + len(self.tags)

        logger.debug(
            f"Initialized ProductFeatureSpace: {len(self.categories)} categories, "
            f"{len(self.tags)} tags, dim={self.dimension}"
        )

    @classmethod
    def from_catalog(
        cls,
        products: Iterable[Product],
        price_edges: Sequence[float] = DEFAULT_PRICE_EDGES,
    ) -> "ProductFeatureSpace":
        products = list(products)
        return cls(
            categories=[p.category for p in products if p.category],
            tags=[t for p in products for t in p.tags],
            price_edges=price_edges,
        )

    @property
    def feature_names(self) -> List[str]:
        buckets = [f"price_bucket={i}" for i in range(len(self.price_edges) + 1)]
        return (
            [f"category={c}" for c in self.categories]
            + buckets
            + [f"tag={t}" for t in self.tags]
        )

    def price_bucket(self, price: float) -> int:
        return int(np.searchsorted(self.price_edges, price, side="right"))

    def encode(self, product: Product) -> np.ndarray:
        """Attribute vector of a product; unknown categories and tags are ignored."""
        vector = np.zeros(self.dimension)
        if product.category in self._category_idx:
            vector[self._category_idx[product.category]] = 1.0
        vector[self._bucket_offset + self.price_bucket(product.price)] = 1.0
        for tag in product.tags:
            if tag in self._tag_idx:
                vector[self._tag_idx[tag]] = 1.0
        return vector

    def encode_many(self, products: Sequence[Product]) -> np.ndarray:
        if not products:
            return np.zeros((0, self.dimension))
        return np.vstack([self.encode(p) for p in products])


def _naive(ts: pd.Timestamp) -> pd.Timestamp:
    return ts.tz_convert(None) if ts.tzinfo is not None else ts


def _timestamp(transaction: Any) -> Optional[pd.Timestamp]:
    raw = lookup(transaction, *TIMESTAMP_FIELDS, default=None)
    if raw is None:
        return None
    try:
        ts = pd.Timestamp(raw)
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return _naive(ts)


def preference_vector(
    customer_id: Any,
    transactions: Iterable[Any],
    catalog: Mapping[Any, Product],
    space: ProductFeatureSpace,
    recency_half_life_days: Optional[float] = None,
    now: Optional[pd.Timestamp] = None,
) -> np.ndarray:
    """Purchase-frequency-weighted sum of the customer's product vectors.

    Each purchase contributes the product's attribute vector once. With a
    half-life, a purchase ``age`` days old is weighted by
    ``0.5 ** (age / half_life)``, measured from ``now`` (default: the
    customer's latest purchase).
    """
    purchases = []
    for transaction in transactions:
        try:
            if lookup(transaction, *CUSTOMER_FIELDS) != customer_id:
                continue
            product_id = lookup(transaction, *PRODUCT_FIELDS)
        except KeyError:
            continue
        if product_id not in catalog:
            logger.debug(f"Purchased product {product_id} not in catalog, skipped")
            continue
        purchases.append((product_id, _timestamp(transaction)))

    preference = np.zeros(space.dimension)
    if not purchases:
        return preference

    if recency_half_life_days is not None and recency_half_life_days <= 0:
        raise InvalidInputError("recency_half_life_days must be positive")

    if recency_half_life_days is not None and now is None:
        stamps = [ts for _, ts in purchases if ts is not None]
        now = max(stamps) if stamps else None

    for product_id, ts in purchases:
        weight = 1.0
        if recency_half_life_days is not None and ts is not None and now is not None:
            age_days = max(0.0, (_naive(pd.Timestamp(now)) - ts).total_seconds() / 86400.0)
            weight = 0.5 ** (age_days / recency_half_life_days)
        preference += weight * space.encode(catalog[product_id])

    return preference


def score(
    products: Sequence[Product],
    preference: np.ndarray,
    space: ProductFeatureSpace,
    top_k: int = DEFAULT_CONTENT_TOP_K,
    exclude: Optional[Iterable[Any]] = None,
) -> List[RecommendationCandidate]:
    """Rank products by cosine similarity to the preference vector.

    Returns:
        Top ``top_k`` candidates, score descending, ties by product id
        ascending. Empty when the preference vector carries no signal.
    """
    preference = np.asarray(preference, dtype=float)
    if preference.shape != (space.dimension,):
        raise InvalidInputError(
            f"Preference vector of shape {preference.shape} does not match "
            f"feature dimension {space.dimension}"
        )
    if not np.any(preference) or top_k == 0:
        return []

    excluded = set(exclude or ())
    unique: Dict[Any, Product] = {}
    for product in products:
        if product.product_id not in excluded and product.product_id not in unique:
            unique[product.product_id] = product
    if not unique:
        return []

    candidates_products = list(unique.values())
    similarities = cosine_similarity(
        preference.reshape(1, -1), space.encode_many(candidates_products)
    )[0]

    candidates = [
        RecommendationCandidate(product=p, score=float(s))
        for p, s in zip(candidates_products, similarities)
    ]
    return rank_candidates(candidates)[:top_k]


class ContentBasedFilter:
    """Catalog-bound content recommender."""

    def __init__(
        self,
        top_k: int = DEFAULT_CONTENT_TOP_K,
        price_edges: Sequence[float] = DEFAULT_PRICE_EDGES,
        recency_half_life_days: Optional[float] = None,
    ):
        self.top_k = top_k
        self.price_edges = tuple(price_edges)
        self.recency_half_life_days = recency_half_life_days

    def recommend(
        self,
        customer_id: Any,
        products: Sequence[Product],
        transactions: Sequence[Any],
        exclude: Optional[Iterable[Any]] = None,
    ) -> List[RecommendationCandidate]:
        catalog = {p.product_id: p for p in products}
        space = ProductFeatureSpace.from_catalog(products, self.price_edges)
        preference = preference_vector(
            customer_id,
            transactions,
            catalog,
            space,
            recency_half_life_days=self.recency_half_life_days,
        )
        return score(products, preference, space, top_k=self.top_k, exclude=exclude)
