"""Tests for the hybrid recommender.

Covers the weighted fusion of collaborative and content-based candidate
lists and the end-to-end recommendation flow with its fallbacks.
"""

import pytest

from src.exceptions import EngineTimeoutError, InvalidInputError
from src.engine.deadline import Deadline
from src.recommender.collaborative import CollaborativeFilter
from src.recommender.hybrid import FusionWeights, HybridRecommender, fuse
from src.schemas import Product, RecommendationCandidate


def candidates(*pairs):
    return [RecommendationCandidate(Product(product_id=pid), score) for pid, score in pairs]


@pytest.fixture
def catalog():
    """Catalog of five products across two categories."""
    return [
        Product(product_id=1, category="books", price=12, tags=("fiction",)),
        Product(product_id=2, category="books", price=14, tags=("fiction",)),
        Product(product_id=3, category="books", price=16, tags=("poetry",)),
        Product(product_id=4, category="garden", price=80, tags=("outdoor",)),
        Product(product_id=5, category="garden", price=90, tags=("outdoor",)),
    ]


@pytest.fixture
def transactions():
    """Purchases of four customers."""
    return [
        {"customer_id": "A", "product_id": 1, "quantity": 2},
        {"customer_id": "B", "product_id": 1, "quantity": 1},
        {"customer_id": "B", "product_id": 2, "quantity": 3},
        {"customer_id": "C", "product_id": 4, "quantity": 1},
        {"customer_id": "D", "product_id": 4, "quantity": 2},
        {"customer_id": "D", "product_id": 5, "quantity": 1},
    ]


@pytest.fixture
def recommender():
    return HybridRecommender(collaborative=CollaborativeFilter(rank=2))


# ===== Fusion Tests =====


def test_fusion_law():
    """Test 0.6 * s1 + 0.4 * s2 for shared products and w * s otherwise."""
    fused = fuse(
        candidates(("x", 1.0), ("y", 0.5)),
        candidates(("x", 0.5), ("z", 1.0)),
    )
    scores = {c.product_id: c.score for c in fused}

    assert scores["x"] == pytest.approx(0.6 * 1.0 + 0.4 * 0.5)
    assert scores["y"] == pytest.approx(0.6 * 0.5)
    assert scores["z"] == pytest.approx(0.4 * 1.0)
    assert [c.product_id for c in fused] == ["x", "z", "y"]


def test_fusion_ties_break_by_id():
    """Test ascending product id among equal fused scores."""
    fused = fuse(candidates((3, 1.0), (1, 1.0)), candidates((2, 1.5)))

    assert [c.product_id for c in fused] == [1, 2, 3]


def test_fusion_respects_top_n():
    """Test that at most top_n candidates are returned."""
    fused = fuse(candidates(*[(i, float(i)) for i in range(20)]), [], top_n=5)

    assert len(fused) == 5
    assert [c.product_id for c in fused] == [19, 18, 17, 16, 15]


def test_fusion_never_duplicates():
    """Test that a product repeated within a source counts once."""
    fused = fuse(candidates(("x", 1.0), ("x", 1.0)), candidates(("x", 1.0)))

    assert len(fused) == 1
    assert fused[0].score == pytest.approx(1.0)


def test_fusion_with_empty_inputs():
    """Test that two empty lists fuse into an empty list."""
    assert fuse([], []) == []


def test_negative_top_n_rejected():
    """Test top_n validation."""
    with pytest.raises(InvalidInputError):
        fuse([], [], top_n=-1)


def test_negative_weights_rejected():
    """Test weight validation."""
    with pytest.raises(InvalidInputError):
        FusionWeights(collab=-0.1)


# ===== Recommendation Flow Tests =====


def test_recommendations_exclude_purchases(recommender, catalog, transactions):
    """Test that already purchased products are never recommended."""
    results = recommender.recommend("A", catalog, transactions, top_n=10)

    ids = [r.product_id for r in results]
    assert 1 not in ids
    assert len(ids) == len(set(ids))
    assert set(ids) <= {2, 3, 4, 5}


def test_top_n_is_respected(recommender, catalog, transactions):
    """Test that the result never exceeds top_n."""
    for top_n in (0, 1, 2, 10):
        assert len(recommender.recommend("B", catalog, transactions, top_n=top_n)) <= top_n


def test_score_breakdown(recommender, catalog, transactions):
    """Test that return_scores exposes per-source scores."""
    results, breakdown = recommender.recommend(
        "A", catalog, transactions, top_n=3, return_scores=True
    )

    assert breakdown["method"] == "hybrid"
    assert breakdown["collab_weight"] == 0.6
    assert breakdown["content_weight"] == 0.4
    assert set(breakdown["hybrid_scores"]) == {r.product_id for r in results}
    for r in results:
        collab = breakdown["collab_scores"][r.product_id] or 0.0
        content = breakdown["content_scores"][r.product_id] or 0.0
        assert r.score == pytest.approx(0.6 * collab + 0.4 * content)


def test_cold_start_uses_popularity(recommender, catalog, transactions):
    """Test that a customer with no purchases gets the most popular products."""
    results, breakdown = recommender.recommend(
        "new-customer", catalog, transactions, top_n=3, return_scores=True
    )

    assert breakdown["method"] == "cold_start"
    # Totals: 1 -> 3, 2 -> 3, 4 -> 3, 5 -> 1, 3 -> 0
    assert [r.product_id for r in results] == [1, 2, 4]


def test_malformed_transactions_reported(recommender, catalog, transactions):
    """Test that skipped transactions show up in the breakdown."""
    bad = transactions + [{"customer_id": "A", "product_id": 3, "quantity": -1}]

    _, breakdown = recommender.recommend("A", catalog, bad, return_scores=True)

    assert len(breakdown["skipped_transactions"]) == 1


def test_expired_deadline(recommender, catalog, transactions):
    """Test that an expired deadline stops the call."""
    with pytest.raises(EngineTimeoutError):
        recommender.recommend("A", catalog, transactions, deadline=Deadline(timeout=0))
