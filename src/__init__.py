"""ShopSense: sales forecasting and product recommendation engine.

This package estimates future daily sales from historical time series,
recommends products to customers by fusing collaborative and content-based
signals, and predicts per-product demand from history and external factors.

Modules:
    forecasting: Feature pipeline and autoregressive sales forecaster
    recommender: Interaction matrix, collaborative, content and hybrid filters
    demand: Per-product demand predictor
    engine: Snapshot registry, background training and the service façade
    api: FastAPI application and REST API endpoints
"""

__version__ = "0.1.0"
