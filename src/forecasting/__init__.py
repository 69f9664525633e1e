"""Sales forecasting module for ShopSense.

Daily feature extraction, per-window standardization, the holiday calendar,
pluggable regressors and the autoregressive multi-day forecaster.
"""
