"""FastAPI application module for ShopSense.

This module contains the FastAPI application, route handlers, and API
endpoints exposing forecasting, recommendation, demand prediction and model
training over HTTP.
"""
