"""Demand prediction module for ShopSense."""
