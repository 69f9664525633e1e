"""Recommendation module for ShopSense.

This module builds the customer-product interaction matrix from raw
transactions, scores products by latent-factor collaborative filtering and
by attribute similarity, and fuses both rankings into one list.
"""
