"""Shopify Insights backend: store sync, webhook ingestion and sync status API."""

__version__ = "1.0.0"
