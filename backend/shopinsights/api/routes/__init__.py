"""API route modules."""
from shopinsights.api.routes import health
from shopinsights.api.routes import stores
from shopinsights.api.routes import sync
from shopinsights.api.routes import webhooks_shopify

__all__ = ["health", "stores", "sync", "webhooks_shopify"]
