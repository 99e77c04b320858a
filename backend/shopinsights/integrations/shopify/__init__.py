"""
Shopify Admin API integration.

Provides async client for verifying shops, paging through orders,
customers and products, and managing webhook subscriptions.
"""

from shopinsights.integrations.shopify.client import ShopifyClient, SUPPORTED_RESOURCES
from shopinsights.integrations.shopify.exceptions import (
    ShopifyError,
    ShopifyAuthError,
    ShopifyRemoteError,
    ShopifyRateLimitError,
    ShopifyTimeoutError,
    ShopifyConnectionError,
)
from shopinsights.integrations.shopify.models import (
    ShopMetadata,
    ResourcePage,
    WebhookDescriptor,
)

__all__ = [
    "ShopifyClient",
    "SUPPORTED_RESOURCES",
    "ShopifyError",
    "ShopifyAuthError",
    "ShopifyRemoteError",
    "ShopifyRateLimitError",
    "ShopifyTimeoutError",
    "ShopifyConnectionError",
    "ShopMetadata",
    "ResourcePage",
    "WebhookDescriptor",
]
