"""
Test doubles for the Shopify Admin API.
"""

from .mock_shopify import (
    TEST_ACCESS_TOKEN,
    FakeShopifyClient,
    customer_payload,
    make_orders,
    order_payload,
    product_payload,
    sign_webhook,
    ts,
)

__all__ = [
    "TEST_ACCESS_TOKEN",
    "FakeShopifyClient",
    "customer_payload",
    "make_orders",
    "order_payload",
    "product_payload",
    "sign_webhook",
    "ts",
]
