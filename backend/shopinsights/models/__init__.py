"""
Database models for connected stores, synced commerce data and sync runs.

All models follow strict tenant isolation patterns.
Tenant-scoped models inherit from TenantScopedMixin.
"""

from shopinsights.models.base import TimestampMixin, TenantScopedMixin, StoreScopedMixin
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.models.order import Order, OrderItem
from shopinsights.models.customer import Customer
from shopinsights.models.product import Product
from shopinsights.models.sync_run import SyncRun, SyncRunStatus, SyncType, TERMINAL_STATUSES

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "StoreScopedMixin",
    "ShopifyStore",
    "StoreStatus",
    "Order",
    "OrderItem",
    "Customer",
    "Product",
    "SyncRun",
    "SyncRunStatus",
    "SyncType",
    "TERMINAL_STATUSES",
]
