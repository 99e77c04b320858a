"""
ShopifyStore model for linking Shopify stores to tenants.

CRITICAL DESIGN DECISIONS:
- tenant_id comes from the bearer token (org_id)
- shop_domain is the canonical Shopify identifier (mystore.myshopify.com)
- access_token is encrypted at rest and cleared on disconnect
- A tenant can have MULTIPLE Shopify stores; one row per (tenant, domain)
- sync_watermark / sync_cursors are written ONLY by the sync orchestrator
"""

from sqlalchemy import (
    Column, String, Text, DateTime, Boolean, Enum, Index, JSON,
    UniqueConstraint
)

from shopinsights.db_base import Base
from shopinsights.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class StoreStatus:
    """Store connection status values."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class ShopifyStore(Base, TimestampMixin, TenantScopedMixin):
    """
    Links a Shopify store to a tenant.

    SECURITY:
    - tenant_id is from the bearer token, NEVER from request
    - access_token_encrypted must be decrypted only when making API calls
    """

    __tablename__ = "shopify_stores"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    # Shopify identifiers
    shop_domain = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Shopify store domain (mystore.myshopify.com)"
    )
    shopify_shop_id = Column(
        String(50),
        nullable=True,
        comment="Shopify shop id"
    )

    # Credential (encrypted at rest)
    access_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted Shopify access token, NULL once disconnected"
    )

    # Store metadata from Shopify
    shop_name = Column(String(255), nullable=True, comment="Store display name")
    shop_email = Column(String(255), nullable=True, comment="Store contact email")
    currency = Column(String(10), default="USD", comment="Store's primary currency")
    timezone = Column(String(100), nullable=True, comment="Store timezone")

    status = Column(
        Enum(
            "connected", "disconnected", "failed",
            name="store_connection_status"
        ),
        default=StoreStatus.CONNECTED,
        nullable=False,
        index=True,
        comment="Current connection status"
    )
    disconnected_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the store was disconnected"
    )

    # Store settings editable through the API
    sync_frequency = Column(
        String(20),
        nullable=True,
        comment="Preferred sync cadence (e.g. hourly, daily)"
    )
    store_settings = Column(JSON, nullable=True, comment="Free-form store settings")
    webhook_endpoints = Column(JSON, nullable=True, comment="Registered webhook descriptors")

    # Sync bookkeeping (owned by the sync orchestrator)
    last_sync_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the last successful sync completed"
    )
    sync_watermark = Column(
        String(64),
        nullable=True,
        comment="Incremental sync watermark (remote updated_at, raw)"
    )
    sync_cursors = Column(
        JSON,
        nullable=True,
        comment="Per-resource watermark map, e.g. {'orders': '2024-01-01T00:00:00Z'}"
    )
    sync_in_progress = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Set while a sync run holds this store"
    )
    sync_started_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the run holding the lock started"
    )
    current_run_id = Column(
        String(36),
        nullable=True,
        comment="SyncRun holding the lock"
    )

    __table_args__ = (
        Index("ix_shopify_stores_tenant_status", "tenant_id", "status"),
        UniqueConstraint("tenant_id", "shop_domain", name="uq_shopify_stores_tenant_domain"),
    )

    def __repr__(self) -> str:
        return f"<ShopifyStore(id={self.id}, shop_domain={self.shop_domain}, tenant_id={self.tenant_id})>"

    @property
    def is_connected(self) -> bool:
        """Check if store is currently connected."""
        return self.status == StoreStatus.CONNECTED

    @property
    def has_valid_token(self) -> bool:
        """Check if store has an access token and has not been disconnected."""
        return bool(self.access_token_encrypted) and self.status != StoreStatus.DISCONNECTED

    def to_dict(self) -> dict:
        """Serialize store without credentials."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "shop_domain": self.shop_domain,
            "shopify_shop_id": self.shopify_shop_id,
            "shop_name": self.shop_name,
            "shop_email": self.shop_email,
            "currency": self.currency,
            "timezone": self.timezone,
            "status": self.status,
            "is_connected": self.is_connected,
            "sync_frequency": self.sync_frequency,
            "store_settings": self.store_settings or {},
            "webhook_endpoints": self.webhook_endpoints or [],
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "sync_watermark": self.sync_watermark,
            "sync_in_progress": bool(self.sync_in_progress),
            "disconnected_at": self.disconnected_at.isoformat() if self.disconnected_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
