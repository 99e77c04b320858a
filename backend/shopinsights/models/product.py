"""
Product model: local copy of a Shopify product.

Price and inventory columns mirror the product's first variant.
"""

from sqlalchemy import Column, String, Text, Integer, Numeric, JSON, Index, UniqueConstraint

from shopinsights.db_base import Base
from shopinsights.models.base import (
    TimestampMixin, TenantScopedMixin, StoreScopedMixin, generate_uuid
)


class Product(Base, TimestampMixin, TenantScopedMixin, StoreScopedMixin):
    """Shopify product copied into tenant storage."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    shopify_product_id = Column(String(64), nullable=False, comment="Remote product id")

    title = Column(String(512), nullable=True)
    body_html = Column(Text, nullable=True)
    vendor = Column(String(255), nullable=True)
    product_type = Column(String(255), nullable=True)
    handle = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)
    published_scope = Column(String(50), nullable=True)
    published_at = Column(String(64), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    variants = Column(JSON, nullable=False, default=list)
    options = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)
    image = Column(JSON, nullable=False, default=dict)

    price = Column(Numeric(14, 2), nullable=False, default=0)
    compare_at_price = Column(Numeric(14, 2), nullable=False, default=0)
    inventory_quantity = Column(Integer, nullable=False, default=0)
    inventory_policy = Column(String(50), nullable=True)
    inventory_management = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "store_id", "shopify_product_id",
            name="uq_products_tenant_store_remote"
        ),
        Index("ix_products_tenant_store_updated", "tenant_id", "store_id", "shopify_updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, shopify_product_id={self.shopify_product_id}, store_id={self.store_id})>"
