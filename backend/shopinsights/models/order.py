"""
Order and OrderItem models: local copies of Shopify orders.

Each order is unique per (tenant_id, store_id, shopify_order_id).
Line items have no lifecycle of their own and go away with their order.
"""

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, Numeric, JSON, ForeignKey,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from shopinsights.db_base import Base
from shopinsights.models.base import (
    TimestampMixin, TenantScopedMixin, StoreScopedMixin, generate_uuid
)


class Order(Base, TimestampMixin, TenantScopedMixin, StoreScopedMixin):
    """Shopify order copied into tenant storage."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    shopify_order_id = Column(String(64), nullable=False, comment="Remote order id")

    order_number = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    customer_remote_id = Column(String(64), nullable=True, index=True)
    financial_status = Column(String(50), nullable=True)
    fulfillment_status = Column(String(50), nullable=True)
    currency = Column(String(10), nullable=True)

    total_price = Column(Numeric(14, 2), nullable=False, default=0)
    subtotal_price = Column(Numeric(14, 2), nullable=False, default=0)
    total_tax = Column(Numeric(14, 2), nullable=False, default=0)
    total_discounts = Column(Numeric(14, 2), nullable=False, default=0)
    total_weight = Column(Integer, nullable=False, default=0)
    taxes_included = Column(Boolean, nullable=True)

    confirmed = Column(Boolean, nullable=True)
    test = Column(Boolean, nullable=False, default=False)
    gateway = Column(String(100), nullable=True)
    source_name = Column(String(100), nullable=True)
    landing_site = Column(Text, nullable=True)
    referring_site = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    processed_at = Column(String(64), nullable=True)
    cancelled_at = Column(String(64), nullable=True)

    line_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "store_id", "shopify_order_id",
            name="uq_orders_tenant_store_remote"
        ),
        Index("ix_orders_tenant_store_updated", "tenant_id", "store_id", "shopify_updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, shopify_order_id={self.shopify_order_id}, store_id={self.store_id})>"


class OrderItem(Base):
    """Line item of an order."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shopify_line_item_id = Column(String(64), nullable=True)
    shopify_product_id = Column(String(64), nullable=True, index=True)
    shopify_variant_id = Column(String(64), nullable=True)

    title = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    variant_title = Column(String(255), nullable=True)
    vendor = Column(String(255), nullable=True)
    product_type = Column(String(255), nullable=True)
    sku = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(14, 2), nullable=False, default=0)
    total_discount = Column(Numeric(14, 2), nullable=False, default=0)
    grams = Column(Integer, nullable=False, default=0)
    taxable = Column(Boolean, nullable=True)
    requires_shipping = Column(Boolean, nullable=True)
    fulfillment_status = Column(String(50), nullable=True)
    fulfillment_service = Column(String(100), nullable=True)
    properties = Column(JSON, nullable=False, default=list)

    order = relationship("Order", back_populates="line_items")

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, sku={self.sku})>"
