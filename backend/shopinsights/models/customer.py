"""
Customer model: local copy of a Shopify customer.
"""

from sqlalchemy import Column, String, Text, Integer, Boolean, Numeric, JSON, Index, UniqueConstraint

from shopinsights.db_base import Base
from shopinsights.models.base import (
    TimestampMixin, TenantScopedMixin, StoreScopedMixin, generate_uuid
)


class Customer(Base, TimestampMixin, TenantScopedMixin, StoreScopedMixin):
    """Shopify customer copied into tenant storage."""

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    shopify_customer_id = Column(String(64), nullable=False, comment="Remote customer id")

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(64), nullable=True)
    state = Column(String(50), nullable=True)
    total_spent = Column(Numeric(14, 2), nullable=False, default=0)
    orders_count = Column(Integer, nullable=False, default=0)
    last_order_id = Column(String(64), nullable=True)
    last_order_name = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    verified_email = Column(Boolean, nullable=True)
    tax_exempt = Column(Boolean, nullable=True)
    currency = Column(String(10), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    addresses = Column(JSON, nullable=False, default=list)
    default_address = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "store_id", "shopify_customer_id",
            name="uq_customers_tenant_store_remote"
        ),
        Index("ix_customers_tenant_store_updated", "tenant_id", "store_id", "shopify_updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, shopify_customer_id={self.shopify_customer_id}, store_id={self.store_id})>"
