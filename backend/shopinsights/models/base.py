"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- TenantScopedMixin: tenant_id for multi-tenant isolation
- StoreScopedMixin: store_id foreign key for rows copied from a connected store
- generate_uuid / stable_uuid: primary key generation
"""

import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, func
from sqlalchemy.orm import declared_attr

# Namespace for deterministic local ids of synced records
LOCAL_ID_NAMESPACE = uuid.UUID("5b0c1f8e-4d2a-4e57-9a43-2f0d7c6e9b11")


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def stable_uuid(*parts) -> str:
    """
    Generate a UUID5 string from the given parts.

    The same parts always yield the same id, so a record synced twice
    keeps the same local identifier.
    """
    name = ":".join(str(part) for part in parts)
    return str(uuid.uuid5(LOCAL_ID_NAMESPACE, name))


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Timestamp when record was last updated"
    )


class TenantScopedMixin:
    """
    Mixin that adds tenant_id column for multi-tenant isolation.

    SECURITY: tenant_id is ONLY extracted from the bearer token.
    NEVER accept tenant_id from client input (body/query/path).
    """

    @declared_attr
    def tenant_id(cls):
        return Column(
            String(255),
            nullable=False,
            index=True,
            comment="Tenant identifier from token org_id. NEVER from client input."
        )


class StoreScopedMixin:
    """Mixin that links a synced record to the store it was copied from."""

    @declared_attr
    def store_id(cls):
        return Column(
            String(36),
            ForeignKey("shopify_stores.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
            comment="Local ShopifyStore id"
        )

    @declared_attr
    def shopify_created_at(cls):
        return Column(
            String(64),
            nullable=True,
            comment="Remote created_at, stored exactly as received"
        )

    @declared_attr
    def shopify_updated_at(cls):
        return Column(
            String(64),
            nullable=True,
            comment="Remote updated_at, stored exactly as received"
        )
