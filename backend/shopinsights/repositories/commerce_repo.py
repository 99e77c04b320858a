"""
Commerce repository: tenant-scoped persistence for synced Shopify records.

CRITICAL: All database operations are scoped to the repository tenant_id.
No query can read or write another tenant's rows.

Idempotency:
- At most one row per (tenant_id, store_id, remote id), enforced by a unique
  constraint and INSERT ... ON CONFLICT DO NOTHING.
- Updates are last-writer-wins, except that an incoming record whose remote
  updated_at is strictly older than the stored one is skipped.

The repository flushes but never commits; callers own the transaction.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopinsights.models.customer import Customer
from shopinsights.models.order import Order, OrderItem
from shopinsights.models.product import Product
from shopinsights.services.transformers import REMOTE_ID_COLUMNS, parse_remote_timestamp

logger = logging.getLogger(__name__)

MODELS = {
    "orders": Order,
    "customers": Customer,
    "products": Product,
}

# Columns never overwritten by an update
IMMUTABLE_COLUMNS = frozenset({"id", "tenant_id", "store_id", "created_at", "updated_at"})


class PersistenceError(Exception):
    """Raised when a database operation fails."""

    def __init__(self, message: str, resource: Optional[str] = None, remote_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.remote_id = remote_id


class TenantIsolationError(Exception):
    """Raised when tenant isolation is violated."""
    pass


class UpsertOutcome(str, Enum):
    """What an upsert did."""
    CREATED = "created"
    UPDATED = "updated"
    STALE = "stale"


def _column_names(model) -> frozenset:
    return frozenset(attr.key for attr in sa_inspect(model).column_attrs)


_ORDER_ITEM_COLUMNS = _column_names(OrderItem)


class CommerceRepository:
    """
    Tenant-scoped access to orders, customers and products.

    Args:
        db_session: SQLAlchemy database session
        tenant_id: Tenant identifier (from the bearer token, never from request)
    """

    def __init__(self, db_session: Session, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id is required and cannot be empty")
        self.db_session = db_session
        self.tenant_id = tenant_id

    @staticmethod
    def _model_for(resource: str):
        try:
            return MODELS[resource]
        except KeyError:
            raise ValueError(f"Unsupported resource: {resource}")

    def _validate_tenant_id(self, tenant_id: Optional[str], operation: str) -> None:
        """Reject values carrying a different tenant_id."""
        if tenant_id and tenant_id != self.tenant_id:
            logger.error(
                "Tenant ID mismatch detected",
                extra={
                    "repository_tenant_id": self.tenant_id,
                    "provided_tenant_id": tenant_id,
                    "operation": operation,
                }
            )
            raise TenantIsolationError(
                f"Tenant ID mismatch: repository scoped to {self.tenant_id}, "
                f"but operation attempted with {tenant_id}"
            )

    def _scoped_query(self, model, store_id: str):
        return self.db_session.query(model).filter(
            model.tenant_id == self.tenant_id,
            model.store_id == store_id,
        )

    def _insert_if_absent(self, model, remote_column: str, row: Dict[str, Any]) -> bool:
        """
        Atomically create the row unless the (tenant, store, remote id) triple exists.

        Returns True when a row was inserted.
        """
        dialect = self.db_session.get_bind().dialect.name
        index_elements = ["tenant_id", "store_id", remote_column]

        if dialect == "postgresql":
            stmt = pg_insert(model).values(**row).on_conflict_do_nothing(index_elements=index_elements)
        elif dialect == "sqlite":
            stmt = sqlite_insert(model).values(**row).on_conflict_do_nothing(index_elements=index_elements)
        else:
            existing = self._scoped_query(model, row["store_id"]).filter(
                getattr(model, remote_column) == row[remote_column]
            ).first()
            if existing is not None:
                return False
            self.db_session.add(model(**row))
            self.db_session.flush()
            return True

        result = self.db_session.execute(stmt)
        return result.rowcount == 1

    def upsert(self, resource: str, store_id: str, values: Dict[str, Any]) -> UpsertOutcome:
        """
        Create or update one record from transformed values.

        Args:
            resource: orders, customers or products
            store_id: Local store id
            values: Output of the matching transformer

        Returns:
            UpsertOutcome.CREATED, UPDATED or STALE (older than stored row)

        Raises:
            ValueError: Unknown resource or missing remote id
            TenantIsolationError: values belong to another tenant
            PersistenceError: Database failure
        """
        model = self._model_for(resource)
        remote_column = REMOTE_ID_COLUMNS[resource]
        remote_id = values.get(remote_column)
        if not remote_id:
            raise ValueError(f"{resource} record has no remote id")
        self._validate_tenant_id(values.get("tenant_id"), "upsert")

        columns = _column_names(model)
        row = {k: v for k, v in values.items() if k in columns}
        row.update({"tenant_id": self.tenant_id, "store_id": store_id, remote_column: remote_id})
        line_items = values.get("line_items") if resource == "orders" else None

        try:
            created = self._insert_if_absent(model, remote_column, row)

            entity = self._scoped_query(model, store_id).filter(
                getattr(model, remote_column) == remote_id
            ).populate_existing().one()

            if created:
                outcome = UpsertOutcome.CREATED
            else:
                stored_at = parse_remote_timestamp(entity.shopify_updated_at)
                incoming_at = parse_remote_timestamp(row.get("shopify_updated_at"))
                if stored_at is not None and incoming_at is not None and incoming_at < stored_at:
                    logger.debug(
                        "Skipping stale record",
                        extra={
                            "tenant_id": self.tenant_id,
                            "store_id": store_id,
                            "resource": resource,
                            "remote_id": remote_id,
                        }
                    )
                    return UpsertOutcome.STALE

                for key, value in row.items():
                    if key not in IMMUTABLE_COLUMNS:
                        setattr(entity, key, value)
                outcome = UpsertOutcome.UPDATED

            if line_items is not None:
                self._reconcile_line_items(entity, line_items)

            self.db_session.flush()
            return outcome
        except SQLAlchemyError as e:
            logger.error(
                "Failed to upsert record",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "resource": resource,
                    "remote_id": remote_id,
                    "error": str(e),
                }
            )
            raise PersistenceError(
                f"Failed to upsert {resource} {remote_id}: {e}",
                resource=resource,
                remote_id=remote_id,
            ) from e

    def _reconcile_line_items(self, order: Order, items) -> None:
        """Make the order's line items match the incoming list."""
        existing = {
            item.shopify_line_item_id: item
            for item in order.line_items
            if item.shopify_line_item_id is not None
        }
        keep = []
        for values in items:
            item_values = {k: v for k, v in values.items() if k in _ORDER_ITEM_COLUMNS}
            item_values.pop("order_id", None)
            current = existing.pop(item_values.get("shopify_line_item_id"), None)
            if current is None:
                current = OrderItem(**item_values)
            else:
                for key, value in item_values.items():
                    if key != "id":
                        setattr(current, key, value)
            keep.append(current)

        # Items absent from the incoming list are orphaned and deleted
        order.line_items = keep

    def delete(self, resource: str, store_id: str, remote_id: str) -> bool:
        """
        Delete a record by remote id. Order line items go with their order.

        Returns:
            True if deleted, False if no such row
        """
        model = self._model_for(resource)
        remote_column = REMOTE_ID_COLUMNS[resource]

        try:
            entity = self._scoped_query(model, store_id).filter(
                getattr(model, remote_column) == str(remote_id)
            ).first()
            if entity is None:
                return False
            self.db_session.delete(entity)
            self.db_session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to delete record",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "resource": resource,
                    "remote_id": remote_id,
                    "error": str(e),
                }
            )
            raise PersistenceError(
                f"Failed to delete {resource} {remote_id}: {e}",
                resource=resource,
                remote_id=str(remote_id),
            ) from e

        logger.info(
            "Record deleted",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store_id,
                "resource": resource,
                "remote_id": remote_id,
            }
        )
        return True

    def get(self, resource: str, store_id: str, remote_id: str):
        """Get a record by remote id, or None."""
        model = self._model_for(resource)
        remote_column = REMOTE_ID_COLUMNS[resource]
        return self._scoped_query(model, store_id).filter(
            getattr(model, remote_column) == str(remote_id)
        ).first()

    def count(self, resource: str, store_id: str) -> int:
        """Count a store's records of one resource."""
        model = self._model_for(resource)
        return self._scoped_query(model, store_id).count()
