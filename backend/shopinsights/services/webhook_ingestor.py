"""
Webhook ingestion: applies single-record Shopify push notifications.

Supported topics (closed set):
    orders/create, orders/updated, orders/delete
    customers/create, customers/update, customers/delete
    products/create, products/update, products/delete

Create and update topics go through the same transformer and upsert as the
sync orchestrator, so an update that arrives before its create still
produces exactly one row. Delete topics remove the row if present.

The ingestor never raises: every outcome is reported as an IngestResult
and each event is committed (or rolled back) on its own.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.repositories.commerce_repo import CommerceRepository, UpsertOutcome
from shopinsights.services.transformers import remote_id_of, transform

logger = logging.getLogger(__name__)


class WebhookAction(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class WebhookTopic(str, Enum):
    """Shopify webhook topics this service handles."""

    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_DELETE = "orders/delete"
    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATE = "customers/update"
    CUSTOMERS_DELETE = "customers/delete"
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATE = "products/update"
    PRODUCTS_DELETE = "products/delete"

    @property
    def resource(self) -> str:
        return self.value.split("/", 1)[0]

    @property
    def action(self) -> WebhookAction:
        if self.value.endswith("/delete"):
            return WebhookAction.DELETE
        return WebhookAction.UPSERT

    @property
    def slug(self) -> str:
        """URL form used in callback addresses, e.g. orders-create."""
        return self.value.replace("/", "-")

    @classmethod
    def parse(cls, value: Optional[str]) -> "WebhookTopic":
        """
        Accept either "orders/create" or the slug "orders-create".

        Raises:
            UnsupportedWebhookTopic: Anything outside the supported set
        """
        normalized = (value or "").strip().lower().replace("-", "/", 1)
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedWebhookTopic(value)


class UnsupportedWebhookTopic(ValueError):
    """Raised for a topic outside the supported set."""

    def __init__(self, topic: Optional[str]):
        super().__init__(f"Unsupported webhook topic: {topic!r}")
        self.topic = topic


class IngestStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class WebhookEvent:
    """A webhook parsed once at the boundary."""

    topic: WebhookTopic
    payload: Dict[str, Any]
    remote_id: Optional[str] = None

    @property
    def resource(self) -> str:
        return self.topic.resource

    @property
    def action(self) -> WebhookAction:
        return self.topic.action


@dataclass
class IngestResult:
    """Outcome of applying one webhook."""

    status: IngestStatus
    store_id: str
    topic: Optional[str] = None
    remote_id: Optional[str] = None
    reason: Optional[str] = None
    outcome: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "store_id": self.store_id,
            "topic": self.topic,
            "remote_id": self.remote_id,
            "reason": self.reason,
            "outcome": self.outcome,
        }


def parse_webhook_event(topic: Optional[str], payload: Any) -> WebhookEvent:
    """
    Build a WebhookEvent from a raw topic header and decoded JSON body.

    Raises:
        UnsupportedWebhookTopic: Unknown topic
        ValueError: Body is not a JSON object
    """
    parsed_topic = WebhookTopic.parse(topic)
    if not isinstance(payload, dict):
        raise ValueError("Webhook payload must be a JSON object")
    return WebhookEvent(
        topic=parsed_topic,
        payload=payload,
        remote_id=remote_id_of(payload.get("id")),
    )


class WebhookIngestor:
    """Applies webhook events to tenant storage."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _get_store(self, store_id: str) -> Optional[ShopifyStore]:
        return self.db.query(ShopifyStore).filter(ShopifyStore.id == store_id).first()

    def ingest(self, store_id: str, topic: Optional[str], payload: Any) -> IngestResult:
        """
        Apply one webhook. Never raises.

        Args:
            store_id: Local store id from the callback URL
            topic: X-Shopify-Topic value (or URL slug)
            payload: Decoded JSON body
        """
        try:
            event = parse_webhook_event(topic, payload)
        except ValueError as e:
            # UnsupportedWebhookTopic is a ValueError too
            logger.warning(
                "Rejected webhook",
                extra={"store_id": store_id, "topic": topic, "error": str(e)},
            )
            return IngestResult(
                status=IngestStatus.FAILED,
                store_id=store_id,
                topic=topic,
                reason=str(e),
            )

        result = IngestResult(
            status=IngestStatus.PROCESSED,
            store_id=store_id,
            topic=event.topic.value,
            remote_id=event.remote_id,
        )

        try:
            store = self._get_store(store_id)
            if store is None or store.status == StoreStatus.DISCONNECTED:
                result.status = IngestStatus.SKIPPED
                result.reason = "store not found" if store is None else "store disconnected"
                logger.info(
                    "Webhook skipped",
                    extra={"store_id": store_id, "topic": event.topic.value, "reason": result.reason},
                )
                return result

            if event.remote_id is None:
                result.status = IngestStatus.SKIPPED
                result.reason = "payload has no id"
                logger.warning(
                    "Webhook payload missing id",
                    extra={"tenant_id": store.tenant_id, "store_id": store_id, "topic": event.topic.value},
                )
                return result

            repository = CommerceRepository(self.db, store.tenant_id)

            if event.action == WebhookAction.DELETE:
                deleted = repository.delete(event.resource, store.id, event.remote_id)
                result.outcome = "deleted" if deleted else "absent"
            else:
                values = transform(event.resource, event.payload, store.tenant_id, store.id)
                outcome = repository.upsert(event.resource, store.id, values)
                result.outcome = outcome.value
                if outcome == UpsertOutcome.STALE:
                    result.reason = "older than stored record"

            self.db.commit()

            logger.info(
                "Webhook processed",
                extra={
                    "tenant_id": store.tenant_id,
                    "store_id": store_id,
                    "topic": event.topic.value,
                    "remote_id": event.remote_id,
                    "outcome": result.outcome,
                },
            )
            return result

        except Exception as e:
            self.db.rollback()
            logger.error(
                "Webhook processing failed",
                extra={
                    "store_id": store_id,
                    "topic": event.topic.value,
                    "remote_id": event.remote_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            result.status = IngestStatus.FAILED
            result.reason = str(e)
            return result

