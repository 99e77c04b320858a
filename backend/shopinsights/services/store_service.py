"""
Store management service.

Connects Shopify stores to a tenant, keeps their settings, tests
connectivity and registers webhooks.

SECURITY:
- All operations are tenant-scoped via tenant_id from the bearer token
- Access tokens are encrypted before storage and cleared on disconnect
- Access tokens are never logged or returned
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopinsights.config.sync_settings import get_sync_settings
from shopinsights.integrations.shopify.client import ShopifyClient, SUPPORTED_RESOURCES
from shopinsights.integrations.shopify.exceptions import ShopifyError
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.platform.secrets import EncryptionError, encrypt_secret, decrypt_secret
from shopinsights.repositories.commerce_repo import PersistenceError
from shopinsights.services.webhook_ingestor import WebhookTopic

logger = logging.getLogger(__name__)

MYSHOPIFY_SUFFIX = ".myshopify.com"
_SHOP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")

# Fields a tenant may change through update_store
UPDATABLE_FIELDS = ("sync_frequency", "store_settings", "webhook_endpoints")


class StoreServiceError(Exception):
    """Base exception for store service errors."""
    pass


class StoreValidationError(StoreServiceError):
    """Input failed validation (missing fields, bad domain)."""
    pass


class StoreNotFoundError(StoreServiceError):
    """Store not found within tenant scope."""
    pass


class StoreAlreadyConnectedError(StoreServiceError):
    """Tenant already has this shop connected."""
    pass


def normalize_shop_domain(shop_domain: str) -> str:
    """
    Normalise user input to <name>.myshopify.com.

    Accepts "mystore", "mystore.myshopify.com" or a full https URL.

    Raises:
        StoreValidationError: Empty or malformed domain
    """
    domain = (shop_domain or "").strip().lower()
    domain = re.sub(r"^https?://", "", domain)
    domain = domain.split("/", 1)[0]

    if domain.endswith(MYSHOPIFY_SUFFIX):
        name = domain[: -len(MYSHOPIFY_SUFFIX)]
    else:
        name = domain

    if not name or not _SHOP_NAME_RE.match(name):
        raise StoreValidationError(f"Invalid shop domain: {shop_domain!r}")
    return f"{name}{MYSHOPIFY_SUFFIX}"


def webhook_callback_url(base_url: str, store_id: str, topic: str) -> str:
    """Callback address for one topic, e.g. .../{store_id}/orders-create."""
    slug = topic.replace("/", "-")
    return f"{base_url.rstrip('/')}/api/webhooks/shopify/{store_id}/{slug}"


class StoreService:
    """
    Tenant-scoped store management.

    Args:
        db_session: Database session
        tenant_id: Tenant ID from the bearer token (org_id)
        client_factory: Builds a Shopify client from (shop_domain, access_token)
    """

    def __init__(
        self,
        db_session: Session,
        tenant_id: str,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.db = db_session
        self.tenant_id = tenant_id
        self.client_factory = client_factory or ShopifyClient

    def _commit(self, operation: str, store_id: Optional[str] = None) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to save store",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "operation": operation,
                    "error": str(e),
                },
            )
            raise PersistenceError(f"Failed to {operation} store: {e}") from e

    def list_stores(self) -> List[ShopifyStore]:
        """All stores of the tenant, newest first."""
        return (
            self.db.query(ShopifyStore)
            .filter(ShopifyStore.tenant_id == self.tenant_id)
            .order_by(ShopifyStore.created_at.desc())
            .all()
        )

    def get_store(self, store_id: str) -> ShopifyStore:
        """
        Get a store of the tenant.

        Raises:
            StoreNotFoundError: No such store for this tenant
        """
        store = (
            self.db.query(ShopifyStore)
            .filter(
                ShopifyStore.id == store_id,
                ShopifyStore.tenant_id == self.tenant_id,
            )
            .first()
        )
        if store is None:
            raise StoreNotFoundError(f"Store {store_id} not found")
        return store

    async def get_client(self, store: ShopifyStore):
        """
        Build a client for the store with its decrypted credential.

        Raises:
            StoreValidationError: Store has no credential (disconnected)
            EncryptionError: Credential cannot be decrypted
        """
        if not store.has_valid_token:
            raise StoreValidationError(f"Store {store.id} has no access token")
        access_token = await decrypt_secret(store.access_token_encrypted)
        return self.client_factory(shop_domain=store.shop_domain, access_token=access_token)

    async def connect_store(self, shop_domain: str, access_token: str) -> ShopifyStore:
        """
        Verify a credential and connect the store to the tenant.

        A previously disconnected (or failed) store is reconnected in place.

        Raises:
            StoreValidationError: Missing domain or token
            StoreAlreadyConnectedError: Store already connected for this tenant
            ShopifyAuthError: Credential rejected or shop unknown
            ShopifyRemoteError: Shopify unreachable or erroring
        """
        if not shop_domain or not access_token:
            raise StoreValidationError("Shop domain and access token are required")

        domain = normalize_shop_domain(shop_domain)

        store = (
            self.db.query(ShopifyStore)
            .filter(
                ShopifyStore.tenant_id == self.tenant_id,
                ShopifyStore.shop_domain == domain,
            )
            .first()
        )
        if store is not None and store.status == StoreStatus.CONNECTED:
            raise StoreAlreadyConnectedError(f"Store {domain} is already connected")

        client = self.client_factory(shop_domain=domain, access_token=access_token)
        try:
            shop = await client.verify()
        finally:
            await client.close()

        encrypted_token = await encrypt_secret(access_token)

        if store is None:
            store = ShopifyStore(tenant_id=self.tenant_id, shop_domain=domain)
            self.db.add(store)

        store.access_token_encrypted = encrypted_token
        store.shopify_shop_id = shop.shop_id
        store.shop_name = shop.name
        store.shop_email = shop.email
        store.currency = shop.currency or store.currency or "USD"
        store.timezone = shop.timezone
        store.status = StoreStatus.CONNECTED
        store.disconnected_at = None

        self._commit("connect", store.id)
        self.db.refresh(store)

        logger.info(
            "Store connected",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store.id,
                "shop_domain": domain,
            },
        )
        return store

    def update_store(self, store_id: str, settings: Dict[str, Any]) -> ShopifyStore:
        """
        Update whitelisted store settings; other keys are ignored.

        Raises:
            StoreNotFoundError: No such store for this tenant
        """
        store = self.get_store(store_id)

        changed = []
        for key in UPDATABLE_FIELDS:
            if key in settings:
                setattr(store, key, settings[key])
                changed.append(key)

        self._commit("update", store_id)
        self.db.refresh(store)

        logger.info(
            "Store settings updated",
            extra={"tenant_id": self.tenant_id, "store_id": store_id, "fields": changed},
        )
        return store

    def disconnect_store(self, store_id: str) -> ShopifyStore:
        """
        Soft-disconnect a store: clear the credential, keep synced data.

        Raises:
            StoreNotFoundError: No such store for this tenant
        """
        store = self.get_store(store_id)

        store.status = StoreStatus.DISCONNECTED
        store.access_token_encrypted = None
        store.disconnected_at = datetime.now(timezone.utc)

        self._commit("disconnect", store_id)
        self.db.refresh(store)

        logger.info(
            "Store disconnected",
            extra={"tenant_id": self.tenant_id, "store_id": store_id, "shop_domain": store.shop_domain},
        )
        return store

    async def test_connection(self, store_id: str) -> Dict[str, Any]:
        """
        Verify the stored credential and report remote record counts.

        Remote failures are reported in the result, not raised.

        Raises:
            StoreNotFoundError: No such store for this tenant
        """
        store = self.get_store(store_id)
        tested_at = datetime.now(timezone.utc).isoformat()

        try:
            client = await self.get_client(store)
        except (StoreValidationError, EncryptionError) as e:
            logger.warning(
                "Store connection test could not build client",
                extra={"tenant_id": self.tenant_id, "store_id": store_id, "error": str(e)},
            )
            return {"status": "failed", "error": str(e), "last_tested": tested_at}

        try:
            shop = await client.verify()
            counts = {}
            for resource in SUPPORTED_RESOURCES:
                counts[resource] = await client.count(resource)
        except ShopifyError as e:
            logger.error(
                "Shopify connection test failed",
                extra={"tenant_id": self.tenant_id, "store_id": store_id, "error": e.message},
            )
            return {"status": "failed", "error": e.message, "last_tested": tested_at}
        finally:
            await client.close()

        return {
            "status": "connected",
            "shop": {
                "id": shop.shop_id,
                "name": shop.name,
                "domain": shop.domain,
                "currency": shop.currency,
                "timezone": shop.timezone,
            },
            "data_available": counts,
            "last_tested": tested_at,
        }

    async def setup_webhooks(self, store_id: str) -> List[Dict[str, Any]]:
        """
        Register every supported webhook topic for the store.

        Topics that fail to register are logged and skipped. The created
        descriptors are saved on the store.

        Raises:
            StoreNotFoundError: No such store for this tenant
            StoreValidationError: WEBHOOK_BASE_URL not configured, or no credential
        """
        store = self.get_store(store_id)
        base_url = get_sync_settings().webhook_base_url
        if not base_url:
            raise StoreValidationError("WEBHOOK_BASE_URL is not configured")

        client = await self.get_client(store)
        created = []
        try:
            for topic in WebhookTopic:
                address = webhook_callback_url(base_url, store.id, topic.value)
                try:
                    descriptor = await client.register_webhook(topic.value, address)
                except ShopifyError as e:
                    logger.error(
                        "Webhook registration failed",
                        extra={
                            "tenant_id": self.tenant_id,
                            "store_id": store_id,
                            "topic": topic.value,
                            "error": e.message,
                        },
                    )
                    continue
                created.append(descriptor.to_dict())
        finally:
            await client.close()

        store.webhook_endpoints = created
        self._commit("setup webhooks for", store_id)

        logger.info(
            "Webhooks set up",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store_id,
                "registered": len(created),
                "requested": len(WebhookTopic),
            },
        )
        return created

    async def list_webhooks(self, store_id: str) -> List[Dict[str, Any]]:
        """
        List webhook subscriptions registered on the shop.

        Raises:
            StoreNotFoundError: No such store for this tenant
            ShopifyError: Remote failure
        """
        store = self.get_store(store_id)
        client = await self.get_client(store)
        try:
            webhooks = await client.list_webhooks()
        finally:
            await client.close()
        return [w.to_dict() for w in webhooks]
