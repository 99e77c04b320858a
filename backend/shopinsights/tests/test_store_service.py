"""
Tests for StoreService.

CRITICAL: These tests verify that:
1. Shop domains are normalised and validated
2. Connecting verifies the credential and stores it encrypted
3. Disconnect clears the credential but keeps the row
4. Every operation is scoped to the caller's tenant
"""

import pytest

from shopinsights.config.sync_settings import reset_sync_settings
from shopinsights.integrations.shopify.exceptions import ShopifyAuthError
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.platform.secrets import decrypt_secret
from shopinsights.services.store_service import (
    StoreAlreadyConnectedError,
    StoreNotFoundError,
    StoreService,
    StoreValidationError,
    normalize_shop_domain,
    webhook_callback_url,
)
from shopinsights.services.webhook_ingestor import WebhookTopic

from mocks import FakeShopifyClient

NEW_TOKEN = "shpat_" + "c" * 32


@pytest.fixture
def service(db_session, tenant_id, fake_client):
    return StoreService(db_session, tenant_id, client_factory=fake_client.factory)


# =============================================================================
# Domain handling
# =============================================================================

class TestNormalizeShopDomain:

    @pytest.mark.parametrize("raw", [
        "mystore",
        "mystore.myshopify.com",
        "  MyStore.myshopify.com ",
        "https://mystore.myshopify.com/admin",
        "http://mystore",
    ])
    def test_accepted_forms(self, raw):
        assert normalize_shop_domain(raw) == "mystore.myshopify.com"

    @pytest.mark.parametrize("raw", ["", None, ".myshopify.com", "my store", "-bad", "shop_name"])
    def test_rejected_forms(self, raw):
        with pytest.raises(StoreValidationError):
            normalize_shop_domain(raw)

    def test_callback_url_uses_topic_slug(self):
        url = webhook_callback_url("https://app.example.com/", "s1", "orders/create")
        assert url == "https://app.example.com/api/webhooks/shopify/s1/orders-create"


# =============================================================================
# Connect / update / disconnect
# =============================================================================

class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_new_store(self, service, db_session, tenant_id, fake_client):
        store = await service.connect_store("my-shop", NEW_TOKEN)

        assert store.tenant_id == tenant_id
        assert store.shop_domain == "my-shop.myshopify.com"
        assert store.status == StoreStatus.CONNECTED
        assert store.shopify_shop_id == "12345678"
        assert store.currency == "EUR"
        assert store.timezone == "Europe/Berlin"
        assert store.access_token_encrypted != NEW_TOKEN
        assert await decrypt_secret(store.access_token_encrypted) == NEW_TOKEN
        assert fake_client.created_with == [{"shop_domain": "my-shop.myshopify.com", "access_token": NEW_TOKEN}]
        assert fake_client.close_count == 1

    @pytest.mark.asyncio
    async def test_token_never_serialised(self, service):
        store = await service.connect_store("my-shop", NEW_TOKEN)

        data = store.to_dict()
        assert "access_token_encrypted" not in data
        assert NEW_TOKEN not in str(data)

    @pytest.mark.asyncio
    async def test_rejected_credential_creates_nothing(self, db_session, tenant_id):
        fake = FakeShopifyClient(verify_error=ShopifyAuthError())
        service = StoreService(db_session, tenant_id, client_factory=fake.factory)

        with pytest.raises(ShopifyAuthError):
            await service.connect_store("my-shop", NEW_TOKEN)

        assert db_session.query(ShopifyStore).count() == 0
        assert fake.close_count == 1

    @pytest.mark.asyncio
    async def test_already_connected(self, service, store):
        with pytest.raises(StoreAlreadyConnectedError):
            await service.connect_store(store.shop_domain, NEW_TOKEN)

    @pytest.mark.asyncio
    async def test_same_domain_other_tenant_is_separate(self, db_session, other_tenant_id, store, fake_client):
        other = StoreService(db_session, other_tenant_id, client_factory=fake_client.factory)

        connected = await other.connect_store(store.shop_domain, NEW_TOKEN)

        assert connected.id != store.id
        assert connected.tenant_id == other_tenant_id

    @pytest.mark.asyncio
    async def test_reconnect_disconnected_store_in_place(self, service, db_session, store):
        service.disconnect_store(store.id)

        reconnected = await service.connect_store(store.shop_domain, NEW_TOKEN)

        assert reconnected.id == store.id
        assert reconnected.status == StoreStatus.CONNECTED
        assert reconnected.disconnected_at is None
        assert await decrypt_secret(reconnected.access_token_encrypted) == NEW_TOKEN
        assert db_session.query(ShopifyStore).count() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("domain,token", [("", NEW_TOKEN), ("my-shop", ""), (None, None)])
    async def test_missing_input(self, service, domain, token):
        with pytest.raises(StoreValidationError):
            await service.connect_store(domain, token)


class TestUpdateAndDisconnect:

    def test_update_whitelisted_fields(self, service, store):
        updated = service.update_store(store.id, {
            "sync_frequency": "daily",
            "store_settings": {"report_currency": "USD"},
            "sync_watermark": "2030-01-01T00:00:00Z",
            "tenant_id": "org_attacker",
        })

        assert updated.sync_frequency == "daily"
        assert updated.store_settings == {"report_currency": "USD"}
        assert updated.sync_watermark is None
        assert updated.tenant_id == store.tenant_id

    def test_disconnect_clears_credential(self, service, store):
        disconnected = service.disconnect_store(store.id)

        assert disconnected.status == StoreStatus.DISCONNECTED
        assert disconnected.access_token_encrypted is None
        assert disconnected.disconnected_at is not None
        assert disconnected.has_valid_token is False

    def test_list_and_get_are_tenant_scoped(self, db_session, tenant_id, other_tenant_id, store, make_store):
        make_store(other_tenant_id, shop_domain="elsewhere.myshopify.com")

        mine = StoreService(db_session, tenant_id)
        theirs = StoreService(db_session, other_tenant_id)

        assert [s.id for s in mine.list_stores()] == [store.id]
        with pytest.raises(StoreNotFoundError):
            theirs.get_store(store.id)
        with pytest.raises(StoreNotFoundError):
            theirs.disconnect_store(store.id)

    def test_requires_tenant(self, db_session):
        with pytest.raises(ValueError):
            StoreService(db_session, None)


# =============================================================================
# Connectivity and webhooks
# =============================================================================

class TestConnectivity:

    @pytest.mark.asyncio
    async def test_connection_success(self, db_session, tenant_id, store):
        fake = FakeShopifyClient(records={"orders": [{"id": 1}, {"id": 2}], "products": [{"id": 3}]})
        service = StoreService(db_session, tenant_id, client_factory=fake.factory)

        result = await service.test_connection(store.id)

        assert result["status"] == "connected"
        assert result["shop"]["currency"] == "EUR"
        assert result["data_available"] == {"orders": 2, "customers": 0, "products": 1}
        assert result["last_tested"]
        assert fake.close_count == 1

    @pytest.mark.asyncio
    async def test_connection_failure_is_reported(self, db_session, tenant_id, store):
        fake = FakeShopifyClient(verify_error=ShopifyAuthError())
        service = StoreService(db_session, tenant_id, client_factory=fake.factory)

        result = await service.test_connection(store.id)

        assert result["status"] == "failed"
        assert "Authentication failed" in result["error"]

    @pytest.mark.asyncio
    async def test_connection_without_credential(self, service, store):
        service.disconnect_store(store.id)

        result = await service.test_connection(store.id)

        assert result["status"] == "failed"


class TestWebhookSetup:

    @pytest.mark.asyncio
    async def test_requires_base_url(self, service, store, monkeypatch):
        monkeypatch.delenv("WEBHOOK_BASE_URL", raising=False)
        reset_sync_settings()

        with pytest.raises(StoreValidationError):
            await service.setup_webhooks(store.id)

    @pytest.mark.asyncio
    async def test_registers_every_topic(self, service, db_session, store, fake_client, monkeypatch):
        monkeypatch.setenv("WEBHOOK_BASE_URL", "https://app.example.com")
        reset_sync_settings()
        fake_client.failing_topics = {"products/delete"}

        created = await service.setup_webhooks(store.id)

        assert len(created) == len(WebhookTopic) - 1
        addresses = {w["topic"]: w["address"] for w in created}
        assert "products/delete" not in addresses
        assert addresses["orders/create"] == (
            f"https://app.example.com/api/webhooks/shopify/{store.id}/orders-create"
        )

        db_session.refresh(store)
        assert store.webhook_endpoints == created
        assert fake_client.close_count == 1

    @pytest.mark.asyncio
    async def test_list_webhooks(self, service, store, fake_client, monkeypatch):
        monkeypatch.setenv("WEBHOOK_BASE_URL", "https://app.example.com")
        reset_sync_settings()
        await service.setup_webhooks(store.id)

        listed = await service.list_webhooks(store.id)

        assert len(listed) == len(WebhookTopic)
        assert listed[0]["id"] == "9000"
