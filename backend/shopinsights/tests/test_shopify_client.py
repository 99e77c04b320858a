"""
Tests for the Shopify Admin REST client.

Requests are served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from shopinsights.integrations.shopify.client import ShopifyClient
from shopinsights.integrations.shopify.exceptions import (
    ShopifyAuthError,
    ShopifyConnectionError,
    ShopifyRateLimitError,
    ShopifyRemoteError,
    ShopifyTimeoutError,
)

SHOP = "test-store.myshopify.com"
TOKEN = "shpat_" + "b" * 32


def make_client(handler) -> ShopifyClient:
    return ShopifyClient(
        shop_domain=SHOP,
        access_token=TOKEN,
        api_version="2024-01",
        transport=httpx.MockTransport(handler),
    )


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status_code=200, body=None, headers=None, content=None):
        self.requests = []
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.content = content

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content, headers=self.headers)
        return httpx.Response(self.status_code, json=self.body, headers=self.headers)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


# =============================================================================
# Listing
# =============================================================================

class TestList:

    @pytest.mark.asyncio
    async def test_first_page_params(self):
        recorder = Recorder(body={"orders": [{"id": 1}, {"id": 2}]})
        async with make_client(recorder) as client:
            page = await client.list("orders", limit=250)

        request = recorder.last
        assert request.url.path == "/admin/api/2024-01/orders.json"
        assert request.url.params["limit"] == "250"
        assert request.url.params["status"] == "any"
        assert "since_id" not in request.url.params
        assert request.headers["X-Shopify-Access-Token"] == TOKEN
        assert [r["id"] for r in page.records] == [1, 2]
        assert page.next_cursor == "2"
        assert page.is_last_page(250)

    @pytest.mark.asyncio
    async def test_cursor_and_filters(self):
        recorder = Recorder(body={"customers": []})
        async with make_client(recorder) as client:
            page = await client.list(
                "customers",
                cursor="450789469",
                limit=1000,
                filters={"updated_at_min": "2024-01-01T00:00:00-05:00", "ignored": None},
            )

        params = recorder.last.url.params
        assert params["since_id"] == "450789469"
        assert params["limit"] == "250"
        assert params["updated_at_min"] == "2024-01-01T00:00:00-05:00"
        assert "ignored" not in params
        assert "status" not in params
        assert len(page) == 0
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_non_object_records_dropped(self):
        recorder = Recorder(body={"products": [{"id": 1}, "junk", None]})
        async with make_client(recorder) as client:
            page = await client.list("products")
        assert page.records == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_missing_resource_key(self):
        async with make_client(Recorder(body={"errors": "nope"})) as client:
            with pytest.raises(ShopifyRemoteError):
                await client.list("orders")

    @pytest.mark.asyncio
    async def test_unknown_resource(self):
        async with make_client(Recorder(body={})) as client:
            with pytest.raises(ValueError):
                await client.list("refunds")


# =============================================================================
# Error mapping
# =============================================================================

class TestErrors:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors(self, status_code):
        async with make_client(Recorder(status_code=status_code, body={"errors": "denied"})) as client:
            with pytest.raises(ShopifyAuthError) as exc_info:
                await client.list("orders")
        assert exc_info.value.status_code == status_code
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        recorder = Recorder(status_code=429, body={"errors": "slow down"}, headers={"Retry-After": "2.0"})
        async with make_client(recorder) as client:
            with pytest.raises(ShopifyRateLimitError) as exc_info:
                await client.list("orders")
        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        async with make_client(Recorder(status_code=502, body={"errors": "bad gateway"})) as client:
            with pytest.raises(ShopifyRemoteError) as exc_info:
                await client.list("orders")
        assert exc_info.value.status_code == 502
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_client_error_is_not_retryable(self):
        async with make_client(Recorder(status_code=422, body={"errors": {"limit": ["invalid"]}})) as client:
            with pytest.raises(ShopifyRemoteError) as exc_info:
                await client.list("orders")
        assert exc_info.value.response == {"errors": {"limit": ["invalid"]}}
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async with make_client(Recorder(content=b"<html>oops</html>")) as client:
            with pytest.raises(ShopifyRemoteError) as exc_info:
                await client.list("orders")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        async with make_client(Recorder(content=json.dumps([1, 2]).encode())) as client:
            with pytest.raises(ShopifyRemoteError):
                await client.list("orders")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ShopifyTimeoutError):
                await client.list("orders")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ShopifyConnectionError):
                await client.list("orders")


# =============================================================================
# Shop, counts and webhooks
# =============================================================================

class TestShopAndWebhooks:

    @pytest.mark.asyncio
    async def test_verify(self):
        recorder = Recorder(body={"shop": {
            "id": 548380009,
            "name": "John Smith Test Store",
            "myshopify_domain": SHOP,
            "email": "j.smith@example.com",
            "currency": "USD",
            "iana_timezone": "America/New_York",
            "plan_name": "enterprise",
        }})
        async with make_client(recorder) as client:
            shop = await client.verify()

        assert recorder.last.url.path.endswith("/shop.json")
        assert shop.shop_id == "548380009"
        assert shop.domain == SHOP
        assert shop.timezone == "America/New_York"

    @pytest.mark.asyncio
    async def test_verify_unknown_shop_is_auth_error(self):
        async with make_client(Recorder(status_code=404, body={"errors": "Not Found"})) as client:
            with pytest.raises(ShopifyAuthError) as exc_info:
                await client.verify()
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_count(self):
        recorder = Recorder(body={"count": 580})
        async with make_client(recorder) as client:
            assert await client.count("orders") == 580
        assert recorder.last.url.path.endswith("/orders/count.json")
        assert recorder.last.url.params["status"] == "any"

    @pytest.mark.asyncio
    async def test_register_webhook(self):
        recorder = Recorder(status_code=201, body={"webhook": {
            "id": 4759306,
            "topic": "orders/create",
            "address": "https://app.example.com/api/webhooks/shopify/s1/orders-create",
            "format": "json",
            "created_at": "2024-01-01T00:00:00-05:00",
        }})
        async with make_client(recorder) as client:
            descriptor = await client.register_webhook(
                "orders/create",
                "https://app.example.com/api/webhooks/shopify/s1/orders-create",
            )

        sent = json.loads(recorder.last.content)
        assert recorder.last.method == "POST"
        assert sent == {"webhook": {
            "topic": "orders/create",
            "address": "https://app.example.com/api/webhooks/shopify/s1/orders-create",
            "format": "json",
        }}
        assert descriptor.webhook_id == "4759306"
        assert descriptor.to_dict()["id"] == "4759306"

    @pytest.mark.asyncio
    async def test_list_webhooks(self):
        recorder = Recorder(body={"webhooks": [
            {"id": 1, "topic": "orders/create", "address": "https://a"},
            {"id": 2, "topic": "products/delete", "address": "https://b"},
        ]})
        async with make_client(recorder) as client:
            webhooks = await client.list_webhooks()
        assert [w.topic for w in webhooks] == ["orders/create", "products/delete"]

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            ShopifyClient(shop_domain=SHOP, access_token="")
