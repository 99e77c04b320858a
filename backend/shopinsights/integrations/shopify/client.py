"""
Shopify Admin REST API client.

This client handles:
- Credential verification (shop details)
- Paged listing of orders, customers and products by since_id
- Resource counts
- Webhook subscription management

The client performs no retries and no persistence. Callers decide what to
do with the typed errors it raises.

Documentation: https://shopify.dev/docs/api/admin-rest
"""

import logging
from typing import Optional, List, Dict, Any

import httpx

from shopinsights.config.sync_settings import get_sync_settings
from shopinsights.integrations.shopify.exceptions import (
    ShopifyAuthError,
    ShopifyRemoteError,
    ShopifyRateLimitError,
    ShopifyTimeoutError,
    ShopifyConnectionError,
)
from shopinsights.integrations.shopify.models import (
    ShopMetadata,
    ResourcePage,
    WebhookDescriptor,
)

logger = logging.getLogger(__name__)

SUPPORTED_RESOURCES = ("orders", "customers", "products")
MAX_PAGE_SIZE = 250

# Extra query parameters Shopify needs to return every record of a resource
DEFAULT_LIST_PARAMS = {
    "orders": {"status": "any"},
    "customers": {},
    "products": {},
}


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ShopifyClient:
    """
    Async client for one shop's Admin REST API.

    SECURITY: access token must never be logged.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Shopify client.

        Args:
            shop_domain: Store domain (mystore.myshopify.com)
            access_token: Admin API access token
            api_version: Admin API version (default: from sync settings)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not shop_domain:
            raise ValueError("shop_domain is required")
        if not access_token:
            raise ValueError("access_token is required")

        settings = get_sync_settings()
        self.shop_domain = shop_domain
        self.api_version = api_version or settings.api_version
        self.base_url = f"https://{shop_domain}/admin/api/{self.api_version}"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout or settings.request_timeout_seconds,
                connect=connect_timeout or settings.connect_timeout_seconds,
            ),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the Admin API.

        Returns:
            Response body as dictionary

        Raises:
            ShopifyAuthError: 401/403
            ShopifyRateLimitError: 429
            ShopifyRemoteError: other non-2xx status or a non-object body
            ShopifyTimeoutError / ShopifyConnectionError: transport failures
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Shopify API timeout",
                extra={"shop_domain": self.shop_domain, "endpoint": endpoint, "error": str(e)},
            )
            raise ShopifyTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Shopify API connection error",
                extra={"shop_domain": self.shop_domain, "endpoint": endpoint, "error": str(e)},
            )
            raise ShopifyConnectionError(f"Connection error: {e}")

        if response.status_code in (401, 403):
            logger.error(
                "Shopify API authentication failed",
                extra={
                    "shop_domain": self.shop_domain,
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                },
            )
            raise ShopifyAuthError(status_code=response.status_code)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(
                "Shopify API rate limited",
                extra={
                    "shop_domain": self.shop_domain,
                    "endpoint": endpoint,
                    "retry_after": retry_after,
                },
            )
            raise ShopifyRateLimitError(retry_after=_parse_retry_after(retry_after))

        if response.status_code >= 400:
            error_body: Dict[str, Any] = {}
            try:
                parsed = response.json()
                if isinstance(parsed, dict):
                    error_body = parsed
            except ValueError:
                pass

            logger.error(
                "Shopify API error",
                extra={
                    "shop_domain": self.shop_domain,
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response": str(error_body)[:500],
                },
            )
            raise ShopifyRemoteError(
                message=f"Shopify API error: {response.status_code}",
                status_code=response.status_code,
                response=error_body,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            data = response.json()
        except ValueError:
            raise ShopifyRemoteError(f"Malformed response body from {endpoint}")
        if not isinstance(data, dict):
            raise ShopifyRemoteError(f"Unexpected response shape from {endpoint}")
        return data

    @staticmethod
    def _check_resource(resource: str) -> None:
        if resource not in SUPPORTED_RESOURCES:
            raise ValueError(
                f"Unsupported resource: {resource}. Expected one of {SUPPORTED_RESOURCES}"
            )

    async def verify(self) -> ShopMetadata:
        """
        Verify the credential by fetching shop details.

        Raises:
            ShopifyAuthError: Bad token, or the shop does not exist (404)
            ShopifyRemoteError: Any other failure
        """
        try:
            data = await self._request("GET", "/shop.json")
        except ShopifyRemoteError as e:
            if e.status_code == 404:
                raise ShopifyAuthError(
                    message=f"Shop not found: {self.shop_domain}",
                    status_code=404,
                )
            raise

        shop = data.get("shop")
        if not isinstance(shop, dict):
            raise ShopifyRemoteError("Shop details missing from response")
        return ShopMetadata.from_dict(shop)

    async def list(
        self,
        resource: str,
        cursor: Optional[str] = None,
        limit: int = MAX_PAGE_SIZE,
        filters: Optional[Dict[str, Any]] = None,
    ) -> ResourcePage:
        """
        Fetch one page of a resource.

        Args:
            resource: orders, customers or products
            cursor: since_id (remote id of the last record already seen)
            limit: Page size, at most 250
            filters: Extra query filters, e.g. {"updated_at_min": "..."}

        Returns:
            ResourcePage of raw records in ascending id order
        """
        self._check_resource(resource)

        params: Dict[str, Any] = {"limit": max(1, min(int(limit), MAX_PAGE_SIZE))}
        params.update(DEFAULT_LIST_PARAMS[resource])
        if cursor:
            params["since_id"] = cursor
        if filters:
            params.update({k: v for k, v in filters.items() if v is not None})

        data = await self._request("GET", f"/{resource}.json", params=params)

        records = data.get(resource)
        if not isinstance(records, list):
            raise ShopifyRemoteError(f"Missing '{resource}' list in response")

        logger.debug(
            "Fetched Shopify page",
            extra={
                "shop_domain": self.shop_domain,
                "resource": resource,
                "since_id": cursor,
                "count": len(records),
            },
        )
        return ResourcePage(
            resource=resource,
            records=[r for r in records if isinstance(r, dict)],
        )

    async def count(self, resource: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Return the remote record count for a resource."""
        self._check_resource(resource)

        params: Dict[str, Any] = dict(DEFAULT_LIST_PARAMS[resource])
        if filters:
            params.update({k: v for k, v in filters.items() if v is not None})

        data = await self._request("GET", f"/{resource}/count.json", params=params)
        try:
            return int(data.get("count", 0))
        except (TypeError, ValueError):
            raise ShopifyRemoteError(f"Invalid count for {resource}")

    async def register_webhook(self, topic: str, callback_url: str) -> WebhookDescriptor:
        """Subscribe callback_url to a webhook topic (JSON format)."""
        payload = {
            "webhook": {
                "topic": topic,
                "address": callback_url,
                "format": "json",
            }
        }
        data = await self._request("POST", "/webhooks.json", json=payload)

        webhook = data.get("webhook")
        if not isinstance(webhook, dict):
            raise ShopifyRemoteError("Webhook missing from response")

        logger.info(
            "Registered Shopify webhook",
            extra={"shop_domain": self.shop_domain, "topic": topic},
        )
        return WebhookDescriptor.from_dict(webhook)

    async def list_webhooks(self) -> List[WebhookDescriptor]:
        """List webhook subscriptions registered on the shop."""
        data = await self._request("GET", "/webhooks.json")
        webhooks = data.get("webhooks")
        if not isinstance(webhooks, list):
            raise ShopifyRemoteError("Missing 'webhooks' list in response")
        return [WebhookDescriptor.from_dict(w) for w in webhooks if isinstance(w, dict)]
