"""
Shopify-specific exceptions for error handling.

Hierarchy:
    ShopifyError
    ├── ShopifyAuthError          (401/403, or 404 on shop verification)
    └── ShopifyRemoteError        (any other non-2xx or malformed body)
        ├── ShopifyRateLimitError (429)
        ├── ShopifyTimeoutError
        └── ShopifyConnectionError
"""

from typing import Optional, Dict, Any


class ShopifyError(Exception):
    """Base exception for Shopify Admin API errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class ShopifyAuthError(ShopifyError):
    """Raised when the access token is rejected or the shop does not exist."""

    def __init__(
        self,
        message: str = "Authentication failed - access token may be invalid or revoked",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class ShopifyRemoteError(ShopifyError):
    """Raised for non-success responses and unparseable bodies."""

    @property
    def retryable(self) -> bool:
        # Client errors other than 429 will fail the same way again
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class ShopifyRateLimitError(ShopifyRemoteError):
    """Raised when API rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded - please retry after a delay",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class ShopifyTimeoutError(ShopifyRemoteError):
    """Raised when a request to Shopify times out."""

    def __init__(self, message: str = "Request to Shopify timed out", **kwargs):
        super().__init__(message, **kwargs)


class ShopifyConnectionError(ShopifyRemoteError):
    """Raised when network/connection errors occur."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach Shopify",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
