"""
Multi-tenant context enforcement.

CRITICAL SECURITY REQUIREMENTS:
- tenant_id is ALWAYS extracted from the bearer token (org_id), NEVER from request body/query
- All /api requests without valid tenant context return 403
- All database queries are scoped by tenant_id

Token verification:
- AUTH_JWT_SECRET set: HS256 shared-secret tokens
- AUTH_JWKS_URL set: RS256 tokens verified against the JWKS endpoint
"""

import os
import logging
from typing import Optional

from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import InvalidTokenError

logger = logging.getLogger(__name__)

# Security scheme for extracting Bearer token
security = HTTPBearer(auto_error=False)

PUBLIC_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}
PUBLIC_PREFIXES = ("/api/webhooks/shopify/",)


class TenantContext:
    """Immutable tenant context extracted from the bearer token."""

    def __init__(self, tenant_id: str, user_id: Optional[str] = None, roles: Optional[list[str]] = None):
        if not tenant_id:
            raise ValueError("tenant_id cannot be empty")
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.roles = roles or []

    def __repr__(self) -> str:
        return f"TenantContext(tenant_id={self.tenant_id}, user_id={self.user_id})"


class TokenVerifier:
    """Decodes bearer tokens with either a shared secret or a JWKS endpoint."""

    def __init__(self, jwt_secret: Optional[str] = None, jwks_url: Optional[str] = None):
        self.jwt_secret = jwt_secret
        self.jwks_url = jwks_url
        self._jwks_client: Optional[PyJWKClient] = None

    @classmethod
    def from_env(cls) -> "TokenVerifier":
        return cls(
            jwt_secret=os.getenv("AUTH_JWT_SECRET"),
            jwks_url=os.getenv("AUTH_JWKS_URL"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.jwt_secret or self.jwks_url)

    def decode(self, token: str) -> dict:
        """
        Verify and decode a token.

        Raises:
            InvalidTokenError: bad signature, expired, malformed
            PyJWKClientError: signing key could not be resolved
            ValueError: no verification method configured
        """
        if self.jwt_secret:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                options={"verify_aud": False},
            )

        if self.jwks_url:
            if self._jwks_client is None:
                # PyJWKClient caches fetched keys
                self._jwks_client = PyJWKClient(self.jwks_url)
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                options={"verify_aud": False},
            )

        raise ValueError("Set AUTH_JWT_SECRET or AUTH_JWKS_URL")


def _forbidden(detail: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": detail})


class TenantContextMiddleware:
    """
    FastAPI middleware that enforces tenant isolation.

    Extracts tenant_id from the token's org_id claim and attaches a
    TenantContext to request.state. Token claims used:
    - sub: User ID
    - org_id: Organization ID (the tenant)
    - roles: optional list of roles
    """

    def __init__(self, verifier: Optional[TokenVerifier] = None):
        # Environment is read lazily so the module imports without env vars.
        self._verifier = verifier

    @property
    def verifier(self) -> TokenVerifier:
        if self._verifier is None:
            self._verifier = TokenVerifier.from_env()
        return self._verifier

    @staticmethod
    def is_public_path(path: str) -> bool:
        return (
            path in PUBLIC_PATHS
            or path.startswith(PUBLIC_PREFIXES)
            or not path.startswith("/api/")
        )

    async def __call__(self, request: Request, call_next):
        """
        Process request and extract tenant context from the token.

        SECURITY: tenant_id is ONLY extracted from the token, never from request body/query.
        """
        if self.is_public_path(request.url.path):
            return await call_next(request)

        if not self.verifier.configured:
            logger.warning(
                "Authentication not configured - protected endpoint accessed",
                extra={"path": request.url.path, "method": request.method}
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": "Authentication service not configured"},
            )

        credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
        if not credentials or not credentials.credentials:
            logger.warning("Request missing authorization token", extra={
                "path": request.url.path,
                "method": request.method
            })
            return _forbidden("Missing or invalid authorization token")

        try:
            payload = self.verifier.decode(credentials.credentials)
        except (InvalidTokenError, PyJWKClientError) as e:
            logger.warning("JWT verification failed", extra={
                "error": str(e),
                "path": request.url.path
            })
            return _forbidden(f"Invalid or expired token: {str(e)}")

        org_id = payload.get("org_id")
        if not org_id:
            logger.error("JWT missing org_id", extra={
                "payload_keys": list(payload.keys())
            })
            return _forbidden("Token missing organization identifier")

        roles = payload.get("roles", [])
        request.state.tenant_context = TenantContext(
            tenant_id=str(org_id),
            user_id=str(payload["sub"]) if payload.get("sub") else None,
            roles=roles if isinstance(roles, list) else [],
        )

        logger.info("Request authenticated", extra={
            "tenant_id": str(org_id),
            "path": request.url.path,
            "method": request.method,
        })

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = str(org_id)
        return response


def get_tenant_context(request: Request) -> TenantContext:
    """
    Extract tenant context from request state.

    Raises 403 if tenant context is missing.
    Use this in route handlers to access tenant_id.
    """
    if not hasattr(request.state, "tenant_context"):
        logger.error("Route handler accessed without tenant context", extra={
            "path": request.url.path
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not available"
        )

    return request.state.tenant_context
