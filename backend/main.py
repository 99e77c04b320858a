"""
FastAPI application entry point for Shopify Insights.

Multi-tenant enforcement is enabled via TenantContextMiddleware.
All /api routes require a valid bearer token with tenant context, except
Shopify webhooks which are authenticated by HMAC signature.

Run with:
    uvicorn main:app --app-dir backend
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from shopinsights.api.routes import health
from shopinsights.api.routes import stores
from shopinsights.api.routes import sync
from shopinsights.api.routes import webhooks_shopify
from shopinsights.api.routes.webhooks_shopify import signature_checks_disabled
from shopinsights.config.sync_settings import get_sync_settings
from shopinsights.platform.secrets import SecretRedactingFilter
from shopinsights.platform.tenant_context import TenantContextMiddleware, TokenVerifier

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(SecretRedactingFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Shopify Insights API")

    app.state.auth_configured = TokenVerifier.from_env().configured
    if not app.state.auth_configured:
        logger.warning(
            "Token verification not configured. Protected endpoints will return 503. "
            "Set AUTH_JWT_SECRET or AUTH_JWKS_URL to enable authentication."
        )

    database_url = os.getenv("DATABASE_URL")
    app.state.database_configured = bool(database_url)
    if not database_url:
        logger.error("DATABASE_URL is not set. All data endpoints will return 503.")
    else:
        # Mask credentials for safe logging
        masked = database_url.split("@")[-1] if "@" in database_url else "(local)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})

    if not os.getenv("ENCRYPTION_KEY"):
        logger.warning("ENCRYPTION_KEY is not set. Stores cannot be connected or synced.")

    if not os.getenv("SHOPIFY_API_SECRET"):
        if signature_checks_disabled():
            logger.warning(
                "SHOPIFY_API_SECRET is not set and SHOPIFY_WEBHOOK_VERIFY=false. "
                "Unsigned webhooks will be applied."
            )
        else:
            logger.error("SHOPIFY_API_SECRET is not set. Webhooks will return 503.")

    settings = get_sync_settings()
    logger.info("Sync settings loaded", extra={
        "page_size": settings.page_size,
        "resources": list(settings.resources),
    })

    yield

    # Shutdown
    logger.info("Shutting down Shopify Insights API")


# Create FastAPI app
app = FastAPI(
    title="Shopify Insights API",
    description="Multi-tenant Shopify store sync with strict tenant isolation",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# CRITICAL: Add tenant context middleware
tenant_middleware = TenantContextMiddleware()
app.middleware("http")(tenant_middleware)


# Include health route (bypasses authentication)
app.include_router(health.router)

# Include store management routes (requires authentication)
app.include_router(stores.router)

# Include sync routes (requires authentication)
app.include_router(sync.router)

# Include Shopify webhook routes (uses HMAC verification, not JWT)
app.include_router(webhooks_shopify.router)


@app.get("/", include_in_schema=False)
async def root():
    return {"service": "shopify-insights", "status": "ok"}


# Global exception handler for anything the routes do not translate
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    tenant_id = "unknown"
    if hasattr(request.state, "tenant_context"):
        tenant_id = request.state.tenant_context.tenant_id

    logger.error(
        "Unhandled exception",
        extra={
            "tenant_id": tenant_id,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )
