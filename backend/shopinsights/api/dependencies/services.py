"""
Service dependencies.

Builds tenant-scoped services for route handlers. The Shopify client
factory and the session factory used by background sync runs are
dependencies of their own so tests can override them.
"""

from typing import Any, Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from shopinsights.database.session import get_db_session, get_session_factory
from shopinsights.integrations.shopify.client import ShopifyClient
from shopinsights.platform.tenant_context import get_tenant_context
from shopinsights.services.store_service import StoreService
from shopinsights.services.sync_orchestrator import SyncOrchestrator


def get_client_factory() -> Callable[..., Any]:
    """Shopify client constructor used by services."""
    return ShopifyClient


def get_sync_session_factory() -> sessionmaker:
    """Session factory for sync runs that outlive the request."""
    try:
        return get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )


def get_store_service(
    request: Request,
    db_session: Session = Depends(get_db_session),
    client_factory: Callable[..., Any] = Depends(get_client_factory),
) -> StoreService:
    """Get store service scoped to current tenant."""
    tenant_ctx = get_tenant_context(request)
    return StoreService(db_session, tenant_ctx.tenant_id, client_factory=client_factory)


def get_sync_orchestrator(
    request: Request,
    db_session: Session = Depends(get_db_session),
    client_factory: Callable[..., Any] = Depends(get_client_factory),
) -> SyncOrchestrator:
    """Get sync orchestrator scoped to current tenant."""
    tenant_ctx = get_tenant_context(request)
    return SyncOrchestrator(db_session, tenant_ctx.tenant_id, client_factory=client_factory)
