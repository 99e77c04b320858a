"""
Store management API routes.

Connect, list, update and disconnect Shopify stores, test their
connection and manage webhook subscriptions.

SECURITY: All routes require valid tenant context from the bearer token.
Stores are tenant-scoped; users can only see and change their own stores.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import AliasChoices, BaseModel, Field

from shopinsights.api.dependencies import get_store_service
from shopinsights.integrations.shopify.exceptions import ShopifyAuthError, ShopifyError
from shopinsights.platform.secrets import EncryptionError
from shopinsights.platform.tenant_context import get_tenant_context
from shopinsights.repositories.commerce_repo import PersistenceError
from shopinsights.services.store_service import (
    StoreAlreadyConnectedError,
    StoreNotFoundError,
    StoreService,
    StoreValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores", tags=["stores"])


# Request/Response models

class ConnectStoreRequest(BaseModel):
    """Request to connect a Shopify store."""
    shop_domain: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("shop_domain", "shopDomain"),
        description="mystore or mystore.myshopify.com",
    )
    access_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("access_token", "accessToken"),
        description="Admin API access token",
    )


class UpdateStoreRequest(BaseModel):
    """Editable store settings."""
    sync_frequency: Optional[str] = Field(None, max_length=20)
    store_settings: Optional[Dict[str, Any]] = None
    webhook_endpoints: Optional[List[Dict[str, Any]]] = None


class StoreResponse(BaseModel):
    """Store details (never includes the credential)."""
    id: str
    tenant_id: str
    shop_domain: str
    shopify_shop_id: Optional[str] = None
    shop_name: Optional[str] = None
    shop_email: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None
    status: str
    is_connected: bool
    sync_frequency: Optional[str] = None
    store_settings: Dict[str, Any] = {}
    webhook_endpoints: List[Dict[str, Any]] = []
    last_sync_at: Optional[str] = None
    sync_watermark: Optional[str] = None
    sync_in_progress: bool = False
    disconnected_at: Optional[str] = None
    created_at: Optional[str] = None


class StoreListResponse(BaseModel):
    stores: List[StoreResponse]
    total: int


class WebhookListResponse(BaseModel):
    store_id: str
    webhooks: List[Dict[str, Any]]
    count: int


def _store_response(store) -> StoreResponse:
    return StoreResponse(**store.to_dict())


def _not_found(store_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Store {store_id} not found",
    )


# Routes

@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def connect_store(
    request: Request,
    body: ConnectStoreRequest,
    service: StoreService = Depends(get_store_service),
):
    """
    Connect a Shopify store to the tenant.

    The access token is verified against Shopify before anything is saved.
    """
    tenant_ctx = get_tenant_context(request)

    try:
        store = await service.connect_store(body.shop_domain, body.access_token)
    except StoreValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreAlreadyConnectedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ShopifyAuthError as e:
        logger.warning("Store connect rejected by Shopify", extra={
            "tenant_id": tenant_ctx.tenant_id,
            "error": e.message,
        })
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to connect to Shopify: {e.message}",
        )
    except ShopifyError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify unavailable: {e.message}",
        )
    except (PersistenceError, EncryptionError) as e:
        logger.error("Failed to save connected store", extra={
            "tenant_id": tenant_ctx.tenant_id,
            "error": str(e),
        })
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save store",
        )

    return _store_response(store)


@router.get("", response_model=StoreListResponse)
async def list_stores(service: StoreService = Depends(get_store_service)):
    """List the tenant's stores."""
    stores = service.list_stores()
    return StoreListResponse(
        stores=[_store_response(s) for s in stores],
        total=len(stores),
    )


@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(store_id: str, service: StoreService = Depends(get_store_service)):
    try:
        return _store_response(service.get_store(store_id))
    except StoreNotFoundError:
        raise _not_found(store_id)


@router.patch("/{store_id}", response_model=StoreResponse)
async def update_store(
    store_id: str,
    body: UpdateStoreRequest,
    service: StoreService = Depends(get_store_service),
):
    """Update store settings. Only sync_frequency, store_settings and webhook_endpoints are editable."""
    try:
        store = service.update_store(store_id, body.model_dump(exclude_unset=True))
    except StoreNotFoundError:
        raise _not_found(store_id)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update store",
        )
    return _store_response(store)


@router.delete("/{store_id}", response_model=StoreResponse)
async def disconnect_store(store_id: str, service: StoreService = Depends(get_store_service)):
    """
    Disconnect a store.

    The credential is erased; synced data is kept.
    """
    try:
        store = service.disconnect_store(store_id)
    except StoreNotFoundError:
        raise _not_found(store_id)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to disconnect store",
        )
    return _store_response(store)


@router.post("/{store_id}/test")
async def test_connection(store_id: str, service: StoreService = Depends(get_store_service)):
    """Verify the stored credential and report remote record counts."""
    try:
        result = await service.test_connection(store_id)
    except StoreNotFoundError:
        raise _not_found(store_id)
    return {"store_id": store_id, "connection_test": result}


@router.post("/{store_id}/webhooks", response_model=WebhookListResponse)
async def setup_webhooks(store_id: str, service: StoreService = Depends(get_store_service)):
    """Register order, customer and product webhooks for the store."""
    try:
        webhooks = await service.setup_webhooks(store_id)
    except StoreNotFoundError:
        raise _not_found(store_id)
    except StoreValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ShopifyError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify unavailable: {e.message}",
        )
    except (PersistenceError, EncryptionError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set up webhooks",
        )
    return WebhookListResponse(store_id=store_id, webhooks=webhooks, count=len(webhooks))


@router.get("/{store_id}/webhooks", response_model=WebhookListResponse)
async def list_webhooks(store_id: str, service: StoreService = Depends(get_store_service)):
    """List webhook subscriptions registered on the shop."""
    try:
        webhooks = await service.list_webhooks(store_id)
    except StoreNotFoundError:
        raise _not_found(store_id)
    except StoreValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ShopifyError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify unavailable: {e.message}",
        )
    except EncryptionError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stored credential could not be read",
        )
    return WebhookListResponse(store_id=store_id, webhooks=webhooks, count=len(webhooks))
