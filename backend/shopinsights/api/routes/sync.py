"""
Sync API routes for triggering and monitoring store syncs.

SECURITY: All routes require valid tenant context from the bearer token.
Syncs are tenant-scoped - users can only sync their own stores.
"""

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from shopinsights.api.dependencies import (
    get_client_factory,
    get_sync_orchestrator,
    get_sync_session_factory,
)
from shopinsights.database.session import session_scope
from shopinsights.models.sync_run import SyncType
from shopinsights.platform.tenant_context import get_tenant_context
from shopinsights.services.store_service import StoreNotFoundError
from shopinsights.services.sync_orchestrator import (
    StoreNotSyncableError,
    SyncInProgressError,
    SyncOrchestrator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


# Request/Response models

class TriggerSyncRequest(BaseModel):
    """Request to trigger a sync."""
    sync_type: SyncType = Field(
        SyncType.INCREMENTAL,
        description="full re-reads everything; incremental reads changes since the watermark",
    )
    wait: bool = Field(
        False,
        description="Run inside the request and return the final result",
    )


class SyncRunResponse(BaseModel):
    """Sync run descriptor."""
    run_id: str
    store_id: str
    sync_type: str
    status: str
    records_processed: int = 0
    resource_counts: Dict[str, Any] = {}
    watermark_before: Optional[str] = None
    watermark_after: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None


class CancelSyncResponse(BaseModel):
    store_id: str
    cancel_requested: bool
    message: str


async def execute_run_in_background(
    run_id: str,
    tenant_id: str,
    session_factory: sessionmaker,
    client_factory: Callable[..., Any],
) -> None:
    """Run a pending sync with its own session (the request's is closed by now)."""
    try:
        with session_scope(session_factory) as session:
            orchestrator = SyncOrchestrator(session, tenant_id, client_factory=client_factory)
            result = await orchestrator.execute_run(run_id)
        logger.info("Background sync finished", extra={
            "tenant_id": tenant_id,
            "run_id": run_id,
            "status": result.status,
        })
    except Exception as e:
        logger.error("Background sync crashed", extra={
            "tenant_id": tenant_id,
            "run_id": run_id,
            "error": str(e),
            "error_type": type(e).__name__,
        }, exc_info=True)


# Routes

@router.get("/status")
async def get_sync_status(
    request: Request,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Sync state of every store of the tenant."""
    return orchestrator.get_sync_status()


@router.post(
    "/{store_id}",
    response_model=SyncRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_sync(
    request: Request,
    store_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[TriggerSyncRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
    session_factory: sessionmaker = Depends(get_sync_session_factory),
    client_factory: Callable[..., Any] = Depends(get_client_factory),
):
    """
    Start a full or incremental sync for a store.

    Returns the pending run immediately and executes it in the background,
    or, with wait=true, returns the finished run.

    SECURITY: Only syncs stores belonging to the authenticated tenant.
    """
    tenant_ctx = get_tenant_context(request)
    body = body or TriggerSyncRequest()

    logger.info("Sync trigger requested", extra={
        "tenant_id": tenant_ctx.tenant_id,
        "store_id": store_id,
        "sync_type": body.sync_type.value,
    })

    try:
        run = orchestrator.start_run(store_id, body.sync_type)
    except StoreNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Store {store_id} not found",
        )
    except StoreNotSyncableError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if body.wait:
        result = await orchestrator.execute_run(run.id)
        return SyncRunResponse(**result.to_dict())

    background_tasks.add_task(
        execute_run_in_background,
        run.id,
        tenant_ctx.tenant_id,
        session_factory,
        client_factory,
    )
    summary = run.to_summary()
    return SyncRunResponse(**summary)


@router.post("/{store_id}/cancel", response_model=CancelSyncResponse)
async def cancel_sync(
    store_id: str,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Ask the store's running sync to stop at its next page boundary."""
    try:
        requested = orchestrator.cancel(store_id)
    except StoreNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Store {store_id} not found",
        )

    return CancelSyncResponse(
        store_id=store_id,
        cancel_requested=requested,
        message="Cancellation requested" if requested else "No sync in progress",
    )
