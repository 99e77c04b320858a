"""
Scheduled incremental sync job.

Runs an incremental sync for every connected store (all tenants), oldest
last sync first, bounded by scheduler.max_stores_per_run. Catches up on
changes whose webhooks were missed.

Stores with a run already in progress are skipped. A failure on one store
never stops the others.

Usage:
    python -m shopinsights.jobs.scheduled_sync
"""

import sys
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from shopinsights.config.sync_settings import SyncSettings, get_sync_settings
from shopinsights.database.session import session_scope
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.models.sync_run import SyncType
from shopinsights.services.sync_orchestrator import (
    SyncInProgressError,
    SyncOrchestrator,
    SyncOrchestratorError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ScheduledSyncStats:
    """Track scheduled sync run statistics."""

    def __init__(self):
        self.stores_found = 0
        self.runs_completed = 0
        self.runs_failed = 0
        self.stores_skipped = 0
        self.records_processed = 0
        self.start_time = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "stores_found": self.stores_found,
            "runs_completed": self.runs_completed,
            "runs_failed": self.runs_failed,
            "stores_skipped": self.stores_skipped,
            "records_processed": self.records_processed,
            "duration_seconds": duration,
        }


def select_stores(session: Session, limit: int) -> list:
    """Connected stores with a credential, never-synced and stalest first."""
    return (
        session.query(ShopifyStore)
        .filter(
            ShopifyStore.status == StoreStatus.CONNECTED,
            ShopifyStore.access_token_encrypted.isnot(None),
        )
        .order_by(
            ShopifyStore.last_sync_at.is_(None).desc(),
            ShopifyStore.last_sync_at.asc(),
        )
        .limit(limit)
        .all()
    )


async def sync_store(
    session: Session,
    store: ShopifyStore,
    stats: ScheduledSyncStats,
    client_factory: Optional[Callable[..., Any]] = None,
    settings: Optional[SyncSettings] = None,
) -> None:
    """Run one store's incremental sync, recording the outcome in stats."""
    store_id, tenant_id = store.id, store.tenant_id
    orchestrator = SyncOrchestrator(
        session,
        tenant_id,
        client_factory=client_factory,
        settings=settings,
    )

    try:
        result = await orchestrator.run_sync(store_id, SyncType.INCREMENTAL)
    except SyncInProgressError:
        stats.stores_skipped += 1
        logger.info("Store already syncing, skipped", extra={
            "tenant_id": tenant_id,
            "store_id": store_id,
        })
        return
    except Exception as e:
        # SyncOrchestratorError or anything unexpected: keep going with other stores
        session.rollback()
        stats.runs_failed += 1
        logger.error("Scheduled sync errored", extra={
            "tenant_id": tenant_id,
            "store_id": store_id,
            "error": str(e),
            "error_type": type(e).__name__,
            "expected": isinstance(e, SyncOrchestratorError),
        })
        return

    stats.records_processed += result.records_processed
    if result.is_successful:
        stats.runs_completed += 1
    else:
        stats.runs_failed += 1
        logger.warning("Scheduled sync did not complete", extra={
            "tenant_id": tenant_id,
            "store_id": store_id,
            "run_id": result.run_id,
            "status": result.status,
            "error_code": result.error_code,
        })


async def run_scheduled_sync(
    session: Optional[Session] = None,
    client_factory: Optional[Callable[..., Any]] = None,
    settings: Optional[SyncSettings] = None,
) -> dict:
    """
    Run the scheduled sync job.

    Returns:
        Statistics dictionary with job results
    """
    logger.info("Starting scheduled sync job")

    settings = settings or get_sync_settings()
    if session is None:
        with session_scope() as owned:
            return await _sync_stores(owned, client_factory, settings)
    return await _sync_stores(session, client_factory, settings)


async def _sync_stores(
    session: Session,
    client_factory: Optional[Callable[..., Any]],
    settings: SyncSettings,
) -> dict:
    stats = ScheduledSyncStats()
    try:
        stores = select_stores(session, settings.max_stores_per_run)
        stats.stores_found = len(stores)
        logger.info("Found stores to sync", extra={"store_count": len(stores)})

        for store in stores:
            await sync_store(session, store, stats, client_factory=client_factory, settings=settings)

        result = stats.to_dict()
        logger.info("Scheduled sync job completed", extra=result)
        return result

    except Exception as e:
        logger.error("Scheduled sync job failed", extra={
            "error": str(e)
        })
        raise


def main():
    """Entry point for running the scheduled sync from command line."""
    try:
        result = asyncio.run(run_scheduled_sync())
        print(f"Scheduled sync completed: {result}")
        sys.exit(0)
    except Exception as e:
        print(f"Scheduled sync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
