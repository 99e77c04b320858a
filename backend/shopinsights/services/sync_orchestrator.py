"""
Sync orchestration service.

This service orchestrates:
- Full and incremental sync runs per store (orders, customers, products)
- One run per store at a time (atomic sync_in_progress flag)
- Page-by-page fetch, transform and persist with a commit per page
- Per-page retries with exponential backoff on retryable remote errors
- Watermark advance as the final step of a successful run only
- Cooperative cancellation between pages

Run lifecycle:
    pending -> fetching -> transforming -> persisting -> (fetching ...) -> completed
    failed from any non-terminal state; cancelled at a between-page checkpoint

SECURITY: All operations are tenant-scoped via tenant_id from the bearer token.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopinsights.config.sync_settings import SyncSettings, get_sync_settings
from shopinsights.integrations.shopify.client import ShopifyClient
from shopinsights.integrations.shopify.exceptions import (
    ShopifyAuthError,
    ShopifyConnectionError,
    ShopifyError,
    ShopifyRateLimitError,
    ShopifyRemoteError,
    ShopifyTimeoutError,
)
from shopinsights.integrations.shopify.models import ResourcePage
from shopinsights.models.base import generate_uuid
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.models.sync_run import SyncRun, SyncRunStatus, SyncType
from shopinsights.platform.secrets import EncryptionError, decrypt_secret
from shopinsights.repositories.commerce_repo import CommerceRepository, PersistenceError
from shopinsights.services.store_service import StoreNotFoundError
from shopinsights.services.transformers import (
    earliest_timestamp,
    later_timestamp,
    remote_id_of,
    transform,
    watermark_value,
)

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    SyncRunStatus.PENDING: {SyncRunStatus.FETCHING, SyncRunStatus.FAILED, SyncRunStatus.CANCELLED},
    SyncRunStatus.FETCHING: {SyncRunStatus.TRANSFORMING, SyncRunStatus.FAILED, SyncRunStatus.CANCELLED},
    SyncRunStatus.TRANSFORMING: {SyncRunStatus.PERSISTING, SyncRunStatus.FAILED, SyncRunStatus.CANCELLED},
    SyncRunStatus.PERSISTING: {
        SyncRunStatus.FETCHING,
        SyncRunStatus.COMPLETED,
        SyncRunStatus.FAILED,
        SyncRunStatus.CANCELLED,
    },
    SyncRunStatus.COMPLETED: set(),
    SyncRunStatus.FAILED: set(),
    SyncRunStatus.CANCELLED: set(),
}


# Stores with a pending cancellation request (checked between pages)
_cancel_requests: set = set()
_cancel_lock = threading.Lock()


class SyncOrchestratorError(Exception):
    """Base exception for sync orchestrator errors."""
    pass


class SyncInProgressError(SyncOrchestratorError):
    """Another run already holds the store."""

    def __init__(self, store_id: str, run_id: Optional[str] = None):
        super().__init__(f"A sync is already running for store {store_id}")
        self.store_id = store_id
        self.run_id = run_id


class StoreNotSyncableError(SyncOrchestratorError):
    """Store is disconnected or has no credential."""
    pass


class InvalidStateTransition(SyncOrchestratorError):
    """A run was moved along an edge the lifecycle does not allow."""

    def __init__(self, current: SyncRunStatus, target: SyncRunStatus):
        super().__init__(f"Invalid sync run transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class SyncCancelled(Exception):
    """Internal signal: a cancellation request was observed."""
    pass


class SyncLockLost(Exception):
    """Internal signal: a newer run took the store lock over."""
    pass


@dataclass
class SyncRunResult:
    """Result of a sync run."""
    run_id: str
    store_id: str
    sync_type: str
    status: str
    records_processed: int = 0
    resource_counts: Dict[str, int] = field(default_factory=dict)
    watermark_before: Optional[str] = None
    watermark_after: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_successful(self) -> bool:
        return self.status == SyncRunStatus.COMPLETED.value

    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.started_at or not self.completed_at:
            return None
        started, completed = self.started_at, self.completed_at
        # SQLite hands back naive datetimes
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if completed.tzinfo is None:
            completed = completed.replace(tzinfo=timezone.utc)
        return (completed - started).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "store_id": self.store_id,
            "sync_type": self.sync_type,
            "status": self.status,
            "is_successful": self.is_successful,
            "records_processed": self.records_processed,
            "resource_counts": dict(self.resource_counts),
            "watermark_before": self.watermark_before,
            "watermark_after": self.watermark_after,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


def _error_code(error: Exception) -> str:
    if isinstance(error, ShopifyAuthError):
        return "auth_error"
    if isinstance(error, ShopifyRateLimitError):
        return "rate_limited"
    if isinstance(error, ShopifyTimeoutError):
        return "timeout"
    if isinstance(error, ShopifyConnectionError):
        return "connection_error"
    if isinstance(error, ShopifyRemoteError):
        return "remote_error"
    if isinstance(error, PersistenceError):
        return "persistence_error"
    if isinstance(error, EncryptionError):
        return "credential_error"
    return "internal_error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Runs full and incremental syncs for a tenant's stores.

    SECURITY: All methods require tenant_id from the bearer token.
    """

    def __init__(
        self,
        db_session: Session,
        tenant_id: str,
        client_factory: Optional[Callable[..., Any]] = None,
        settings: Optional[SyncSettings] = None,
    ):
        """
        Initialize sync orchestrator.

        Args:
            db_session: Database session
            tenant_id: Tenant ID from the bearer token (org_id)
            client_factory: Builds a Shopify client from (shop_domain, access_token)
            settings: Sync tuning (default: loaded from sync_settings.yml)

        Raises:
            ValueError: If tenant_id is empty or None
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")

        self.db = db_session
        self.tenant_id = tenant_id
        self.client_factory = client_factory or ShopifyClient
        self.settings = settings or get_sync_settings()
        self.repository = CommerceRepository(db_session, tenant_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_store(self, store_id: str) -> ShopifyStore:
        store = (
            self.db.query(ShopifyStore)
            .filter(
                ShopifyStore.id == store_id,
                ShopifyStore.tenant_id == self.tenant_id,
            )
            .first()
        )
        if store is None:
            raise StoreNotFoundError(f"Store {store_id} not found")
        return store

    def _get_run(self, run_id: str) -> Optional[SyncRun]:
        return (
            self.db.query(SyncRun)
            .filter(SyncRun.id == run_id, SyncRun.tenant_id == self.tenant_id)
            .first()
        )

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """
        Calculate exponential backoff delay.

        Args:
            attempt: Current attempt number (0-indexed)
        """
        delay = self.settings.retry_base_delay_seconds * (2 ** attempt)
        return min(delay, self.settings.retry_max_delay_seconds)

    def _transition(self, run: SyncRun, target: SyncRunStatus, commit: bool = True) -> None:
        """
        Move a run to a new state and persist it.

        Raises:
            InvalidStateTransition: Edge not allowed by the lifecycle
        """
        current = SyncRunStatus(run.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(current, target)

        run.status = target.value
        if target.is_terminal:
            run.completed_at = _utcnow()
        if commit:
            self.db.commit()

    @staticmethod
    def request_cancel(store_id: str) -> None:
        with _cancel_lock:
            _cancel_requests.add(store_id)

    @staticmethod
    def _clear_cancel(store_id: str) -> None:
        with _cancel_lock:
            _cancel_requests.discard(store_id)

    @staticmethod
    def _cancel_requested(store_id: str) -> bool:
        with _cancel_lock:
            return store_id in _cancel_requests

    def _acquire_store(self, store: ShopifyStore, run_id: str) -> bool:
        """
        Take the store's sync lock with a single conditional UPDATE.

        A lock older than stale_lock_minutes is taken over.
        """
        now = _utcnow()
        stale_before = now - timedelta(minutes=self.settings.stale_lock_minutes)

        result = self.db.execute(
            update(ShopifyStore)
            .where(
                ShopifyStore.id == store.id,
                ShopifyStore.tenant_id == self.tenant_id,
                or_(
                    ShopifyStore.sync_in_progress.is_(False),
                    ShopifyStore.sync_started_at.is_(None),
                    ShopifyStore.sync_started_at < stale_before,
                ),
            )
            .values(sync_in_progress=True, sync_started_at=now, current_run_id=run_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _check_lock_held(self, run: SyncRun, store_id: str) -> None:
        """
        Raise SyncLockLost when this run no longer owns the store.

        Happens after a stale-lock takeover by another worker.
        """
        self.db.refresh(run)
        owner = self.db.execute(
            select(ShopifyStore.current_run_id).where(ShopifyStore.id == store_id)
        ).scalar_one_or_none()
        if owner != run.id or SyncRunStatus(run.status).is_terminal:
            raise SyncLockLost()

    def _release_store(self, store_id: str, run_id: str) -> None:
        """Clear the lock if this run still holds it."""
        released = False
        try:
            result = self.db.execute(
                update(ShopifyStore)
                .where(
                    ShopifyStore.id == store_id,
                    ShopifyStore.current_run_id == run_id,
                )
                .values(sync_in_progress=False, sync_started_at=None, current_run_id=None)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            released = result.rowcount == 1
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to release store sync lock",
                extra={"tenant_id": self.tenant_id, "store_id": store_id, "run_id": run_id, "error": str(e)},
            )
        # A cancel request after a takeover belongs to the new run
        if released:
            self._clear_cancel(store_id)

    def _fail_abandoned_run(self, run_id: Optional[str]) -> None:
        """Mark the run that held a stale lock as failed."""
        if not run_id:
            return
        previous = self._get_run(run_id)
        if previous is None or SyncRunStatus(previous.status).is_terminal:
            return
        previous.status = SyncRunStatus.FAILED.value
        previous.completed_at = _utcnow()
        previous.error_code = "stale_lock"
        previous.error_message = "Run abandoned; lock taken over by a newer run"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_run(self, store_id: str, sync_type: SyncType = SyncType.INCREMENTAL) -> SyncRun:
        """
        Validate the store, take its lock and record a pending run.

        Raises:
            StoreNotFoundError: No such store for this tenant
            StoreNotSyncableError: Store disconnected or without credential
            SyncInProgressError: Another run holds the store
        """
        sync_type = SyncType(sync_type)
        store = self._get_store(store_id)

        if store.status == StoreStatus.DISCONNECTED or not store.has_valid_token:
            raise StoreNotSyncableError(
                f"Store {store_id} is disconnected; reconnect it before syncing"
            )

        previous_run_id = store.current_run_id if store.sync_in_progress else None
        run = SyncRun(
            id=generate_uuid(),
            tenant_id=self.tenant_id,
            store_id=store.id,
            sync_type=sync_type.value,
            status=SyncRunStatus.PENDING.value,
            started_at=_utcnow(),
            records_processed=0,
            resource_counts={},
            cursors={},
            watermark_before=store.sync_watermark,
        )

        if not self._acquire_store(store, run.id):
            self.db.rollback()
            logger.warning(
                "Sync rejected: store already syncing",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "current_run_id": store.current_run_id,
                },
            )
            raise SyncInProgressError(store_id, store.current_run_id)

        if previous_run_id:
            logger.warning(
                "Taking over stale sync lock",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "previous_run_id": previous_run_id,
                },
            )
            self._fail_abandoned_run(previous_run_id)

        self._clear_cancel(store_id)
        self.db.add(run)
        self.db.commit()
        self.db.refresh(store)

        logger.info(
            "Sync run created",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store_id,
                "run_id": run.id,
                "sync_type": sync_type.value,
            },
        )
        return run

    async def execute_run(self, run_id: str) -> SyncRunResult:
        """
        Execute a pending run created by start_run.

        Never raises for remote, credential or persistence failures; they are
        reported in the result and on the SyncRun row. A run whose lock was
        taken over returns its failed (stale_lock) result.
        """
        run = self._get_run(run_id)
        if run is None:
            raise SyncOrchestratorError(f"Sync run {run_id} not found")
        if run.status != SyncRunStatus.PENDING.value:
            raise SyncOrchestratorError(f"Sync run {run_id} is {run.status}, expected pending")
        store = self._get_store(run.store_id)
        store_id = store.id
        sync_type = SyncType(run.sync_type)

        watermark_before = store.sync_watermark
        cursors_before = dict(store.sync_cursors or {})
        # Incremental runs with no watermark yet behave like full runs
        updated_at_min = watermark_before if sync_type == SyncType.INCREMENTAL else None

        resource_counts: Dict[str, int] = {}
        page_cursors: Dict[str, Optional[str]] = {}
        seen_max: Dict[str, Optional[str]] = {}
        records_processed = 0
        client = None

        logger.info(
            "Sync run starting",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store_id,
                "run_id": run_id,
                "sync_type": sync_type.value,
                "watermark": watermark_before,
            },
        )

        try:
            access_token = await decrypt_secret(store.access_token_encrypted)
            client = self.client_factory(shop_domain=store.shop_domain, access_token=access_token)

            for resource in self.settings.resources:
                cursor: Optional[str] = None
                resource_counts.setdefault(resource, 0)

                while True:
                    if self._cancel_requested(store_id):
                        raise SyncCancelled()
                    self._check_lock_held(run, store_id)

                    self._transition(run, SyncRunStatus.FETCHING)
                    filters = {"updated_at_min": updated_at_min} if updated_at_min else None
                    page = await self._fetch_page(client, resource, cursor, filters, run_id)

                    self._transition(run, SyncRunStatus.TRANSFORMING)
                    rows = self._transform_page(page, store_id)

                    self._transition(run, SyncRunStatus.PERSISTING)
                    for values in rows:
                        self.repository.upsert(resource, store_id, values)
                    for record in page.records:
                        seen_max[resource] = later_timestamp(seen_max.get(resource), watermark_value(record))

                    resource_counts[resource] += len(rows)
                    records_processed += len(rows)
                    cursor = page.next_cursor or cursor
                    page_cursors[resource] = cursor

                    run.records_processed = records_processed
                    run.resource_counts = dict(resource_counts)
                    run.cursors = dict(page_cursors)
                    self._commit_page()

                    logger.info(
                        "Sync page persisted",
                        extra={
                            "tenant_id": self.tenant_id,
                            "store_id": store_id,
                            "run_id": run_id,
                            "resource": resource,
                            "page_records": len(page),
                            "since_id": cursor,
                        },
                    )

                    if page.is_last_page(self.settings.page_size) or page.next_cursor is None:
                        break

            # Final step: advance cursors and watermark only after every page is committed
            self._check_lock_held(run, store_id)
            cursors_after = dict(cursors_before)
            for resource, seen in seen_max.items():
                advanced = later_timestamp(cursors_after.get(resource), seen)
                if advanced:
                    cursors_after[resource] = advanced
            watermark_after = later_timestamp(
                watermark_before,
                earliest_timestamp(cursors_after[r] for r in self.settings.resources if r in cursors_after),
            )

            store.sync_cursors = cursors_after
            store.sync_watermark = watermark_after
            store.last_sync_at = _utcnow()
            if store.status == StoreStatus.FAILED:
                store.status = StoreStatus.CONNECTED
            run.watermark_after = watermark_after
            self._transition(run, SyncRunStatus.COMPLETED, commit=False)
            self._commit_page()

            logger.info(
                "Sync run completed",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "run_id": run_id,
                    "records_processed": records_processed,
                    "resource_counts": resource_counts,
                    "watermark_after": watermark_after,
                },
            )

        except SyncCancelled:
            self.db.rollback()
            run = self._get_run(run_id)
            self._transition(run, SyncRunStatus.CANCELLED)
            logger.info(
                "Sync run cancelled",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "run_id": run_id,
                    "records_processed": records_processed,
                },
            )

        except (SyncLockLost, InvalidStateTransition) as e:
            # A stale-lock takeover fails this run under our feet
            self.db.rollback()
            run = self._get_run(run_id)
            if run is None:
                raise
            if not SyncRunStatus(run.status).is_terminal:
                if isinstance(e, InvalidStateTransition):
                    raise
                run.status = SyncRunStatus.FAILED.value
                run.completed_at = _utcnow()
                run.error_code = "stale_lock"
                run.error_message = "Run lost its store lock to a newer run"
                self.db.commit()
            logger.warning(
                "Sync run lost its store lock",
                extra={
                    "tenant_id": self.tenant_id,
                    "store_id": store_id,
                    "run_id": run_id,
                    "status": run.status,
                    "records_processed": records_processed,
                },
            )

        except Exception as e:
            self.db.rollback()
            self._record_failure(run_id, store_id, e)

        finally:
            if client is not None:
                await client.close()
            self._release_store(store_id, run_id)

        run = self._get_run(run_id)
        return SyncRunResult(
            run_id=run.id,
            store_id=store_id,
            sync_type=run.sync_type,
            status=run.status,
            records_processed=run.records_processed or 0,
            resource_counts=dict(run.resource_counts or {}),
            watermark_before=run.watermark_before,
            watermark_after=run.watermark_after,
            error_message=run.error_message,
            error_code=run.error_code,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )

    async def run_sync(self, store_id: str, sync_type: SyncType = SyncType.INCREMENTAL) -> SyncRunResult:
        """
        Run a full or incremental sync for one store to completion.

        Raises:
            StoreNotFoundError: No such store for this tenant
            StoreNotSyncableError: Store disconnected or without credential
            SyncInProgressError: Another run holds the store
        """
        run = self.start_run(store_id, sync_type)
        return await self.execute_run(run.id)

    async def trigger_sync(self, store_id: str, sync_type: SyncType = SyncType.INCREMENTAL) -> SyncRunResult:
        """HTTP-facing name of run_sync."""
        return await self.run_sync(store_id, sync_type)

    def cancel(self, store_id: str) -> bool:
        """
        Request cancellation of the store's running sync.

        The run stops at its next between-page checkpoint.

        Returns:
            True if a run was in progress, False otherwise

        Raises:
            StoreNotFoundError: No such store for this tenant
        """
        store = self._get_store(store_id)
        if not store.sync_in_progress:
            return False

        self.request_cancel(store_id)
        logger.info(
            "Sync cancellation requested",
            extra={"tenant_id": self.tenant_id, "store_id": store_id, "run_id": store.current_run_id},
        )
        return True

    def get_sync_status(self) -> Dict[str, Any]:
        """Sync state of every store of the tenant."""
        stores = (
            self.db.query(ShopifyStore)
            .filter(ShopifyStore.tenant_id == self.tenant_id)
            .order_by(ShopifyStore.created_at.asc())
            .all()
        )

        entries: List[Dict[str, Any]] = []
        for store in stores:
            current_run = self._get_run(store.current_run_id) if store.current_run_id else None
            last_run = (
                self.db.query(SyncRun)
                .filter(
                    SyncRun.tenant_id == self.tenant_id,
                    SyncRun.store_id == store.id,
                    SyncRun.status.in_([
                        SyncRunStatus.COMPLETED.value,
                        SyncRunStatus.FAILED.value,
                        SyncRunStatus.CANCELLED.value,
                    ]),
                )
                .order_by(SyncRun.started_at.desc())
                .first()
            )
            entries.append({
                "store_id": store.id,
                "shop_domain": store.shop_domain,
                "status": store.status,
                "is_connected": store.is_connected,
                "sync_in_progress": bool(store.sync_in_progress),
                "sync_watermark": store.sync_watermark,
                "sync_cursors": store.sync_cursors or {},
                "last_sync_at": store.last_sync_at.isoformat() if store.last_sync_at else None,
                "current_run": current_run.to_summary() if current_run else None,
                "last_run": last_run.to_summary() if last_run else None,
            })

        return {
            "stores": entries,
            "total": len(entries),
            "syncing": sum(1 for e in entries if e["sync_in_progress"]),
        }

    # ------------------------------------------------------------------
    # Page steps
    # ------------------------------------------------------------------

    async def _fetch_page(
        self,
        client,
        resource: str,
        cursor: Optional[str],
        filters: Optional[Dict[str, Any]],
        run_id: str,
    ) -> ResourcePage:
        """Fetch one page, retrying retryable remote errors with backoff."""
        attempt = 0
        while True:
            try:
                return await client.list(
                    resource,
                    cursor=cursor,
                    limit=self.settings.page_size,
                    filters=filters,
                )
            except ShopifyAuthError:
                raise
            except ShopifyRemoteError as e:
                if not e.retryable or attempt >= self.settings.max_page_retries:
                    raise

                delay = self._calculate_backoff_delay(attempt)
                if isinstance(e, ShopifyRateLimitError) and e.retry_after:
                    delay = max(delay, float(e.retry_after))

                logger.warning(
                    "Page fetch failed, retrying after delay",
                    extra={
                        "tenant_id": self.tenant_id,
                        "run_id": run_id,
                        "resource": resource,
                        "since_id": cursor,
                        "attempt": attempt + 1,
                        "delay_seconds": delay,
                        "error": e.message,
                    },
                )
                await asyncio.sleep(delay)
                attempt += 1

    def _transform_page(self, page: ResourcePage, store_id: str) -> List[Dict[str, Any]]:
        rows = []
        for record in page.records:
            if remote_id_of(record.get("id")) is None:
                logger.warning(
                    "Skipping record without id",
                    extra={"tenant_id": self.tenant_id, "store_id": store_id, "resource": page.resource},
                )
                continue
            rows.append(transform(page.resource, record, self.tenant_id, store_id))
        return rows

    def _commit_page(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to commit sync page: {e}") from e

    def _record_failure(self, run_id: str, store_id: str, error: Exception) -> None:
        """Persist the failed state; auth failures also flag the store."""
        code = _error_code(error)
        message = error.message if isinstance(error, (ShopifyError, PersistenceError)) else str(error)

        try:
            run = self._get_run(run_id)
            if SyncRunStatus(run.status).is_terminal:
                # Already failed by a stale-lock takeover
                logger.warning(
                    "Sync run failed after losing its store lock",
                    extra={"tenant_id": self.tenant_id, "run_id": run_id, "error_code": code, "error": message},
                )
                return
            run.error_message = message
            run.error_code = code
            self._transition(run, SyncRunStatus.FAILED, commit=False)

            if isinstance(error, ShopifyAuthError):
                store = self._get_store(store_id)
                store.status = StoreStatus.FAILED

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to persist sync failure",
                extra={"tenant_id": self.tenant_id, "run_id": run_id, "error": str(e)},
            )

        log = logger.error if code != "auth_error" else logger.warning
        log(
            "SYNC_FAILURE_ALERT: Sync run failed",
            extra={
                "tenant_id": self.tenant_id,
                "store_id": store_id,
                "run_id": run_id,
                "error_code": code,
                "error": message,
            },
            exc_info=code == "internal_error",
        )
