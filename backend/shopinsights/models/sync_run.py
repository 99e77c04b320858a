"""
SyncRun model: one orchestrated pass over a store's remote data.

SECURITY: tenant_id is from the bearer token only.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, ForeignKey, Index

from shopinsights.db_base import Base
from shopinsights.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class SyncType(str, Enum):
    """Kind of sync run."""
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncRunStatus(str, Enum):
    """Lifecycle state of a sync run."""
    PENDING = "pending"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    SyncRunStatus.COMPLETED,
    SyncRunStatus.FAILED,
    SyncRunStatus.CANCELLED,
})


class SyncRun(Base, TenantScopedMixin, TimestampMixin):
    """Sync run tracking with progress and outcome."""

    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    store_id = Column(
        String(36),
        ForeignKey("shopify_stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sync_type = Column(String(20), nullable=False, default=SyncType.INCREMENTAL.value)
    status = Column(String(20), nullable=False, default=SyncRunStatus.PENDING.value)

    # Timestamps
    started_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Progress
    records_processed = Column(Integer, nullable=False, default=0)
    resource_counts = Column(JSON, nullable=True, comment="Records persisted per resource")
    cursors = Column(JSON, nullable=True, comment="Last seen remote id per resource")
    watermark_before = Column(String(64), nullable=True)
    watermark_after = Column(String(64), nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_sync_runs_tenant_store_started", "tenant_id", "store_id", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id}, store_id={self.store_id}, status={self.status})>"

    @property
    def duration_seconds(self):
        if not self.started_at or not self.completed_at:
            return None
        started = self.started_at
        completed = self.completed_at
        # SQLite hands back naive datetimes
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if completed.tzinfo is None:
            completed = completed.replace(tzinfo=timezone.utc)
        return (completed - started).total_seconds()

    def to_summary(self) -> dict:
        return {
            "run_id": self.id,
            "store_id": self.store_id,
            "sync_type": self.sync_type,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "records_processed": self.records_processed or 0,
            "resource_counts": self.resource_counts or {},
            "watermark_before": self.watermark_before,
            "watermark_after": self.watermark_after,
            "error_message": self.error_message,
            "error_code": self.error_code,
        }
