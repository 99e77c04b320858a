"""Repository layer with tenant isolation enforcement."""

from shopinsights.repositories.commerce_repo import (
    CommerceRepository,
    PersistenceError,
    TenantIsolationError,
    UpsertOutcome,
    MODELS,
)

__all__ = [
    "CommerceRepository",
    "PersistenceError",
    "TenantIsolationError",
    "UpsertOutcome",
    "MODELS",
]
