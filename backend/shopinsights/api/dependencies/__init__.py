"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from shopinsights.api.dependencies.services import (
    get_client_factory,
    get_sync_session_factory,
    get_store_service,
    get_sync_orchestrator,
)

__all__ = [
    "get_client_factory",
    "get_sync_session_factory",
    "get_store_service",
    "get_sync_orchestrator",
]
