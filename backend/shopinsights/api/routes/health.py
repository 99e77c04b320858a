"""Health check endpoint. Bypasses authentication."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shopinsights.database.session import get_session_factory, session_scope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def check_database() -> str:
    """Run SELECT 1 against the configured database."""
    try:
        factory = get_session_factory()
    except ValueError:
        return "not_configured"

    try:
        with session_scope(factory) as session:
            session.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError as e:
        logger.error("Database health probe failed", extra={"error": str(e)})
        return "unavailable"


@router.get("/health")
async def health():
    database = check_database()
    healthy = database == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "database": database,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
