"""
Shopify data webhooks (orders, customers, products).

SECURITY: Every webhook MUST carry a valid X-Shopify-Hmac-Sha256 signature.
Without SHOPIFY_API_SECRET the route refuses webhooks (503) unless
SHOPIFY_WEBHOOK_VERIFY=false is set for local development. Tenant context
comes from the store the callback URL names, not from a bearer token.

Once a webhook is authenticated the route always answers 200 so Shopify
does not keep retrying events we cannot apply.

Documentation: https://shopify.dev/docs/apps/webhooks/configuration/https
"""

import os
import hmac
import json
import base64
import hashlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from shopinsights.database.session import get_db_session
from shopinsights.services.webhook_ingestor import WebhookIngestor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/shopify", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    status: str
    topic: Optional[str] = None
    remote_id: Optional[str] = None
    outcome: Optional[str] = None
    message: Optional[str] = None


def verify_shopify_webhook(data: bytes, hmac_header: Optional[str], api_secret: str) -> bool:
    """
    Verify Shopify webhook HMAC signature.

    Shopify signs webhooks using HMAC-SHA256 with the app's API secret,
    base64 encoded.

    Args:
        data: Raw request body bytes
        hmac_header: X-Shopify-Hmac-Sha256 header value
        api_secret: Shopify app API secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not hmac_header or not api_secret:
        return False

    computed = hmac.new(api_secret.encode("utf-8"), data, hashlib.sha256).digest()
    computed_digest = base64.b64encode(computed).decode("utf-8")

    # Constant-time comparison
    return hmac.compare_digest(computed_digest, hmac_header)


def signature_checks_disabled() -> bool:
    """Unsigned webhooks are accepted only when SHOPIFY_WEBHOOK_VERIFY=false."""
    return os.getenv("SHOPIFY_WEBHOOK_VERIFY", "true").strip().lower() in ("false", "0", "no")


async def read_verified_body(request: Request) -> bytes:
    """
    Read the raw body and check its signature.

    Raises:
        HTTPException: 503 if no secret is configured, 401 if the signature
            is missing or invalid
    """
    body = await request.body()
    api_secret = os.getenv("SHOPIFY_API_SECRET")
    if not api_secret:
        if signature_checks_disabled():
            logger.warning("Accepting unsigned webhook: SHOPIFY_WEBHOOK_VERIFY=false")
            return body
        logger.error("SHOPIFY_API_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured"
        )

    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    if not hmac_header:
        logger.warning("Missing HMAC header in webhook")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing HMAC signature"
        )

    if not verify_shopify_webhook(body, hmac_header, api_secret):
        logger.warning("Invalid webhook HMAC", extra={
            "shop_domain": request.headers.get("X-Shopify-Shop-Domain"),
        })
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid HMAC signature"
        )
    return body


@router.post("/{store_id}/{topic_slug}", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    store_id: str,
    topic_slug: str,
    db: Session = Depends(get_db_session),
    x_shopify_topic: Optional[str] = Header(None, alias="X-Shopify-Topic"),
    x_shopify_webhook_id: Optional[str] = Header(None, alias="X-Shopify-Webhook-Id"),
):
    """
    Apply an order, customer or product webhook for one store.

    SECURITY: Verifies HMAC signature before processing.
    """
    body = await read_verified_body(request)
    topic = x_shopify_topic or topic_slug

    logger.info("Shopify webhook received", extra={
        "store_id": store_id,
        "topic": topic,
        "webhook_id": x_shopify_webhook_id,
    })

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Invalid JSON in webhook body", extra={
            "store_id": store_id,
            "topic": topic,
        })
        return WebhookResponse(status="failed", topic=topic, message="Invalid JSON body")

    result = WebhookIngestor(db).ingest(store_id, topic, payload)

    return WebhookResponse(
        status=result.status.value,
        topic=result.topic,
        remote_id=result.remote_id,
        outcome=result.outcome,
        message=result.reason,
    )
