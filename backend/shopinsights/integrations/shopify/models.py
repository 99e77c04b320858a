"""
Data models for Shopify Admin API responses.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class ShopMetadata:
    """Shop details returned by GET /shop.json."""

    shop_id: Optional[str]
    name: Optional[str]
    domain: Optional[str]
    email: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None
    plan_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShopMetadata":
        shop_id = data.get("id")
        return cls(
            shop_id=str(shop_id) if shop_id is not None else None,
            name=data.get("name"),
            domain=data.get("myshopify_domain") or data.get("domain"),
            email=data.get("email"),
            currency=data.get("currency"),
            timezone=data.get("iana_timezone") or data.get("timezone"),
            plan_name=data.get("plan_name"),
        )


@dataclass
class ResourcePage:
    """One page of raw records from a list endpoint."""

    resource: str
    records: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def next_cursor(self) -> Optional[str]:
        """Remote id of the last record, used as since_id for the next page."""
        for record in reversed(self.records):
            remote_id = record.get("id") if isinstance(record, dict) else None
            if remote_id is not None:
                return str(remote_id)
        return None

    def is_last_page(self, limit: int) -> bool:
        """A page smaller than the requested size ends pagination."""
        return len(self.records) < limit

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class WebhookDescriptor:
    """A webhook subscription registered on the shop."""

    webhook_id: Optional[str]
    topic: str
    address: str
    format: str = "json"
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebhookDescriptor":
        webhook_id = data.get("id")
        return cls(
            webhook_id=str(webhook_id) if webhook_id is not None else None,
            topic=data.get("topic", ""),
            address=data.get("address", ""),
            format=data.get("format", "json"),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.webhook_id,
            "topic": self.topic,
            "address": self.address,
            "format": self.format,
            "created_at": self.created_at,
        }
