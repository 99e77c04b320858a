"""
Shopify record transformers.

Maps raw Shopify REST/webhook payloads to column dictionaries for the
Order, OrderItem, Customer and Product models.

Rules:
- Every field has an explicit default in the entity's default table; a
  missing or unparseable value gets that default (falsy values such as
  0, "" and False are kept as-is when they parse).
- Money is parsed with Decimal(str(value)); non-finite values are rejected.
- Shopify "tags" (comma-separated string) become a list of trimmed strings.
- Remote timestamps are copied unchanged.
- Local ids are deterministic for a (tenant, store, resource, remote id).

Transformers never raise: anything that is not a mapping is treated as an
empty record.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional

from shopinsights.models.base import generate_uuid, stable_uuid

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Integer columns are 32-bit
INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1


# Field kinds: how a raw value is parsed
STR = "str"
INT = "int"
MONEY = "money"
BOOL = "bool"
LIST = "list"
DICT = "dict"
TAGS = "tags"
RAW = "raw"


# (column, source key, kind, default)
# Mutable defaults are produced fresh per call, see _default().
ORDER_FIELDS = (
    ("order_number", "order_number", INT, None),
    ("name", "name", STR, None),
    ("email", "email", STR, None),
    ("phone", "phone", STR, None),
    ("financial_status", "financial_status", STR, None),
    ("fulfillment_status", "fulfillment_status", STR, None),
    ("currency", "currency", STR, None),
    ("total_price", "total_price", MONEY, ZERO),
    ("subtotal_price", "subtotal_price", MONEY, ZERO),
    ("total_tax", "total_tax", MONEY, ZERO),
    ("total_discounts", "total_discounts", MONEY, ZERO),
    ("total_weight", "total_weight", INT, 0),
    ("taxes_included", "taxes_included", BOOL, None),
    ("confirmed", "confirmed", BOOL, None),
    ("test", "test", BOOL, False),
    ("gateway", "gateway", STR, None),
    ("source_name", "source_name", STR, None),
    ("landing_site", "landing_site", STR, None),
    ("referring_site", "referring_site", STR, None),
    ("note", "note", STR, None),
    ("tags", "tags", TAGS, list),
    ("processed_at", "processed_at", RAW, None),
    ("cancelled_at", "cancelled_at", RAW, None),
    ("shopify_created_at", "created_at", RAW, None),
    ("shopify_updated_at", "updated_at", RAW, None),
)

ORDER_ITEM_FIELDS = (
    ("shopify_product_id", "product_id", STR, None),
    ("shopify_variant_id", "variant_id", STR, None),
    ("title", "title", STR, None),
    ("name", "name", STR, None),
    ("variant_title", "variant_title", STR, None),
    ("vendor", "vendor", STR, None),
    ("product_type", "product_type", STR, None),
    ("sku", "sku", STR, None),
    ("quantity", "quantity", INT, 0),
    ("price", "price", MONEY, ZERO),
    ("total_discount", "total_discount", MONEY, ZERO),
    ("grams", "grams", INT, 0),
    ("taxable", "taxable", BOOL, None),
    ("requires_shipping", "requires_shipping", BOOL, None),
    ("fulfillment_status", "fulfillment_status", STR, None),
    ("fulfillment_service", "fulfillment_service", STR, None),
    ("properties", "properties", LIST, list),
)

CUSTOMER_FIELDS = (
    ("first_name", "first_name", STR, None),
    ("last_name", "last_name", STR, None),
    ("email", "email", STR, None),
    ("phone", "phone", STR, None),
    ("state", "state", STR, None),
    ("total_spent", "total_spent", MONEY, ZERO),
    ("orders_count", "orders_count", INT, 0),
    ("last_order_id", "last_order_id", STR, None),
    ("last_order_name", "last_order_name", STR, None),
    ("note", "note", STR, None),
    ("verified_email", "verified_email", BOOL, None),
    ("tax_exempt", "tax_exempt", BOOL, None),
    ("currency", "currency", STR, None),
    ("tags", "tags", TAGS, list),
    ("addresses", "addresses", LIST, list),
    ("default_address", "default_address", DICT, dict),
    ("shopify_created_at", "created_at", RAW, None),
    ("shopify_updated_at", "updated_at", RAW, None),
)

PRODUCT_FIELDS = (
    ("title", "title", STR, None),
    ("body_html", "body_html", STR, None),
    ("vendor", "vendor", STR, None),
    ("product_type", "product_type", STR, None),
    ("handle", "handle", STR, None),
    ("status", "status", STR, None),
    ("published_scope", "published_scope", STR, None),
    ("published_at", "published_at", RAW, None),
    ("tags", "tags", TAGS, list),
    ("variants", "variants", LIST, list),
    ("options", "options", LIST, list),
    ("images", "images", LIST, list),
    ("image", "image", DICT, dict),
    ("shopify_created_at", "created_at", RAW, None),
    ("shopify_updated_at", "updated_at", RAW, None),
)

# Product pricing and inventory come from the first variant
PRODUCT_VARIANT_FIELDS = (
    ("price", "price", MONEY, ZERO),
    ("compare_at_price", "compare_at_price", MONEY, ZERO),
    ("inventory_quantity", "inventory_quantity", INT, 0),
    ("inventory_policy", "inventory_policy", STR, None),
    ("inventory_management", "inventory_management", STR, None),
)


def _default(default: Any) -> Any:
    return default() if callable(default) else default


def parse_money(value: Any) -> Optional[Decimal]:
    """Parse a monetary value; None when absent, non-numeric or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer that fits a 32-bit column; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if INT_MIN <= value <= INT_MAX else None
    money = parse_money(value)
    if money is None or not INT_MIN <= money <= INT_MAX or money != money.to_integral_value():
        return None
    return int(money)


def parse_tags(value: Any) -> List[str]:
    """Split Shopify's comma-separated tag string into trimmed tags."""
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, (list, tuple)):
        return [str(tag).strip() for tag in value if tag is not None and str(tag).strip()]
    return []


def remote_id_of(value: Any) -> Optional[str]:
    """Normalise a remote id to a string (Shopify sends integers)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def _parse(kind: str, value: Any) -> Any:
    """Return the parsed value, or None when it must fall back to the default."""
    if kind == MONEY:
        return parse_money(value)
    if kind == INT:
        return parse_int(value)
    if kind == BOOL:
        return value if isinstance(value, bool) else None
    if kind == STR:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None
    if kind == LIST:
        return list(value) if isinstance(value, list) else None
    if kind == DICT:
        return dict(value) if isinstance(value, dict) else None
    if kind == TAGS:
        return parse_tags(value)
    if kind == RAW:
        return value if isinstance(value, str) and value else None
    raise ValueError(f"Unknown field kind: {kind}")


def _apply_fields(raw: Mapping[str, Any], fields) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for column, source_key, kind, default in fields:
        parsed = _parse(kind, raw.get(source_key))
        values[column] = parsed if parsed is not None else _default(default)
    return values


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    return raw if isinstance(raw, Mapping) else {}


def _local_id(tenant_id: str, store_id: str, resource: str, remote_id: Optional[str]) -> str:
    if remote_id is None:
        return generate_uuid()
    return stable_uuid(tenant_id, store_id, resource, remote_id)


def transform_order_item(
    raw: Any,
    tenant_id: str,
    store_id: str,
    order_remote_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Map a Shopify line item to OrderItem columns (order_id set on persist)."""
    raw = _as_mapping(raw)
    line_item_id = remote_id_of(raw.get("id"))
    values = _apply_fields(raw, ORDER_ITEM_FIELDS)
    if line_item_id is None:
        values["id"] = generate_uuid()
    else:
        values["id"] = stable_uuid(tenant_id, store_id, "order_items", order_remote_id, line_item_id)
    values["shopify_line_item_id"] = line_item_id
    return values


def transform_order(raw: Any, tenant_id: str, store_id: str) -> Dict[str, Any]:
    """Map a Shopify order to Order columns plus its line items."""
    raw = _as_mapping(raw)
    remote_id = remote_id_of(raw.get("id"))

    values = _apply_fields(raw, ORDER_FIELDS)
    values.update({
        "id": _local_id(tenant_id, store_id, "orders", remote_id),
        "tenant_id": tenant_id,
        "store_id": store_id,
        "shopify_order_id": remote_id,
    })

    customer = raw.get("customer")
    values["customer_remote_id"] = (
        remote_id_of(customer.get("id")) if isinstance(customer, Mapping) else None
    )

    line_items = raw.get("line_items")
    values["line_items"] = [
        transform_order_item(item, tenant_id, store_id, remote_id)
        for item in (line_items if isinstance(line_items, list) else [])
        if isinstance(item, Mapping)
    ]
    return values


def transform_customer(raw: Any, tenant_id: str, store_id: str) -> Dict[str, Any]:
    """Map a Shopify customer to Customer columns."""
    raw = _as_mapping(raw)
    remote_id = remote_id_of(raw.get("id"))

    values = _apply_fields(raw, CUSTOMER_FIELDS)
    values.update({
        "id": _local_id(tenant_id, store_id, "customers", remote_id),
        "tenant_id": tenant_id,
        "store_id": store_id,
        "shopify_customer_id": remote_id,
    })
    return values


def transform_product(raw: Any, tenant_id: str, store_id: str) -> Dict[str, Any]:
    """Map a Shopify product to Product columns."""
    raw = _as_mapping(raw)
    remote_id = remote_id_of(raw.get("id"))

    values = _apply_fields(raw, PRODUCT_FIELDS)

    variants = raw.get("variants")
    main_variant = variants[0] if isinstance(variants, list) and variants else {}
    values.update(_apply_fields(_as_mapping(main_variant), PRODUCT_VARIANT_FIELDS))

    values.update({
        "id": _local_id(tenant_id, store_id, "products", remote_id),
        "tenant_id": tenant_id,
        "store_id": store_id,
        "shopify_product_id": remote_id,
    })
    return values


TRANSFORMERS: Dict[str, Callable[[Any, str, str], Dict[str, Any]]] = {
    "orders": transform_order,
    "customers": transform_customer,
    "products": transform_product,
}

# Column holding the remote id, per resource
REMOTE_ID_COLUMNS = {
    "orders": "shopify_order_id",
    "customers": "shopify_customer_id",
    "products": "shopify_product_id",
}


def transform(resource: str, raw: Any, tenant_id: str, store_id: str) -> Dict[str, Any]:
    """
    Dispatch to the transformer for a resource.

    Raises:
        ValueError: Unknown resource (a caller bug, not bad data)
    """
    try:
        transformer = TRANSFORMERS[resource]
    except KeyError:
        raise ValueError(f"No transformer for resource: {resource}")
    return transformer(raw, tenant_id, store_id)


def parse_remote_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Shopify ISO-8601 timestamp into an aware datetime.

    Used only for ordering comparisons; stored values stay as received.
    Naive values are read as UTC. Returns None when unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def watermark_value(record: Any) -> Optional[str]:
    """
    The timestamp a record contributes to the sync watermark.

    Remote updated_at, falling back to created_at. Accepts raw Shopify
    records and transformed rows.
    """
    record = _as_mapping(record)
    for key in ("updated_at", "shopify_updated_at", "created_at", "shopify_created_at"):
        value = record.get(key)
        if isinstance(value, str) and parse_remote_timestamp(value) is not None:
            return value
    return None


def later_timestamp(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """Return whichever raw timestamp is later (ignoring unparseable ones)."""
    candidate_at = parse_remote_timestamp(candidate)
    if candidate_at is None:
        return current
    current_at = parse_remote_timestamp(current)
    if current_at is None or candidate_at > current_at:
        return candidate
    return current


def earliest_timestamp(values) -> Optional[str]:
    """Return the earliest parseable raw timestamp from an iterable, or None."""
    earliest = None
    earliest_at = None
    for value in values:
        parsed = parse_remote_timestamp(value)
        if parsed is None:
            continue
        if earliest_at is None or parsed < earliest_at:
            earliest, earliest_at = value, parsed
    return earliest
