"""
Tests for Shopify record transformers.

CRITICAL: These tests verify that:
1. Missing or malformed fields fall back to their defaults
2. Money is parsed exactly (Decimal) and never from non-finite values
3. Tags become trimmed lists
4. Remote timestamps are kept verbatim
5. Local ids are stable per (tenant, store, resource, remote id)
"""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from shopinsights.services.transformers import (
    INT_MAX,
    INT_MIN,
    ZERO,
    earliest_timestamp,
    later_timestamp,
    parse_money,
    parse_int,
    parse_remote_timestamp,
    parse_tags,
    remote_id_of,
    transform,
    transform_customer,
    transform_order,
    transform_product,
    watermark_value,
)

from mocks import customer_payload, order_payload, product_payload

TENANT = "org_transform"
STORE = "store-1"


# =============================================================================
# Field parsers
# =============================================================================

class TestParsers:

    @pytest.mark.parametrize("raw,expected", [
        ("59.90", Decimal("59.90")),
        ("0", Decimal("0")),
        (12, Decimal("12")),
        (" 3.5 ", Decimal("3.5")),
    ])
    def test_parse_money_valid(self, raw, expected):
        assert parse_money(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity", "-inf", True, {}, []])
    def test_parse_money_invalid(self, raw):
        assert parse_money(raw) is None

    @pytest.mark.parametrize("raw,expected", [
        (3, 3),
        ("7", 7),
        ("7.0", 7),
        ("7.5", None),
        (True, None),
        ("x", None),
        (str(2 ** 70), None),
        (2 ** 31 - 1, 2 ** 31 - 1),
        (2 ** 31, None),
        (-(2 ** 31) - 1, None),
        ("3000000000", None),
        ("1e999999999", None),
    ])
    def test_parse_int(self, raw, expected):
        assert parse_int(raw) == expected

    def test_parse_tags_splits_and_trims(self):
        assert parse_tags(" vip ,wholesale,, ") == ["vip", "wholesale"]

    def test_parse_tags_accepts_lists(self):
        assert parse_tags(["a ", None, "", "b"]) == ["a", "b"]

    @pytest.mark.parametrize("raw", [None, 5, {"a": 1}])
    def test_parse_tags_other_types(self, raw):
        assert parse_tags(raw) == []

    @pytest.mark.parametrize("raw,expected", [
        (450789469, "450789469"),
        ("450789469", "450789469"),
        ("  ", None),
        (None, None),
        (True, None),
        (1.5, None),
    ])
    def test_remote_id_of(self, raw, expected):
        assert remote_id_of(raw) == expected

    @given(st.text())
    def test_parse_money_never_raises(self, raw):
        result = parse_money(raw)
        assert result is None or result.is_finite()

    @given(st.decimals(allow_nan=False, allow_infinity=False, places=2))
    def test_parse_money_is_exact(self, value):
        assert parse_money(str(value)) == value

    @given(st.one_of(st.integers(), st.text()))
    def test_parse_int_fits_integer_columns(self, raw):
        result = parse_int(raw)
        assert result is None or INT_MIN <= result <= INT_MAX


# =============================================================================
# Orders
# =============================================================================

class TestTransformOrder:

    def test_maps_core_fields(self):
        raw = order_payload(42)
        values = transform_order(raw, TENANT, STORE)

        assert values["tenant_id"] == TENANT
        assert values["store_id"] == STORE
        assert values["shopify_order_id"] == "42"
        assert values["order_number"] == 1042
        assert values["total_price"] == Decimal("59.90")
        assert values["tags"] == ["vip", "wholesale"]
        assert values["customer_remote_id"] == "542"
        assert values["shopify_updated_at"] == raw["updated_at"]
        assert values["shopify_created_at"] == raw["created_at"]

    def test_missing_total_price_defaults_to_zero(self):
        raw = order_payload(1)
        del raw["total_price"]

        values = transform_order(raw, TENANT, STORE)

        assert values["total_price"] == ZERO

    def test_malformed_values_use_defaults(self):
        raw = order_payload(1, total_price="n/a", total_weight="heavy", test="yes", tags=None)

        values = transform_order(raw, TENANT, STORE)

        assert values["total_price"] == ZERO
        assert values["total_weight"] == 0
        assert values["test"] is False
        assert values["tags"] == []

    def test_out_of_range_integers_use_defaults(self):
        raw = order_payload(1, order_number=2 ** 31, total_weight=3000000000)
        raw["line_items"][0]["quantity"] = -(2 ** 40)

        values = transform_order(raw, TENANT, STORE)

        assert values["order_number"] is None
        assert values["total_weight"] == 0
        assert values["line_items"][0]["quantity"] == 0

    def test_falsy_values_are_kept(self):
        raw = order_payload(1, total_price="0.00", note="", confirmed=False)

        values = transform_order(raw, TENANT, STORE)

        assert values["total_price"] == Decimal("0.00")
        assert values["note"] == ""
        assert values["confirmed"] is False

    def test_timestamps_are_not_normalised(self):
        raw = order_payload(1, updated_at="2024-03-10T09:15:00-05:00")

        values = transform_order(raw, TENANT, STORE)

        assert values["shopify_updated_at"] == "2024-03-10T09:15:00-05:00"

    def test_line_items(self):
        raw = order_payload(7)
        raw["line_items"].append({"id": 72, "quantity": "3", "price": "1.10", "properties": None})

        values = transform_order(raw, TENANT, STORE)
        items = values["line_items"]

        assert len(items) == 2
        assert items[0]["shopify_line_item_id"] == "71"
        assert items[0]["quantity"] == 2
        assert items[0]["price"] == Decimal("24.95")
        assert items[1]["quantity"] == 3
        assert items[1]["properties"] == []

    def test_non_list_line_items_ignored(self):
        values = transform_order(order_payload(1, line_items="oops"), TENANT, STORE)
        assert values["line_items"] == []

    def test_local_id_is_stable(self):
        first = transform_order(order_payload(5), TENANT, STORE)
        second = transform_order(order_payload(5, total_price="1.00"), TENANT, STORE)
        other_store = transform_order(order_payload(5), TENANT, "store-2")

        assert first["id"] == second["id"]
        assert first["id"] != other_store["id"]
        assert first["line_items"][0]["id"] == second["line_items"][0]["id"]

    @pytest.mark.parametrize("raw", [None, "order", 42, []])
    def test_non_mapping_becomes_empty_record(self, raw):
        values = transform_order(raw, TENANT, STORE)

        assert values["shopify_order_id"] is None
        assert values["total_price"] == ZERO
        assert values["line_items"] == []

    @given(st.dictionaries(
        st.sampled_from(["id", "total_price", "tags", "line_items", "customer", "updated_at", "test"]),
        st.one_of(st.none(), st.integers(), st.text(), st.booleans(), st.lists(st.integers())),
    ))
    def test_never_raises(self, raw):
        values = transform_order(raw, TENANT, STORE)
        assert values["total_price"].is_finite()
        assert isinstance(values["tags"], list)


# =============================================================================
# Customers and products
# =============================================================================

class TestTransformCustomerAndProduct:

    def test_customer(self):
        values = transform_customer(customer_payload(9, orders_count="4"), TENANT, STORE)

        assert values["shopify_customer_id"] == "9"
        assert values["total_spent"] == Decimal("120.50")
        assert values["orders_count"] == 4
        assert values["tags"] == ["newsletter"]
        assert values["addresses"] == []
        assert values["default_address"] == {}

    def test_product_uses_first_variant(self):
        values = transform_product(product_payload(3), TENANT, STORE)

        assert values["shopify_product_id"] == "3"
        assert values["price"] == Decimal("24.95")
        assert values["compare_at_price"] == Decimal("29.95")
        assert values["inventory_quantity"] == 12
        assert values["tags"] == ["coffee", "beans"]

    def test_product_without_variants(self):
        values = transform_product(product_payload(3, variants=[]), TENANT, STORE)

        assert values["price"] == ZERO
        assert values["inventory_quantity"] == 0
        assert values["variants"] == []

    def test_dispatch(self):
        assert transform("customers", customer_payload(1), TENANT, STORE)["shopify_customer_id"] == "1"

    def test_dispatch_unknown_resource(self):
        with pytest.raises(ValueError):
            transform("refunds", {}, TENANT, STORE)


# =============================================================================
# Timestamp helpers
# =============================================================================

class TestTimestamps:

    def test_parse_offsets_and_z(self):
        a = parse_remote_timestamp("2024-01-01T05:00:00Z")
        b = parse_remote_timestamp("2024-01-01T00:00:00-05:00")
        assert a == b

    def test_parse_naive_as_utc(self):
        assert parse_remote_timestamp("2024-01-01T00:00:00").utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("raw", [None, "", "yesterday", 17])
    def test_parse_invalid(self, raw):
        assert parse_remote_timestamp(raw) is None

    def test_watermark_value_prefers_updated_at(self):
        assert watermark_value({"created_at": "2024-01-01T00:00:00Z", "updated_at": "2024-02-01T00:00:00Z"}) \
            == "2024-02-01T00:00:00Z"
        assert watermark_value({"created_at": "2024-01-01T00:00:00Z"}) == "2024-01-01T00:00:00Z"
        assert watermark_value({"updated_at": "garbage"}) is None

    def test_later_timestamp_compares_instants(self):
        # 00:30-05:00 is later than 05:00Z
        assert later_timestamp("2024-01-01T05:00:00Z", "2024-01-01T00:30:00-05:00") == "2024-01-01T00:30:00-05:00"
        assert later_timestamp("2024-01-01T05:00:00Z", None) == "2024-01-01T05:00:00Z"
        assert later_timestamp(None, "2024-01-01T05:00:00Z") == "2024-01-01T05:00:00Z"

    def test_earliest_timestamp(self):
        values = ["2024-03-01T00:00:00Z", "bad", "2024-01-01T00:00:00Z"]
        assert earliest_timestamp(values) == "2024-01-01T00:00:00Z"
        assert earliest_timestamp([]) is None
