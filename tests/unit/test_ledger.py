from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from flowtrack.domain.exceptions import InvalidArgumentError
from flowtrack.domain.ledger import (
    ShipmentEntry, apply_shipment, ensure_line_items, parse_product_description, parse_shipped_items
)
from flowtrack.domain.models import LineItem, Order

pytestmark = pytest.mark.unit


def make_order(**fields):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    data = {"id": "ORD-001", "customer_name": "Jane", "created_at": now, "updated_at": now}
    data.update(fields)
    return Order(**data)


class TestParseProductDescription:
    def test_parses_quantity_and_name(self):
        items = parse_product_description("2 x Mug, 10 x Embroidered Cap")
        assert [(li.name, li.quantity, li.shipped_quantity) for li in items] == [
            ("Mug", 2, 0),
            ("Embroidered Cap", 10, 0),
        ]

    def test_unparsable_segment_defaults_to_one(self):
        items = parse_product_description("Custom patch, 3 x Hoodie")
        assert [(li.name, li.quantity) for li in items] == [("Custom patch", 1), ("Hoodie", 3)]

    def test_empty_description(self):
        assert parse_product_description("") == []
        assert parse_product_description(" , ") == []


class TestEnsureLineItems:
    def test_materializes_from_product_name(self):
        order = make_order(product_name="4 x Mug")
        ensure_line_items(order)
        assert order.line_items == [LineItem(name="Mug", quantity=4)]

    def test_is_noop_when_line_items_exist(self):
        order = make_order(product_name="4 x Mug", line_items=[LineItem(name="Cap", quantity=1, shipped_quantity=1)])
        ensure_line_items(order)
        ensure_line_items(order)
        assert order.line_items == [LineItem(name="Cap", quantity=1, shipped_quantity=1)]


class TestApplyShipment:
    def test_partial_then_full(self):
        order = make_order(line_items=[LineItem(name="Mug", quantity=10)])
        assert apply_shipment(order, [ShipmentEntry(name="Mug", quantity=4)]) is False
        assert order.line_items[0].shipped_quantity == 4
        assert apply_shipment(order, [ShipmentEntry(name="Mug", quantity=6)]) is True
        assert order.line_items[0].shipped_quantity == 10

    def test_fully_shipped_requires_every_item(self):
        order = make_order(line_items=[LineItem(name="Mug", quantity=2), LineItem(name="Cap", quantity=1)])
        assert apply_shipment(order, [ShipmentEntry(name="Mug", quantity=2)]) is False
        assert apply_shipment(order, [ShipmentEntry(name="Cap", quantity=1)]) is True

    def test_zero_quantity_is_accepted(self):
        order = make_order(line_items=[LineItem(name="Mug", quantity=2)])
        assert apply_shipment(order, [ShipmentEntry(name="Mug", quantity=0)]) is False
        assert order.line_items[0].shipped_quantity == 0

    @pytest.mark.parametrize("entries", [
        [ShipmentEntry(name="Mug", quantity=-1)],
        [ShipmentEntry(name="Mug", quantity=11)],
        [ShipmentEntry(name="Mug", quantity=6), ShipmentEntry(name="Mug", quantity=5)],
        [ShipmentEntry(name="Cap", quantity=1), ShipmentEntry(name="Mug", quantity=1)],
        [ShipmentEntry(name="Teapot", quantity=1)],
    ])
    def test_invalid_shipment_leaves_ledger_unchanged(self, entries):
        order = make_order(line_items=[LineItem(name="Mug", quantity=10), LineItem(name="Cap", quantity=1, shipped_quantity=1)])
        before = order.model_dump()
        with pytest.raises(InvalidArgumentError):
            apply_shipment(order, entries)
        assert order.model_dump() == before

    def test_bounds_hold_over_many_shipments(self):
        order = make_order(line_items=[LineItem(name="Mug", quantity=7)])
        for quantity in [1, 3, 0, 5, 2, 1, 1]:
            try:
                apply_shipment(order, [ShipmentEntry(name="Mug", quantity=quantity)])
            except InvalidArgumentError:
                pass
            item = order.line_items[0]
            assert 0 <= item.shipped_quantity <= item.quantity
        assert order.line_items[0].shipped_quantity == 7


class TestLineItemBounds:
    @pytest.mark.parametrize("fields", [
        {"quantity": -4},
        {"quantity": 2, "shipped_quantity": 9},
        {"quantity": 2, "shipped_quantity": -1},
    ])
    def test_out_of_range_counts_are_rejected(self, fields):
        with pytest.raises(ValidationError):
            LineItem(name="Mug", **fields)

    def test_fully_shipped_line_is_valid(self):
        assert LineItem(name="Mug", quantity=2, shipped_quantity=2).is_fully_shipped()


class TestSameNameLines:
    def shirts(self):
        return make_order(line_items=[LineItem(name="Shirt", quantity=2), LineItem(name="Shirt", quantity=3)])

    def test_full_quantity_ships_every_line(self):
        order = self.shirts()
        assert apply_shipment(order, [ShipmentEntry(name="Shirt", quantity=5)]) is True
        assert [li.shipped_quantity for li in order.line_items] == [2, 3]

    def test_lines_fill_in_order(self):
        order = self.shirts()
        assert apply_shipment(order, [ShipmentEntry(name="Shirt", quantity=4)]) is False
        assert [li.shipped_quantity for li in order.line_items] == [2, 2]
        assert apply_shipment(order, [ShipmentEntry(name="Shirt", quantity=1)]) is True
        assert [li.shipped_quantity for li in order.line_items] == [2, 3]

    def test_limit_is_the_combined_remaining(self):
        order = self.shirts()
        before = order.model_dump()
        with pytest.raises(InvalidArgumentError, match="only 5 of 5"):
            apply_shipment(order, [ShipmentEntry(name="Shirt", quantity=6)])
        assert order.model_dump() == before

    def test_duplicate_names_from_product_description(self):
        order = make_order(product_name="2 x Shirt, 3 x Shirt")
        ensure_line_items(order)
        assert apply_shipment(order, [ShipmentEntry(name="Shirt", quantity=5)]) is True
        assert all(li.is_fully_shipped() for li in order.line_items)


class TestParseShippedItems:
    def test_json_string(self):
        assert parse_shipped_items('[{"name": "Mug", "quantity": 4}]') == [ShipmentEntry(name="Mug", quantity=4)]

    def test_missing_or_empty_means_no_shipment(self):
        assert parse_shipped_items(None) == []
        assert parse_shipped_items("") == []
        assert parse_shipped_items("[]") == []

    @pytest.mark.parametrize("raw", ["not json", '{"name": "Mug"}', '[{"name": "Mug"}]', '[{"quantity": 1}]', "[1, 2]"])
    def test_malformed_payload(self, raw):
        with pytest.raises(InvalidArgumentError):
            parse_shipped_items(raw)
