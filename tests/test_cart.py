"""
Session cart and pricing.

Run with:
  pytest tests/test_cart.py -v
"""

import pytest
from bson import ObjectId

from cart import SessionCart, compute_totals, price_cart, shipping_for
from errors import NotFound, UnresolvedCartItems, ValidationFailed


class TestSessionCart:
    def test_same_product_size_color_merges_into_one_line(self):
        cart = SessionCart()
        cart.add("p1", 1, "King", "White")
        cart.add("p1", 2, "King", "White")
        assert len(cart) == 1
        assert cart.lines[0].quantity == 3

    def test_different_variant_is_a_separate_line(self):
        cart = SessionCart()
        cart.add("p1", 1, "King", "White")
        cart.add("p1", 1, "Double", "White")
        assert len(cart) == 2
        assert cart.count == 2

    def test_blank_size_and_color_are_treated_as_none(self):
        cart = SessionCart()
        cart.add("p1", 1, "", "  ")
        cart.add("p1", 1)
        assert len(cart) == 1
        assert cart.lines[0].size is None

    def test_add_rejects_zero_quantity(self):
        with pytest.raises(ValidationFailed):
            SessionCart().add("p1", 0)

    def test_update_sets_quantity(self):
        cart = SessionCart()
        line = cart.add("p1", 1)
        cart.update(line.line_id, 5)
        assert cart.count == 5

    def test_update_below_one_removes_line(self):
        cart = SessionCart()
        line = cart.add("p1", 2)
        assert cart.update(line.line_id, 0) is None
        assert cart.is_empty()

    def test_unknown_line_is_not_found(self):
        with pytest.raises(NotFound):
            SessionCart().remove("deadbeef0000")

    def test_session_round_trip_skips_malformed_entries(self):
        session = {"cart": [
            {"product_id": "p1", "quantity": 2, "size": "King", "color": None},
            {"product_id": "", "quantity": 1},
            {"product_id": "p2", "quantity": "lots"},
            {"product_id": "p3", "quantity": 0},
        ]}
        cart = SessionCart.from_session(session)
        assert [line.product_id for line in cart] == ["p1"]

        cart.add("p4", 1)
        cart.save(session)
        assert len(SessionCart.from_session(session)) == 2

    def test_prune_drops_every_line_of_a_product(self):
        cart = SessionCart()
        cart.add("p1", 1, "King")
        cart.add("p1", 1, "Double")
        cart.add("p2", 1)
        assert cart.prune(["p1"]) == 2
        assert [line.product_id for line in cart] == ["p2"]


class TestTotals:
    def test_flat_fee_at_or_below_threshold(self, settings):
        assert shipping_for(999, settings) == 50
        assert compute_totals(900, settings) == (50, 950)

    def test_free_shipping_strictly_above_threshold(self, settings):
        assert shipping_for(999.01, settings) == 0
        assert compute_totals(2100, settings) == (0, 2100)

    def test_empty_cart_still_shows_fee(self, settings):
        assert compute_totals(0, settings) == (50, 50)


class TestPriceCart:
    def test_prices_from_discounted_price(self, db, settings, make_product):
        pid = make_product(price=1000, discounted_price=900)
        cart = SessionCart()
        cart.add(pid, 1)
        summary = price_cart(db, cart, settings)
        assert summary.subtotal == 900
        assert summary.shipping == 50
        assert summary.total == 950

    def test_second_product_crosses_free_shipping(self, db, settings, make_product):
        first = make_product(name="Cotton Bedsheet", discounted_price=900)
        second = make_product(name="Silk Pillow Cover", price=700, discounted_price=600)
        cart = SessionCart()
        cart.add(first, 1)
        cart.add(second, 2)
        summary = price_cart(db, cart, settings)
        assert summary.subtotal == 2100
        assert summary.shipping == 0
        assert summary.total == 2100
        assert {line.line_total for line in summary.lines} == {900, 1200}

    def test_missing_product_is_reported_not_dropped(self, db, settings, make_product):
        pid = make_product()
        ghost = str(ObjectId())
        cart = SessionCart()
        cart.add(pid, 1)
        cart.add(ghost, 1)
        with pytest.raises(UnresolvedCartItems) as info:
            price_cart(db, cart, settings)
        assert info.value.product_ids == [ghost]

    def test_malformed_product_id_is_unresolved(self, db, settings):
        cart = SessionCart()
        cart.add("not-an-object-id", 1)
        with pytest.raises(UnresolvedCartItems):
            price_cart(db, cart, settings)
