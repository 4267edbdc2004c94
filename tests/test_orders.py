"""
Order placement and payment verification against an in-memory database.
"""

import pytest

from cart import SessionCart
from database import ORDERS, PRODUCTS, USERS, to_object_id
from errors import NotFound, PaymentSignatureError, UpstreamError, ValidationFailed
from orders import get_order, place_order, update_status, verify_payment
from payments import sign


@pytest.fixture
def user(db, make_user):
    return db[USERS].find_one({"_id": to_object_id(make_user())})


@pytest.fixture
def cart(make_product):
    cart = SessionCart()
    cart.add(make_product(price=1000, discounted_price=900), 1, "King", "White")
    return cart


def place(db, user, cart, settings, gateway, mailer, method="cod", address_id="addr1"):
    return place_order(db, user, cart, address_id, method, "Leave at the door", settings, gateway, mailer)


class TestPlaceOrder:
    def test_cash_on_delivery(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer)

        order = get_order(db, placed.order_id)
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["payment_method"] == "cod"
        assert order["subtotal"] == 900
        assert order["shipping"] == 50
        assert order["total"] == 950
        assert order["items"][0]["name"] == "Cotton Bedsheet"
        assert order["items"][0]["size"] == "King"
        assert order["shipping_address"]["city"] == "Pune"
        assert order["note"] == "Leave at the door"

        assert gateway.calls == []
        assert [email for email, _ in mailer.order_confirmations] == ["customer@example.com"]
        assert cart.is_empty()

    def test_online_creates_gateway_order_and_keeps_cart(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer, method="online")

        assert gateway.calls == [{"amount": 95000, "currency": "INR", "receipt": placed.order_id}]
        assert placed.gateway_order_id == "order_rzp_1"
        assert placed.amount == 95000
        order = get_order(db, placed.order_id)
        assert order["status"] == "pending"
        assert order["gateway_order_id"] == "order_rzp_1"
        assert mailer.order_confirmations == []
        assert not cart.is_empty()

    def test_gateway_failure_leaves_pending_order(self, db, user, cart, settings, gateway, mailer):
        gateway.fail = True
        with pytest.raises(UpstreamError):
            place(db, user, cart, settings, gateway, mailer, method="online")

        orders = list(db[ORDERS].find())
        assert len(orders) == 1
        assert orders[0]["status"] == "pending"
        assert orders[0]["gateway_order_id"] is None
        assert not cart.is_empty()

    def test_unknown_address(self, db, user, cart, settings, gateway, mailer):
        with pytest.raises(ValidationFailed):
            place(db, user, cart, settings, gateway, mailer, address_id="elsewhere")

    def test_unknown_payment_method(self, db, user, cart, settings, gateway, mailer):
        with pytest.raises(ValidationFailed):
            place(db, user, cart, settings, gateway, mailer, method="barter")

    def test_empty_cart(self, db, user, settings, gateway, mailer):
        with pytest.raises(ValidationFailed):
            place(db, user, SessionCart(), settings, gateway, mailer)
        assert db[ORDERS].count_documents({}) == 0

    def test_out_of_stock_product(self, db, user, settings, gateway, mailer, make_product):
        cart = SessionCart()
        cart.add(make_product(name="Sold Out", stock={"available": False, "quantity": 0}), 1)
        with pytest.raises(ValidationFailed):
            place(db, user, cart, settings, gateway, mailer)

    def test_line_prices_are_a_snapshot(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer)
        db[PRODUCTS].update_many({}, {"$set": {"price": 5000, "discounted_price": 4000}})

        order = get_order(db, placed.order_id)
        assert order["items"][0]["price"] == 900
        assert order["total"] == 950


class TestVerifyPayment:
    @pytest.fixture
    def placed(self, db, user, cart, settings, gateway, mailer):
        return place(db, user, cart, settings, gateway, mailer, method="online")

    def test_valid_signature_confirms_order(self, db, user, cart, placed, settings, mailer):
        signature = sign(settings.razorpay_key_secret, placed.gateway_order_id, "pay_1")
        order = verify_payment(db, user, placed.gateway_order_id, "pay_1", signature, settings, mailer, cart)

        assert order["status"] == "confirmed"
        assert order["payment_status"] == "paid"
        assert order["payment_id"] == "pay_1"
        assert len(mailer.order_confirmations) == 1
        assert cart.is_empty()

    def test_forged_signature_changes_nothing(self, db, user, cart, placed, settings, mailer):
        with pytest.raises(PaymentSignatureError):
            verify_payment(db, user, placed.gateway_order_id, "pay_1", "0" * 64, settings, mailer, cart)

        order = get_order(db, placed.order_id)
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["payment_id"] is None
        assert mailer.order_confirmations == []
        assert not cart.is_empty()

    def test_repeat_callback_sends_one_email(self, db, user, cart, placed, settings, mailer):
        signature = sign(settings.razorpay_key_secret, placed.gateway_order_id, "pay_1")
        verify_payment(db, user, placed.gateway_order_id, "pay_1", signature, settings, mailer, cart)
        verify_payment(db, user, placed.gateway_order_id, "pay_1", signature, settings, mailer, cart)
        assert len(mailer.order_confirmations) == 1

    def test_store_order_id_is_accepted(self, db, user, cart, placed, settings, mailer):
        signature = sign(settings.razorpay_key_secret, placed.order_id, "pay_1")
        order = verify_payment(db, user, placed.order_id, "pay_1", signature, settings, mailer, cart)

        assert str(order["_id"]) == placed.order_id
        assert order["status"] == "confirmed"
        assert order["payment_status"] == "paid"

    def test_signature_over_other_id_is_rejected(self, db, user, cart, placed, settings, mailer):
        signature = sign(settings.razorpay_key_secret, placed.gateway_order_id, "pay_1")
        with pytest.raises(PaymentSignatureError):
            verify_payment(db, user, placed.order_id, "pay_1", signature, settings, mailer, cart)

    def test_cancelled_order_stays_cancelled(self, db, user, cart, placed, settings, mailer):
        update_status(db, placed.order_id, "cancelled")
        signature = sign(settings.razorpay_key_secret, placed.gateway_order_id, "pay_1")
        with pytest.raises(ValidationFailed):
            verify_payment(db, user, placed.gateway_order_id, "pay_1", signature, settings, mailer, cart)

        order = get_order(db, placed.order_id)
        assert order["status"] == "cancelled"
        assert order["payment_status"] == "pending"
        assert mailer.order_confirmations == []

    def test_other_users_order_is_not_found(self, db, placed, cart, settings, mailer, make_user):
        stranger = db[USERS].find_one({"_id": to_object_id(make_user(email="other@example.com"))})
        signature = sign(settings.razorpay_key_secret, placed.gateway_order_id, "pay_1")
        with pytest.raises(NotFound):
            verify_payment(db, stranger, placed.gateway_order_id, "pay_1", signature, settings, mailer, cart)


class TestUpdateStatus:
    def test_pending_to_cancelled(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer)
        assert update_status(db, placed.order_id, "cancelled")["status"] == "cancelled"

    def test_only_pending_orders_move(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer)
        update_status(db, placed.order_id, "confirmed")
        with pytest.raises(ValidationFailed):
            update_status(db, placed.order_id, "cancelled")

    def test_unknown_status(self, db, user, cart, settings, gateway, mailer):
        placed = place(db, user, cart, settings, gateway, mailer)
        with pytest.raises(ValidationFailed):
            update_status(db, placed.order_id, "shipped")
