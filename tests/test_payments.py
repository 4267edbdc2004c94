"""Payment signature checks and Razorpay order creation."""

import pytest
import requests

from errors import UpstreamError
from payments import RazorpayGateway, sign, to_minor_units, verify_signature


def test_minor_units():
    assert to_minor_units(950) == 95000
    assert to_minor_units(19.99) == 1999


class TestSignature:
    def test_valid_signature(self):
        signature = sign("secret", "order_1", "pay_1")
        assert verify_signature("secret", "order_1", "pay_1", signature)

    def test_tampered_payment_id(self):
        signature = sign("secret", "order_1", "pay_1")
        assert not verify_signature("secret", "order_1", "pay_2", signature)

    def test_wrong_secret(self):
        assert not verify_signature("secret", "order_1", "pay_1", sign("other", "order_1", "pay_1"))

    def test_empty_secret_or_signature(self):
        assert not verify_signature("", "order_1", "pay_1", sign("", "order_1", "pay_1"))
        assert not verify_signature("secret", "order_1", "pay_1", "")


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.text = str(data)

    def json(self):
        return self._data


class TestGateway:
    def test_create_order_posts_amount_in_minor_units(self, settings, monkeypatch):
        seen = {}

        def fake_post(url, json=None, auth=None):
            seen.update(url=url, json=json, auth=auth)
            return FakeResponse(200, {"id": "order_abc", "amount": json["amount"]})

        monkeypatch.setattr(requests, "post", fake_post)
        data = RazorpayGateway(settings).create_order(amount=95000, currency="INR", receipt="o1")

        assert data["id"] == "order_abc"
        assert seen["url"] == "https://api.razorpay.com/v1/orders"
        assert seen["json"]["amount"] == 95000
        assert seen["json"]["receipt"] == "o1"
        assert seen["auth"] == ("rzp_test_key", "rzp_test_secret")

    def test_rejected_order(self, settings, monkeypatch):
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(400, {"error": "bad"}))
        with pytest.raises(UpstreamError):
            RazorpayGateway(settings).create_order(amount=100, currency="INR", receipt="o1")

    def test_network_failure(self, settings, monkeypatch):
        def boom(*args, **kwargs):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(requests, "post", boom)
        with pytest.raises(UpstreamError):
            RazorpayGateway(settings).create_order(amount=100, currency="INR", receipt="o1")

    def test_unconfigured_gateway(self):
        from settings import Settings

        with pytest.raises(UpstreamError):
            RazorpayGateway(Settings()).create_order(amount=100, currency="INR", receipt="o1")
