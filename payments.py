"""
Razorpay integration: hosted-checkout order creation and callback signature checks.
"""
import hashlib
import hmac
from typing import Any, Dict

import requests

from errors import UpstreamError
from logger import get_logger
from settings import Settings

logger = get_logger("payments")


def to_minor_units(amount: float) -> int:
    """Rupees to paise."""
    return int(round(amount * 100))


def sign(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 of ``order_id|payment_id`` as the gateway computes it."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(secret, order_id, payment_id), signature)


class RazorpayGateway:
    """Creates gateway orders through the Razorpay REST API."""

    def __init__(self, settings: Settings):
        self.key_id = settings.razorpay_key_id
        self.key_secret = settings.razorpay_key_secret
        self.base_url = settings.razorpay_api_url.rstrip("/")

    def create_order(self, amount: int, currency: str, receipt: str) -> Dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise UpstreamError("Online payments are not configured")

        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        logger.info("Creating Razorpay order for receipt %s (%s %s)", receipt, amount, currency)
        try:
            response = requests.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
            )
        except requests.RequestException as exc:
            logger.error("Razorpay order creation failed for %s: %s", receipt, exc)
            raise UpstreamError("Could not reach the payment gateway")

        if response.status_code >= 300:
            logger.error("Razorpay order creation rejected for %s: %s %s",
                         receipt, response.status_code, response.text)
            raise UpstreamError("The payment gateway rejected the order")

        data = response.json()
        if not data.get("id"):
            raise UpstreamError("The payment gateway returned no order id")
        return data
