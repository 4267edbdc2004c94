"""
Transactional email: order confirmations and password resets.

Emails are rendered from templates/emails and sent with Resend. A failed send
is logged and reported as False; it never fails the request that triggered it.
"""
from typing import Any, Dict, Optional

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from logger import get_logger
from settings import BASE_DIR, Settings

logger = get_logger("mailer")

_env = Environment(
    loader=FileSystemLoader(str(BASE_DIR / "templates" / "emails")),
    autoescape=select_autoescape(["html"]),
)


class Mailer:
    def __init__(self, settings: Settings):
        self.api_key = settings.mail_api_key
        self.sender = f"{settings.store_name} <{settings.email_from}>"
        self.store_name = settings.store_name
        self.base_url = settings.base_url
        self.currency = settings.currency

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            logger.warning("Mail API key not configured; dropping email %r to %s", subject, to)
            return False

        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            logger.error("Error sending email %r to %s: %s", subject, to, exc)
            return False

        if not isinstance(response, dict) or not response.get("id"):
            logger.error("Unexpected mail API response for %s: %s", to, response)
            return False
        return True

    def send_order_confirmation(self, email: str, order: Dict[str, Any]) -> bool:
        order_id = str(order.get("_id") or order.get("id"))
        html = _env.get_template("order_confirmation.html").render(
            order=order, order_id=order_id, store_name=self.store_name,
            currency=self.currency, base_url=self.base_url,
        )
        return self.send(email, f"Your Order #{order_id} has been confirmed", html)

    def send_password_reset(self, email: str, token: str, name: Optional[str] = None) -> bool:
        reset_url = f"{self.base_url}/auth/reset-password/{token}"
        html = _env.get_template("password_reset.html").render(
            reset_url=reset_url, name=name, store_name=self.store_name,
        )
        return self.send(email, "Password Reset Request", html)
