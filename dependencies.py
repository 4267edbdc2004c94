"""FastAPI dependencies for the components attached to app.state."""
from fastapi import Request

from cart import SessionCart
from mailer import Mailer
from payments import RazorpayGateway
from settings import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.gateway


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_cart(request: Request) -> SessionCart:
    return SessionCart.from_session(request.session)
