from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import AliasChoices, BaseModel, Field
from pymongo.database import Database

from cart import SessionCart, price_cart
from database import get_db
from dependencies import get_cart, get_gateway, get_mailer, get_settings
from mailer import Mailer
from orders import get_user_order, place_order, verify_payment
from payments import RazorpayGateway
from security import require_user
from settings import Settings
from web import flash, redirect, render

router = APIRouter(prefix="/checkout")


class PlaceOrder(BaseModel):
    address_id: str = Field(..., validation_alias=AliasChoices("addressId", "address_id"))
    payment_method: str = Field(..., validation_alias=AliasChoices("paymentMethod", "payment_method"))
    note: Optional[str] = None


class VerifyPayment(BaseModel):
    # Names as sent by the hosted checkout handler, or the short form.
    order_id: str = Field(..., validation_alias=AliasChoices("orderId", "razorpay_order_id"))
    payment_id: str = Field(..., validation_alias=AliasChoices("paymentId", "razorpay_payment_id"))
    signature: str = Field(..., validation_alias=AliasChoices("signature", "razorpay_signature"))


@router.get("")
def checkout_page(
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    if cart.is_empty():
        flash(request, "error", "Your cart is empty")
        return redirect("/cart")
    summary = price_cart(db, cart, settings)
    return render(request, "checkout/index.html", {
        "summary": summary,
        "addresses": user.get("addresses", []),
        "razorpay_key": settings.razorpay_key_id,
        "store_name": settings.store_name,
    })


@router.post("/place-order")
def place_order_route(
    request: Request,
    payload: PlaceOrder,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: RazorpayGateway = Depends(get_gateway),
    mailer: Mailer = Depends(get_mailer),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    placed = place_order(db, user, cart, payload.address_id, payload.payment_method, payload.note,
                         settings, gateway, mailer)
    cart.save(request.session)

    response = {"success": True, "orderId": placed.order_id, "paymentMethod": placed.payment_method}
    if placed.gateway_order_id:
        response.update({
            "razorpayOrderId": placed.gateway_order_id,
            "amount": placed.amount,
            "currency": placed.currency,
            "key": settings.razorpay_key_id,
        })
    return response


@router.post("/verify-payment")
def verify_payment_route(
    request: Request,
    payload: VerifyPayment,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    order = verify_payment(db, user, payload.order_id, payload.payment_id, payload.signature,
                           settings, mailer, cart)
    cart.save(request.session)
    return {"success": True, "orderId": str(order["_id"])}


@router.get("/success/{order_id}")
def order_success(
    request: Request,
    order_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    order = get_user_order(db, user, order_id)
    return render(request, "checkout/success.html", {"order": order, "order_id": str(order["_id"])})
