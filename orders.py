"""
Order placement, payment verification and order queries.

An order is written in `pending` state before the payment gateway is called,
so a gateway failure leaves a recoverable pending order behind. Line prices
are copied into the order and never re-read from the product afterwards.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from cart import SessionCart, price_cart
from database import ORDERS, PRODUCTS, USERS, create_document, to_object_id, utcnow
from errors import NotFound, PaymentSignatureError, ValidationFailed
from logger import get_logger
from mailer import Mailer
from payments import RazorpayGateway, to_minor_units, verify_signature
from schemas import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, ShippingAddress
from settings import Settings

logger = get_logger("orders")


@dataclass
class PlacedOrder:
    order_id: str
    payment_method: str
    total: float
    gateway_order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None


def find_address(user: Dict[str, Any], address_id: str) -> Optional[Dict[str, Any]]:
    for address in user.get("addresses", []):
        if address.get("id") == address_id:
            return address
    return None


def place_order(db: Database, user: Dict[str, Any], cart: SessionCart, address_id: str,
                payment_method: str, note: Optional[str], settings: Settings,
                gateway: RazorpayGateway, mailer: Mailer) -> PlacedOrder:
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise ValidationFailed("Invalid payment method")

    address = find_address(user, address_id)
    if not address:
        raise ValidationFailed("Invalid address")

    if cart.is_empty():
        raise ValidationFailed("Your cart is empty", redirect_to="/cart")

    summary = price_cart(db, cart, settings)
    unavailable = [p.product["name"] for p in summary.lines
                   if not (p.product.get("stock") or {}).get("available", True)]
    if unavailable:
        raise ValidationFailed("Out of stock: " + ", ".join(unavailable), redirect_to="/cart")

    order = Order(
        user=str(user["_id"]),
        items=[
            OrderItem(
                product=p.product["id"],
                name=p.product["name"],
                quantity=p.line.quantity,
                price=p.unit_price,
                size=p.line.size,
                color=p.line.color,
            )
            for p in summary.lines
        ],
        shipping_address=ShippingAddress(**{k: address[k] for k in ShippingAddress.model_fields}),
        subtotal=summary.subtotal,
        shipping=summary.shipping,
        total=summary.total,
        payment_method=method,
        note=(note or "").strip() or None,
    )
    order_id = create_document(db, ORDERS, order)
    logger.info("Order %s created for user %s (%s, total %.2f)", order_id, user["_id"], method.value, order.total)

    if method is PaymentMethod.online:
        amount = to_minor_units(order.total)
        gateway_order = gateway.create_order(amount=amount, currency=settings.currency, receipt=order_id)
        db[ORDERS].update_one(
            {"_id": to_object_id(order_id)},
            {"$set": {"gateway_order_id": gateway_order["id"], "updated_at": utcnow()}},
        )
        return PlacedOrder(order_id=order_id, payment_method=method.value, total=order.total,
                           gateway_order_id=gateway_order["id"], amount=amount, currency=settings.currency)

    mailer.send_order_confirmation(user["email"], get_order(db, order_id))
    cart.clear()
    return PlacedOrder(order_id=order_id, payment_method=method.value, total=order.total)


def find_payable_order(db: Database, order_id: str) -> Optional[Dict[str, Any]]:
    """Look an order up by its store id or by the gateway order id."""
    clauses: List[Dict[str, Any]] = [{"gateway_order_id": order_id}]
    oid = to_object_id(order_id)
    if oid:
        clauses.append({"_id": oid})
    return db[ORDERS].find_one({"$or": clauses})


def verify_payment(db: Database, user: Dict[str, Any], order_id: str, payment_id: str, signature: str,
                   settings: Settings, mailer: Mailer, cart: SessionCart) -> Dict[str, Any]:
    """
    Confirm an online order from the gateway's client-side callback.

    `order_id` is either the store order id or the gateway order id, and the
    signature must equal HMAC-SHA256(key secret, "order_id|payment_id") over
    that same id. Only pending orders are confirmed.
    """
    if not verify_signature(settings.razorpay_key_secret, order_id, payment_id, signature):
        logger.warning("Rejected payment callback for order %s (user %s)", order_id, user["_id"])
        raise PaymentSignatureError()

    order = find_payable_order(db, order_id)
    if not order or order.get("user") != str(user["_id"]):
        raise NotFound("Order not found")

    if order.get("payment_status") == PaymentStatus.paid.value:
        cart.clear()
        return order

    result = db[ORDERS].update_one(
        {"_id": order["_id"], "status": OrderStatus.pending.value},
        {"$set": {
            "payment_id": payment_id,
            "status": OrderStatus.confirmed.value,
            "payment_status": PaymentStatus.paid.value,
            "updated_at": utcnow(),
        }},
    )
    if not result.matched_count:
        logger.error("Payment %s arrived for order %s in state %s; refund required",
                     payment_id, order["_id"], order.get("status"))
        raise ValidationFailed("This order is no longer awaiting payment; the payment will be refunded")
    order = db[ORDERS].find_one({"_id": order["_id"]})
    logger.info("Payment %s confirmed order %s", payment_id, order["_id"])

    mailer.send_order_confirmation(user["email"], order)
    cart.clear()
    return order


def get_order(db: Database, order_id: str) -> Dict[str, Any]:
    oid = to_object_id(order_id)
    order = db[ORDERS].find_one({"_id": oid}) if oid else None
    if not order:
        raise NotFound("Order not found")
    return order


def get_user_order(db: Database, user: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order.get("user") != str(user["_id"]):
        raise NotFound("Order not found")
    return order


def user_orders(db: Database, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(db[ORDERS].find({"user": str(user["_id"])}).sort("created_at", DESCENDING))


def update_status(db: Database, order_id: str, status: str) -> Dict[str, Any]:
    """Admin transition of a pending order to confirmed or cancelled."""
    try:
        new_status = OrderStatus(status)
    except ValueError:
        raise ValidationFailed("Invalid order status", redirect_to="/admin/orders")
    order = get_order(db, order_id)
    if order.get("status") != OrderStatus.pending.value or new_status is OrderStatus.pending:
        raise ValidationFailed("Only pending orders can be confirmed or cancelled", redirect_to="/admin/orders")
    db[ORDERS].update_one({"_id": order["_id"]}, {"$set": {"status": new_status.value, "updated_at": utcnow()}})
    logger.info("Order %s marked %s", order["_id"], new_status.value)
    return get_order(db, order_id)


def recent_orders(db: Database, limit: int = 5) -> List[Dict[str, Any]]:
    orders = list(db[ORDERS].find().sort("created_at", DESCENDING).limit(limit))
    user_ids = {to_object_id(o.get("user")) for o in orders} - {None}
    users = {str(u["_id"]): u for u in db[USERS].find({"_id": {"$in": list(user_ids)}}, {"name": 1, "email": 1})}
    for o in orders:
        o["customer"] = users.get(o.get("user"))
    return orders


def sales_summary(db: Database, days: int = 30) -> List[Dict[str, Any]]:
    """Per-day totals of non-cancelled orders over the last `days` days."""
    since = utcnow() - timedelta(days=days)
    pipeline = [
        {"$match": {"created_at": {"$gte": since}, "status": {"$ne": OrderStatus.cancelled.value}}},
        {"$group": {
            "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$created_at"}},
            "totalSales": {"$sum": "$total"},
            "count": {"$sum": 1},
        }},
        {"$sort": {"_id": 1}},
    ]
    return list(db[ORDERS].aggregate(pipeline))


def dashboard_counts(db: Database) -> Dict[str, int]:
    return {
        "product_count": db[PRODUCTS].count_documents({}),
        "order_count": db[ORDERS].count_documents({}),
        "user_count": db[USERS].count_documents({}),
    }
