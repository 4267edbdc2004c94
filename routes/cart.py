from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from pymongo.database import Database

from cart import SessionCart, price_cart
from database import PRODUCTS, get_db, to_object_id
from dependencies import get_cart, get_settings
from errors import NotFound, UnresolvedCartItems
from logger import get_logger
from security import require_user
from settings import Settings
from web import flash, render

router = APIRouter(prefix="/cart")
logger = get_logger("cart")


class AddToCart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class UpdateCartItem(BaseModel):
    quantity: int


@router.get("")
def view_cart(
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    try:
        summary = price_cart(db, cart, settings)
    except UnresolvedCartItems as exc:
        cart.prune(exc.product_ids)
        cart.save(request.session)
        logger.info("Dropped %d unavailable products from cart of user %s", len(exc.product_ids), user["_id"])
        flash(request, "error", exc.message)
        summary = price_cart(db, cart, settings)
    return render(request, "cart/view.html", {
        "summary": summary,
        "free_shipping_threshold": settings.free_shipping_threshold,
    })


@router.post("/add")
def add_to_cart(
    request: Request,
    item: AddToCart,
    db: Database = Depends(get_db),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    oid = to_object_id(item.product_id)
    if not oid or not db[PRODUCTS].find_one({"_id": oid}, {"_id": 1}):
        raise NotFound("Product not found")
    cart.add(str(oid), item.quantity, item.size, item.color)
    cart.save(request.session)
    return {"success": True, "cartCount": cart.count}


@router.put("/update/{line_id}")
def update_cart_item(
    request: Request,
    line_id: str,
    payload: UpdateCartItem,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    cart.update(line_id, payload.quantity)
    cart.save(request.session)
    summary = price_cart(db, cart, settings)
    return {
        "success": True,
        "cartCount": cart.count,
        "subtotal": summary.subtotal,
        "shipping": summary.shipping,
        "total": summary.total,
    }


@router.delete("/remove/{line_id}")
def remove_cart_item(
    request: Request,
    line_id: str,
    cart: SessionCart = Depends(get_cart),
    user: Dict[str, Any] = Depends(require_user),
):
    cart.remove(line_id)
    cart.save(request.session)
    return {"success": True, "cartCount": cart.count}
