from typing import Any, Dict, List

from bson import ObjectId
from fastapi import APIRouter, Depends, Form, Request
from pydantic import ValidationError
from pymongo.database import Database

from database import USERS, get_db, utcnow
from errors import NotFound, ValidationFailed
from orders import get_user_order, user_orders
from schemas import Address
from security import require_user
from web import flash, redirect, render

router = APIRouter(prefix="/account")


def _address(address_id: str, name: str, street: str, city: str, state: str, zip_code: str, phone: str) -> Address:
    try:
        return Address(
            id=address_id, name=name.strip(), street=street.strip(), city=city.strip(),
            state=state.strip(), zip_code=zip_code.strip(), phone=phone.strip(),
        )
    except ValidationError:
        raise ValidationFailed("Please fill in every address field", redirect_to="/account")


def _save_addresses(db: Database, user: Dict[str, Any], addresses: List[Dict[str, Any]]) -> None:
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": utcnow()}})


@router.get("")
def account_home(request: Request, db: Database = Depends(get_db), user: Dict[str, Any] = Depends(require_user)):
    return render(request, "account/index.html", {
        "user": user,
        "addresses": user.get("addresses", []),
        "orders": user_orders(db, user)[:5],
    })


@router.post("/profile")
def update_profile(
    request: Request,
    name: str = Form(...),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    name = name.strip()
    if not name:
        raise ValidationFailed("Name is required", redirect_to="/account")
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {"name": name, "updated_at": utcnow()}})
    request.session["user_name"] = name
    flash(request, "success", "Profile updated")
    return redirect("/account")


@router.get("/orders")
def order_list(request: Request, db: Database = Depends(get_db), user: Dict[str, Any] = Depends(require_user)):
    return render(request, "account/orders.html", {"orders": user_orders(db, user)})


@router.get("/orders/{order_id}")
def order_detail(
    request: Request,
    order_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    order = get_user_order(db, user, order_id)
    return render(request, "account/order_detail.html", {"order": order, "order_id": str(order["_id"])})


@router.post("/addresses")
def add_address(
    request: Request,
    name: str = Form(...),
    street: str = Form(...),
    city: str = Form(...),
    state: str = Form(...),
    zip_code: str = Form(..., alias="zipCode"),
    phone: str = Form(...),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    address = _address(str(ObjectId()), name, street, city, state, zip_code, phone)
    _save_addresses(db, user, list(user.get("addresses", [])) + [address.model_dump()])
    flash(request, "success", "Address added")
    return redirect(request.headers.get("referer") or "/account")


@router.post("/addresses/{address_id}")
def edit_address(
    request: Request,
    address_id: str,
    name: str = Form(...),
    street: str = Form(...),
    city: str = Form(...),
    state: str = Form(...),
    zip_code: str = Form(..., alias="zipCode"),
    phone: str = Form(...),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    addresses = list(user.get("addresses", []))
    for i, existing in enumerate(addresses):
        if existing.get("id") == address_id:
            addresses[i] = _address(address_id, name, street, city, state, zip_code, phone).model_dump()
            break
    else:
        raise NotFound("Address not found")
    _save_addresses(db, user, addresses)
    flash(request, "success", "Address updated")
    return redirect("/account")


@router.post("/addresses/{address_id}/delete")
def delete_address(
    request: Request,
    address_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    addresses = [a for a in user.get("addresses", []) if a.get("id") != address_id]
    if len(addresses) == len(user.get("addresses", [])):
        raise NotFound("Address not found")
    _save_addresses(db, user, addresses)
    flash(request, "success", "Address removed")
    return redirect("/account")
