from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pymongo.database import Database

from database import PRODUCTS, USERS, get_db, serialize_doc, to_object_id, utcnow
from errors import NotFound
from security import require_user
from web import flash, redirect, render

router = APIRouter(prefix="/wishlist")


@router.get("")
def view_wishlist(request: Request, db: Database = Depends(get_db), user: Dict[str, Any] = Depends(require_user)):
    ids = [oid for oid in (to_object_id(pid) for pid in user.get("wishlist", [])) if oid]
    products = [serialize_doc(p) for p in db[PRODUCTS].find({"_id": {"$in": ids}})] if ids else []
    return render(request, "wishlist/view.html", {"products": products})


@router.post("/add/{product_id}")
def add_to_wishlist(
    request: Request,
    product_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    oid = to_object_id(product_id)
    product = db[PRODUCTS].find_one({"_id": oid}, {"name": 1, "slug": 1}) if oid else None
    if not product:
        raise NotFound("Product not found")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$addToSet": {"wishlist": product_id}, "$set": {"updated_at": utcnow()}},
    )
    flash(request, "success", f"{product['name']} added to your wishlist")
    return redirect(request.headers.get("referer") or f"/products/{product['slug']}")


@router.post("/remove/{product_id}")
def remove_from_wishlist(
    request: Request,
    product_id: str,
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$pull": {"wishlist": product_id}, "$set": {"updated_at": utcnow()}},
    )
    flash(request, "success", "Removed from your wishlist")
    return redirect("/wishlist")
