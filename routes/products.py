from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from pymongo.database import Database

from catalog import (
    ProductFilters,
    SORT_OPTIONS,
    add_review,
    featured_products,
    get_product_by_slug,
    list_categories,
    list_products,
    related_products,
    search_suggestions,
)
from database import get_db
from security import require_user
from web import flash, redirect, render

router = APIRouter(prefix="/products")


@router.get("")
def product_list(
    request: Request,
    category: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    color: Optional[str] = None,
    size: Optional[str] = None,
    sort: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
):
    filters = ProductFilters.from_query(
        category=category, min_price=min_price, max_price=max_price,
        color=color, size=size, search=search, sort=sort,
    )
    return render(request, "products/list.html", {
        "products": list_products(db, filters),
        "categories": list_categories(db),
        "filters": filters.as_query_params(),
        "sort_options": SORT_OPTIONS,
    })


# Search suggestions API
@router.get("/api/suggestions")
def suggestions(q: str = "", db: Database = Depends(get_db)):
    return search_suggestions(db, q)


@router.get("/api/featured")
def featured(db: Database = Depends(get_db)):
    return featured_products(db)


@router.get("/{slug}")
def product_detail(request: Request, slug: str, db: Database = Depends(get_db)):
    product = get_product_by_slug(db, slug)
    return render(request, "products/detail.html", {
        "product": product,
        "related_products": related_products(db, product),
    })


@router.post("/{slug}/reviews")
def post_review(
    request: Request,
    slug: str,
    rating: int = Form(...),
    comment: Optional[str] = Form(None),
    db: Database = Depends(get_db),
    user: Dict[str, Any] = Depends(require_user),
):
    product = get_product_by_slug(db, slug)
    add_review(db, product["id"], str(user["_id"]), rating, comment)
    flash(request, "success", "Thanks for your review")
    return redirect(f"/products/{slug}")
