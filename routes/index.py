from fastapi import APIRouter, Depends, Request
from pymongo.database import Database

from catalog import featured_products, list_categories
from database import get_db
from security import get_csrf_token
from web import render

router = APIRouter()


@router.get("/")
def home(request: Request, db: Database = Depends(get_db)):
    return render(request, "index.html", {
        "featured": featured_products(db),
        "categories": list_categories(db),
    })


@router.get("/csrf-token")
def csrf_token(request: Request):
    """Token for scripts that call the JSON endpoints (sent back as X-CSRF-Token)."""
    return {"csrf_token": get_csrf_token(request)}
