import os
import shutil
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from werkzeug.utils import secure_filename

from catalog import list_categories, split_list
from database import CATEGORIES, ORDERS, PRODUCTS, create_document, get_db, serialize_doc, to_object_id, utcnow
from dependencies import get_settings
from errors import NotFound, ValidationFailed
from logger import get_logger
from orders import dashboard_counts, recent_orders, sales_summary, update_status
from product_import import import_products
from schemas import Category, Product
from security import require_admin
from settings import Settings
from web import flash, redirect, render

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])
logger = get_logger("admin")

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


def _uploaded(files: Optional[List[UploadFile]]) -> List[UploadFile]:
    # Browsers post an empty part when no file was chosen.
    return [f for f in files or [] if f is not None and f.filename]


def save_product_images(files: List[UploadFile], settings: Settings) -> List[str]:
    if len(files) > settings.max_product_images:
        raise ValidationFailed(f"At most {settings.max_product_images} images per product")
    os.makedirs(settings.upload_dir, exist_ok=True)
    paths = []
    for upload in files:
        ext = os.path.splitext(secure_filename(upload.filename))[1].lower()
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            raise ValidationFailed(f"Unsupported image type: {upload.filename}")
        filename = f"{uuid4().hex}{ext}"
        with open(os.path.join(settings.upload_dir, filename), "wb") as out:
            shutil.copyfileobj(upload.file, out)
        paths.append(f"/uploads/{filename}")
    return paths


def _number(value: str, label: str, redirect_to: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{label} must be a number", redirect_to=redirect_to)


def product_from_form(form: Dict[str, Any], images: List[str], redirect_to: str) -> Product:
    price = _number(form["price"], "Price", redirect_to)
    discounted = form.get("discounted_price")
    thread_count = (form.get("thread_count") or "").strip()
    stock_quantity = (form.get("stock_quantity") or "").strip()
    try:
        return Product(
            name=form["name"].strip(),
            description=form["description"].strip(),
            short_description=(form.get("short_description") or "").strip(),
            price=price,
            discounted_price=_number(discounted, "Discounted price", redirect_to) if discounted else price,
            category=form["category"],
            attributes={
                "size": split_list(form.get("sizes")),
                "color": split_list(form.get("colors")),
                "material": (form.get("material") or "").strip() or None,
                "thread_count": int(thread_count) if thread_count else None,
                "dimensions": (form.get("dimensions") or "").strip() or None,
            },
            stock={
                "available": form.get("stock_available", "on") == "on",
                "quantity": int(stock_quantity) if stock_quantity else 0,
            },
            images=images,
            tags=split_list(form.get("tags")),
            is_featured=form.get("is_featured") == "on",
        )
    except (ValidationError, ValueError) as exc:
        raise ValidationFailed(f"Invalid product: {str(exc).splitlines()[-1].strip()}", redirect_to=redirect_to)


def _require_category(db: Database, category_id: str, redirect_to: str) -> None:
    oid = to_object_id(category_id)
    if not oid or not db[CATEGORIES].find_one({"_id": oid}, {"_id": 1}):
        raise ValidationFailed("Please choose a valid category", redirect_to=redirect_to)


def _get_product(db: Database, product_id: str) -> Dict[str, Any]:
    oid = to_object_id(product_id)
    product = db[PRODUCTS].find_one({"_id": oid}) if oid else None
    if not product:
        raise NotFound("Product not found")
    return product


# Admin dashboard
@router.get("")
def dashboard(request: Request, db: Database = Depends(get_db)):
    return render(request, "admin/dashboard.html", {
        **dashboard_counts(db),
        "recent_orders": recent_orders(db),
        "sales_data": sales_summary(db),
    })


# Product management
@router.get("/products")
def product_list(request: Request, db: Database = Depends(get_db)):
    categories = {c["id"]: c for c in list_categories(db)}
    products = [serialize_doc(p) for p in db[PRODUCTS].find().sort("created_at", DESCENDING)]
    for p in products:
        p["category_info"] = categories.get(p.get("category"))
    return render(request, "admin/products/list.html", {"products": products})


@router.get("/products/add")
def add_product_form(request: Request, db: Database = Depends(get_db)):
    return render(request, "admin/products/form.html", {
        "categories": list_categories(db),
        "product": None,
        "action": "/admin/products",
    })


@router.post("/products")
def create_product(
    request: Request,
    name: str = Form(...),
    description: str = Form(...),
    short_description: str = Form("", alias="shortDescription"),
    price: str = Form(...),
    discounted_price: str = Form("", alias="discountedPrice"),
    category: str = Form(...),
    material: str = Form(""),
    thread_count: str = Form("", alias="threadCount"),
    dimensions: str = Form(""),
    sizes: str = Form(""),
    colors: str = Form(""),
    tags: str = Form(""),
    is_featured: Optional[str] = Form(None, alias="isFeatured"),
    stock_available: Optional[str] = Form(None, alias="stockAvailable"),
    stock_quantity: str = Form("", alias="stockQuantity"),
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    back = "/admin/products/add"
    _require_category(db, category, back)
    form = dict(
        name=name, description=description, short_description=short_description, price=price,
        discounted_price=discounted_price, category=category, material=material,
        thread_count=thread_count, dimensions=dimensions, sizes=sizes, colors=colors, tags=tags,
        is_featured=is_featured, stock_available=stock_available or "off", stock_quantity=stock_quantity,
    )
    # Validate before writing any files.
    product_from_form(form, [], back)
    product = product_from_form(form, save_product_images(_uploaded(images), settings), back)
    try:
        product_id = create_document(db, PRODUCTS, product)
    except DuplicateKeyError:
        raise ValidationFailed("A product with this name already exists", redirect_to=back)
    logger.info("Product %s created (%s)", product_id, product.slug)
    flash(request, "success", "Product added successfully")
    return redirect("/admin/products")


@router.get("/products/{product_id}/edit")
def edit_product_form(request: Request, product_id: str, db: Database = Depends(get_db)):
    return render(request, "admin/products/form.html", {
        "categories": list_categories(db),
        "product": serialize_doc(_get_product(db, product_id)),
        "action": f"/admin/products/{product_id}",
    })


@router.post("/products/bulk-upload")
def bulk_upload(
    request: Request,
    csv_file: Optional[UploadFile] = File(None, alias="csvFile"),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if csv_file is None or not csv_file.filename:
        raise ValidationFailed("Please upload a CSV file", redirect_to="/admin/products")
    if not csv_file.filename.lower().endswith(".csv"):
        raise ValidationFailed("Only .csv files can be imported", redirect_to="/admin/products")

    os.makedirs(settings.upload_dir, exist_ok=True)
    path = os.path.join(settings.upload_dir, f"{uuid4().hex}.csv")
    with open(path, "wb") as out:
        shutil.copyfileobj(csv_file.file, out)

    try:
        report = import_products(db, path)
    except (UnicodeDecodeError, ValueError) as exc:
        logger.error("Error processing CSV file: %s", exc)
        raise ValidationFailed("Error processing CSV file", redirect_to="/admin/products")
    flash(request, "success" if report.created else "error", report.summary())
    return redirect("/admin/products")


@router.post("/products/{product_id}")
def update_product(
    request: Request,
    product_id: str,
    name: str = Form(...),
    description: str = Form(...),
    short_description: str = Form("", alias="shortDescription"),
    price: str = Form(...),
    discounted_price: str = Form("", alias="discountedPrice"),
    category: str = Form(...),
    material: str = Form(""),
    thread_count: str = Form("", alias="threadCount"),
    dimensions: str = Form(""),
    sizes: str = Form(""),
    colors: str = Form(""),
    tags: str = Form(""),
    is_featured: Optional[str] = Form(None, alias="isFeatured"),
    stock_available: Optional[str] = Form(None, alias="stockAvailable"),
    stock_quantity: str = Form("", alias="stockQuantity"),
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    existing = _get_product(db, product_id)
    back = f"/admin/products/{product_id}/edit"
    _require_category(db, category, back)
    form = dict(
        name=name, description=description, short_description=short_description, price=price,
        discounted_price=discounted_price, category=category, material=material,
        thread_count=thread_count, dimensions=dimensions, sizes=sizes, colors=colors, tags=tags,
        is_featured=is_featured, stock_available=stock_available or "off", stock_quantity=stock_quantity,
    )
    product_from_form(form, [], back)
    new_images = _uploaded(images)
    kept = list(existing.get("images", []))
    if len(kept) + len(new_images) > settings.max_product_images:
        raise ValidationFailed(f"At most {settings.max_product_images} images per product", redirect_to=back)
    product = product_from_form(form, kept + save_product_images(new_images, settings), back)

    # Reviews and rating belong to customers, not to the edit form.
    update = product.model_dump(exclude={"reviews", "rating"})
    update["updated_at"] = utcnow()
    try:
        db[PRODUCTS].update_one({"_id": existing["_id"]}, {"$set": update})
    except DuplicateKeyError:
        raise ValidationFailed("A product with this name already exists", redirect_to=back)
    logger.info("Product %s updated", product_id)
    flash(request, "success", "Product updated successfully")
    return redirect("/admin/products")


# Categories
@router.get("/categories")
def category_list(request: Request, db: Database = Depends(get_db)):
    return render(request, "admin/categories.html", {"categories": list_categories(db)})


@router.post("/categories")
def create_category(
    request: Request,
    name: str = Form(...),
    description: str = Form(""),
    db: Database = Depends(get_db),
):
    try:
        category = Category(name=name.strip(), description=description.strip() or None)
    except ValidationError:
        raise ValidationFailed("Category name is required", redirect_to="/admin/categories")
    try:
        create_document(db, CATEGORIES, category)
    except DuplicateKeyError:
        raise ValidationFailed("A category with this name already exists", redirect_to="/admin/categories")
    flash(request, "success", f"Category {category.name} created")
    return redirect("/admin/categories")


# Orders
@router.get("/orders")
def order_list(request: Request, db: Database = Depends(get_db)):
    orders = list(db[ORDERS].find().sort("created_at", DESCENDING))
    return render(request, "admin/orders.html", {"orders": orders})


@router.post("/orders/{order_id}/status")
def change_order_status(
    request: Request,
    order_id: str,
    status: str = Form(...),
    db: Database = Depends(get_db),
):
    order = update_status(db, order_id, status)
    flash(request, "success", f"Order {order['_id']} is now {order['status']}")
    return redirect("/admin/orders")
