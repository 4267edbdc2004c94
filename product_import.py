"""
CSV bulk import of products.

Expected header: name, description, shortDescription, price, discountedPrice,
category (category *name*), sizes, colors, material, threadCount, dimensions,
images, tags, isFeatured. List columns are comma separated inside the cell.
"""
import csv
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from catalog import split_list
from database import CATEGORIES, PRODUCTS, create_document
from logger import get_logger
from schemas import Product

logger = get_logger("product_import")


@dataclass
class ImportReport:
    created: int = 0
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    def summary(self) -> str:
        text = f"{self.created} products uploaded successfully"
        if self.skipped:
            text += f", {len(self.skipped)} rows skipped"
        return text


def _float(value: Any, column: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{column} is not a number")


def row_to_product(row: Dict[str, str], category_id: str) -> Product:
    """Map one CSV row onto a Product, filling the defaults the form would."""
    name = (row.get("name") or "").strip()
    description = (row.get("description") or "").strip()
    price = _float(row.get("price"), "price")
    discounted = row.get("discountedPrice")
    thread_count = (row.get("threadCount") or "").strip()

    return Product(
        name=name,
        description=description,
        short_description=(row.get("shortDescription") or "").strip() or description[:100],
        price=price,
        discounted_price=_float(discounted, "discountedPrice") if discounted else price,
        category=category_id,
        attributes={
            "size": split_list(row.get("sizes")),
            "color": split_list(row.get("colors")),
            "material": (row.get("material") or "").strip() or None,
            "thread_count": int(thread_count) if thread_count else None,
            "dimensions": (row.get("dimensions") or "").strip() or None,
        },
        images=split_list(row.get("images")),
        tags=split_list(row.get("tags")),
        is_featured=(row.get("isFeatured") or "").strip().lower() == "true",
    )


def import_products(db: Database, path: str) -> ImportReport:
    """Create a product per row; the file is removed afterwards whatever happens."""
    report = ImportReport()
    categories: Dict[str, str] = {}
    try:
        with open(path, newline="", encoding="utf-8-sig") as fh:
            for line_no, row in enumerate(csv.DictReader(fh), start=2):
                category_name = (row.get("category") or "").strip()
                if category_name not in categories:
                    category = db[CATEGORIES].find_one({"name": category_name})
                    categories[category_name] = str(category["_id"]) if category else ""
                if not categories[category_name]:
                    report.skipped.append((line_no, f"unknown category {category_name!r}"))
                    continue

                try:
                    product = row_to_product(row, categories[category_name])
                except (ValueError, ValidationError) as exc:
                    report.skipped.append((line_no, str(exc).splitlines()[0]))
                    continue

                try:
                    create_document(db, PRODUCTS, product)
                except DuplicateKeyError:
                    report.skipped.append((line_no, f"duplicate slug {product.slug!r}"))
                    continue
                report.created += 1
    finally:
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Could not delete uploaded CSV %s: %s", path, exc)

    for line_no, reason in report.skipped:
        logger.info("CSV row %d skipped: %s", line_no, reason)
    logger.info("CSV import finished: %d created, %d skipped", report.created, len(report.skipped))
    return report
