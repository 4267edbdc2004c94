"""
Catalog queries: slugs, storefront filters, sorting, featured products,
search suggestions and reviews.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import CATEGORIES, PRODUCTS, serialize_doc, to_object_id, utcnow
from errors import NotFound, ValidationFailed

SORT_NEWEST = "newest"
SORT_PRICE_LOW = "price-low"
SORT_PRICE_HIGH = "price-high"
SORT_POPULAR = "popular"
SORT_OPTIONS = (SORT_NEWEST, SORT_PRICE_LOW, SORT_PRICE_HIGH, SORT_POPULAR)

_SORTS = {
    SORT_NEWEST: [("created_at", DESCENDING)],
    SORT_PRICE_LOW: [("discounted_price", ASCENDING)],
    SORT_PRICE_HIGH: [("discounted_price", DESCENDING)],
    SORT_POPULAR: [("rating", DESCENDING)],
}

TEXT_SCORE = {"$meta": "textScore"}


def slugify(name: str) -> str:
    """Lowercase, spaces to hyphens, then drop anything that is not a word character or hyphen."""
    slug = name.strip().lower().replace(" ", "-")
    return re.sub(r"[^\w-]+", "", slug)


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma separated form/query value into trimmed, non-empty parts."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class ProductFilters:
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    colors: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    search: Optional[str] = None
    sort: str = SORT_NEWEST

    @classmethod
    def from_query(cls, category: Optional[str] = None, min_price: Optional[str] = None,
                   max_price: Optional[str] = None, color: Optional[str] = None,
                   size: Optional[str] = None, search: Optional[str] = None,
                   sort: Optional[str] = None) -> "ProductFilters":
        return cls(
            category=category or None,
            min_price=_parse_price(min_price, "minPrice"),
            max_price=_parse_price(max_price, "maxPrice"),
            colors=split_list(color),
            sizes=split_list(size),
            search=(search or "").strip() or None,
            sort=sort if sort in SORT_OPTIONS else SORT_NEWEST,
        )

    def as_query_params(self) -> Dict[str, Any]:
        """Echo of the active filters for re-rendering the filter form."""
        return {
            "category": self.category or "",
            "minPrice": "" if self.min_price is None else self.min_price,
            "maxPrice": "" if self.max_price is None else self.max_price,
            "color": ",".join(self.colors),
            "size": ",".join(self.sizes),
            "search": self.search or "",
            "sort": self.sort,
        }


def _parse_price(value: Optional[str], name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationFailed(f"{name} must be a number", redirect_to="/products")


def build_product_query(filters: ProductFilters, category_id: Optional[str] = None) -> Dict[str, Any]:
    """Combine every active filter into one Mongo filter; all of them must hold."""
    query: Dict[str, Any] = {}
    if category_id:
        query["category"] = category_id

    price: Dict[str, float] = {}
    if filters.min_price is not None:
        price["$gte"] = filters.min_price
    if filters.max_price is not None:
        price["$lte"] = filters.max_price
    if price:
        query["discounted_price"] = price

    if filters.colors:
        query["attributes.color"] = {"$in": filters.colors}
    if filters.sizes:
        query["attributes.size"] = {"$in": filters.sizes}
    if filters.search:
        query["$text"] = {"$search": filters.search}
    return query


def sort_spec(sort: str, has_search: bool = False) -> List[Tuple[str, Any]]:
    if has_search and sort == SORT_NEWEST:
        return [("score", TEXT_SCORE)]
    return _SORTS.get(sort, _SORTS[SORT_NEWEST])


def get_category_by_slug(db: Database, slug: str) -> Optional[Dict[str, Any]]:
    return db[CATEGORIES].find_one({"slug": slug})


def list_categories(db: Database) -> List[Dict[str, Any]]:
    return [serialize_doc(c) for c in db[CATEGORIES].find({}).sort("name", ASCENDING)]


def _with_category(db: Database, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Attach `{name, slug}` of each product's category."""
    ids = {to_object_id(p.get("category")) for p in products} - {None}
    categories = {str(c["_id"]): {"name": c["name"], "slug": c["slug"]}
                  for c in db[CATEGORIES].find({"_id": {"$in": list(ids)}})} if ids else {}
    for p in products:
        p["category_info"] = categories.get(str(p.get("category")))
    return products


def list_products(db: Database, filters: ProductFilters) -> List[Dict[str, Any]]:
    category_id = None
    if filters.category:
        category = get_category_by_slug(db, filters.category)
        # An unknown category slug leaves the listing unfiltered.
        if category:
            category_id = str(category["_id"])

    query = build_product_query(filters, category_id)
    if filters.search:
        cursor = db[PRODUCTS].find(query, {"score": TEXT_SCORE})
    else:
        cursor = db[PRODUCTS].find(query)
    cursor = cursor.sort(sort_spec(filters.sort, bool(filters.search)))
    return _with_category(db, [serialize_doc(p) for p in cursor])


def get_product_by_slug(db: Database, slug: str) -> Dict[str, Any]:
    product = db[PRODUCTS].find_one({"slug": slug})
    if not product:
        raise NotFound("Product not found")
    return _with_category(db, [serialize_doc(product)])[0]


def related_products(db: Database, product: Dict[str, Any], limit: int = 4) -> List[Dict[str, Any]]:
    cursor = db[PRODUCTS].find({
        "category": product["category"],
        "_id": {"$ne": to_object_id(product["id"])},
    }).limit(limit)
    return [serialize_doc(p) for p in cursor]


def featured_products(db: Database, limit: int = 8) -> List[Dict[str, Any]]:
    projection = {"name": 1, "slug": 1, "price": 1, "discounted_price": 1,
                  "images": 1, "short_description": 1, "rating": 1}
    cursor = db[PRODUCTS].find({"is_featured": True}, projection).limit(limit)
    return [serialize_doc(p) for p in cursor]


def search_suggestions(db: Database, q: str, limit: int = 5) -> List[Dict[str, Any]]:
    q = (q or "").strip()
    if not q:
        return []
    cursor = (
        db[PRODUCTS]
        .find({"$text": {"$search": q}}, {"score": TEXT_SCORE, "name": 1, "slug": 1, "images": 1})
        .sort([("score", TEXT_SCORE)])
        .limit(limit)
    )
    suggestions = []
    for p in cursor:
        p.pop("score", None)
        suggestions.append(serialize_doc(p))
    return suggestions


def add_review(db: Database, product_id: str, user_id: str, rating: int, comment: Optional[str]) -> float:
    """Append a review and store the new average rating; returns that average."""
    if not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5")
    oid = to_object_id(product_id)
    product = db[PRODUCTS].find_one({"_id": oid}, {"reviews": 1}) if oid else None
    if not product:
        raise NotFound("Product not found")

    review = {"user": user_id, "rating": rating, "comment": (comment or "").strip() or None,
              "created_at": utcnow()}
    ratings = [r["rating"] for r in product.get("reviews", [])] + [rating]
    average = round(sum(ratings) / len(ratings), 1)
    db[PRODUCTS].update_one(
        {"_id": oid},
        {"$push": {"reviews": review}, "$set": {"rating": average, "updated_at": utcnow()}},
    )
    return average
